import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models.envelope import Envelope  # noqa: F401
from app.models.audit_record import AuditRecord  # noqa: F401
from app.schemas.envelope import FieldSpec, FieldType
from app.services import envelope_service
from app.services.clock import get_clock
from app.services.rate_limiter import reset_rate_limits
from app.services.signature_capture import PointerEvent, SignatureCapture
from app.services.storage_service import BlobStore, StorageError, document_path, get_blob_store


class FixedClock:
    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.files = {}
        self.fail_puts = False
        self.fail_folder = None
        self.on_put = None

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        if self.on_put is not None:
            hook, self.on_put = self.on_put, None
            await hook(path)
        if self.fail_puts or (self.fail_folder and f"/{self.fail_folder}/" in path):
            raise StorageError("storage offline")
        self.files[path] = data
        return f"memory://{path}"

    async def get(self, path: str) -> bytes:
        if path not in self.files:
            raise StorageError(f"missing {path}")
        return self.files[path]

    async def signed_url(self, path: str, expires_in: int) -> str:
        return f"memory://{path}?expires_in={expires_in}"

    async def delete(self, path: str) -> None:
        self.files.pop(path, None)

    def paths_in(self, folder: str):
        return [p for p in self.files if f"/{folder}/" in p]


@pytest.fixture(autouse=True)
def clean_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FixedClock(datetime(2026, 3, 2, 15, 30, tzinfo=timezone.utc))


@pytest.fixture()
def store():
    return InMemoryBlobStore()


@pytest.fixture()
def client(session_factory, store, clock):
    from app.main import app

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_blob_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def template_pdf() -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Independent Contractor Lease Agreement")
    c.showPage()
    c.drawString(72, 720, "Page two: signatures")
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def signature_data_url() -> str:
    capture = SignatureCapture(width=300, height=100)
    capture.begin(PointerEvent(client_x=20, client_y=60))
    capture.extend(PointerEvent(client_x=120, client_y=30))
    capture.extend(PointerEvent(client_x=250, client_y=70))
    capture.end()
    return capture.export_data_url()


def default_fields():
    return [
        FieldSpec(id="sig", type=FieldType.SIGNATURE, page_number=2, x_position=10, y_position=70, width=30, height=8),
        FieldSpec(id="name", type=FieldType.TEXT, label="Full name", page_number=1, x_position=10, y_position=80, width=40, height=4),
    ]


@pytest.fixture()
def make_envelope(db_session, clock, store, template_pdf):
    def _make(company_id="acme-freight", fields=None, dispatch=True):
        path = document_path(company_id, "originals", "lease.pdf")
        store.files[path] = template_pdf
        return envelope_service.create_envelope(
            db_session,
            clock,
            company_id=company_id,
            title="Lease Agreement",
            recipient_name="Jane Driver",
            recipient_email="jane@example.com",
            template_pdf_url=f"memory://{path}",
            fields=fields or default_fields(),
            storage_path=path,
            dispatch=dispatch,
        )
    return _make
