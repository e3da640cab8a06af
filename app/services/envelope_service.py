import logging
import re
import secrets
import uuid
from typing import List, Optional, Tuple
from urllib.parse import quote, urlencode

from sqlalchemy.orm import Session

from app.config.settings import PUBLIC_APP_URL, SIGNED_URL_TTL_SECONDS
from app.exceptions import EnvelopeNotFound, EnvelopeStateError, InvalidArgument
from app.models.envelope import Envelope, StatusEnvelope
from app.schemas.envelope import FieldSpec
from app.services.clock import SystemClock
from app.services.field_layout import stamp_unit
from app.services.field_values import unusable_read_only_fields
from app.services.storage_service import BlobStore, document_path


def generate_access_token() -> str:
    return secrets.token_urlsafe(32)


def generate_request_id() -> str:
    return uuid.uuid4().hex


def build_signing_link(company_id: str, request_id: str, access_token: str) -> str:
    # O token vai na query string, nunca no caminho
    base = PUBLIC_APP_URL.rstrip("/")
    return f"{base}/sign/{quote(company_id, safe='')}/{quote(request_id, safe='')}?{urlencode({'token': access_token})}"


def validate_field_specs(fields: List[FieldSpec]) -> None:
    unusable = unusable_read_only_fields(fields)
    if unusable:
        raise InvalidArgument(
            "Read-only fields need a default value of the right type.",
            {"invalidFields": unusable}
        )


def resolve_template_reference(company_id: str, template_pdf_url: str) -> Tuple[str, Optional[str]]:
    """
    O modelo pode vir como URL pública ou como caminho no nosso storage.
    Caminhos só valem dentro da pasta originals da própria empresa.
    Devolve (url, storage_path).
    """
    if template_pdf_url.startswith(("http://", "https://")):
        return template_pdf_url, None
    prefix = document_path(company_id, "originals", "")
    if template_pdf_url == prefix or not template_pdf_url.startswith(prefix) or ".." in template_pdf_url:
        raise InvalidArgument(f"Template path must be under {prefix}")
    return template_pdf_url, template_pdf_url


def prepare_fields(fields: List[FieldSpec]) -> List[dict]:
    prepared = []
    for field in fields:
        if not field.id:
            field = field.model_copy(update={"id": str(uuid.uuid4())})
        prepared.append(stamp_unit(field).model_dump(by_alias=True, mode="json"))
    return prepared


def load_fields(envelope: Envelope) -> List[FieldSpec]:
    return [FieldSpec.model_validate(f) for f in envelope.fields or []]


def envelope_to_dict(envelope: Envelope) -> dict:
    return {
        "company_id": envelope.company_id,
        "request_id": envelope.request_id,
        "title": envelope.title,
        "recipient_name": envelope.recipient_name,
        "recipient_email": envelope.recipient_email,
        "pdf_url": envelope.pdf_url,
        "storage_path": envelope.storage_path,
        "status": envelope.status.value,
        "fields": load_fields(envelope),
        "signed_pdf_url": envelope.signed_pdf_url,
        "created_at": envelope.created_at,
        "dispatched_at": envelope.dispatched_at,
        "signed_at": envelope.signed_at,
    }


def create_envelope(
    db: Session,
    clock: SystemClock,
    company_id: str,
    title: str,
    recipient_name: str,
    recipient_email: str,
    template_pdf_url: str,
    fields: List[FieldSpec],
    storage_path: Optional[str] = None,
    dispatch: bool = True,
) -> Envelope:
    validate_field_specs(fields)
    now = clock.now()
    envelope = Envelope(
        company_id=company_id,
        request_id=generate_request_id(),
        access_token=generate_access_token(),
        title=title,
        recipient_name=recipient_name,
        recipient_email=recipient_email,
        pdf_url=template_pdf_url,
        storage_path=storage_path,
        status=StatusEnvelope.SENT if dispatch else StatusEnvelope.DRAFT,
        fields=prepare_fields(fields),
        created_at=now,
        dispatched_at=now if dispatch else None,
    )
    db.add(envelope)
    db.commit()
    db.refresh(envelope)
    logging.info(f"Envelope {envelope.request_id} created for company {company_id} ({envelope.status.value})")
    return envelope


async def upload_template(store: BlobStore, clock: SystemClock, company_id: str, filename: str, data: bytes):
    if not data.startswith(b"%PDF"):
        raise InvalidArgument("Please upload a valid PDF.")
    safe_name = re.sub(r"[^A-Za-z0-9._-]+", "_", filename or "document.pdf")
    if not safe_name.lower().endswith(".pdf"):
        safe_name += ".pdf"
    path = document_path(company_id, "originals", f"{int(clock.now().timestamp() * 1000)}_{safe_name}")
    url = await store.put(path, data, "application/pdf")
    return path, url


def get_envelope(db: Session, company_id: str, request_id: str) -> Envelope:
    envelope = db.query(Envelope).filter(
        Envelope.company_id == company_id,
        Envelope.request_id == request_id
    ).first()
    if not envelope:
        raise EnvelopeNotFound(f"Envelope {request_id} not found.")
    return envelope


def list_envelopes(db: Session, company_id: str) -> List[Envelope]:
    return db.query(Envelope).filter(
        Envelope.company_id == company_id
    ).order_by(Envelope.created_at.desc(), Envelope.id.desc()).all()


def dispatch_envelope(db: Session, clock: SystemClock, company_id: str, request_id: str) -> Envelope:
    """
    draft -> sent. Reenviar um envelope já enviado gera um token novo e
    invalida o link anterior. Envelopes assinados (ou selando) não voltam.
    """
    envelope = get_envelope(db, company_id, request_id)
    current = envelope.status
    if current not in (StatusEnvelope.DRAFT, StatusEnvelope.SENT):
        raise EnvelopeStateError(request_id, current.value, "dispatch")

    updated = db.query(Envelope).filter(
        Envelope.id == envelope.id,
        Envelope.status == current
    ).update({
        Envelope.status: StatusEnvelope.SENT,
        Envelope.access_token: generate_access_token(),
        Envelope.dispatched_at: clock.now(),
    }, synchronize_session=False)
    db.commit()
    db.refresh(envelope)

    if updated != 1:
        # Uma assinatura chegou entre a leitura e o update
        raise EnvelopeStateError(request_id, envelope.status.value, "dispatch")

    logging.info(f"Envelope {request_id} dispatched (was {current.value}); access token rotated")
    return envelope


async def resolve_download_url(db: Session, store: BlobStore, company_id: str, request_id: str) -> str:
    envelope = get_envelope(db, company_id, request_id)
    if envelope.status != StatusEnvelope.SIGNED:
        raise EnvelopeNotFound(f"Envelope {request_id} has no signed document yet.")
    if envelope.signed_storage_path:
        return await store.signed_url(envelope.signed_storage_path, SIGNED_URL_TTL_SECONDS)
    return envelope.signed_pdf_url
