import hmac
import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config.settings import SIGNED_URL_TTL_SECONDS, SUBMIT_RATE_LIMIT, SUBMIT_RATE_WINDOW_SECONDS
from app.exceptions import (
    AlreadySigned,
    EnvelopeNotFound,
    PermissionDenied,
    RateLimited,
    SealingFailure,
    SubmissionConflict,
)
from app.models.audit_record import AuditRecord
from app.models.envelope import Envelope, StatusEnvelope
from app.schemas.public_signing import PublicEnvelopeView, SubmitEnvelopeRequest, SubmitEnvelopeResult
from app.services.clock import SystemClock
from app.services.envelope_service import load_fields
from app.services.field_values import validate_field_values
from app.services.pdf_sealing import CompletionCertificate, seal_pdf
from app.services.rate_limiter import check_rate_limit
from app.services.storage_service import BlobStore, document_path, load_document

AUDIT_METHOD = "Public Secure Link"


def _authorize(db: Session, company_id: str, request_id: str, access_token: str) -> Envelope:
    envelope = db.query(Envelope).filter(
        Envelope.company_id == company_id,
        Envelope.request_id == request_id
    ).first()
    # Rascunho ainda não foi enviado: para o link público ele não existe
    if not envelope or envelope.status == StatusEnvelope.DRAFT:
        raise EnvelopeNotFound()
    if not hmac.compare_digest(envelope.access_token.encode(), access_token.encode()):
        logging.warning(f"Token mismatch for envelope {request_id}")
        raise PermissionDenied()
    return envelope


async def get_public_envelope(
    db: Session,
    store: BlobStore,
    company_id: str,
    request_id: str,
    access_token: str,
) -> PublicEnvelopeView:
    envelope = _authorize(db, company_id, request_id, access_token)
    if envelope.status == StatusEnvelope.SIGNED:
        raise AlreadySigned()

    pdf_url = envelope.pdf_url
    if envelope.storage_path:
        pdf_url = await store.signed_url(envelope.storage_path, SIGNED_URL_TTL_SECONDS)

    return PublicEnvelopeView(
        title=envelope.title,
        recipient_name=envelope.recipient_name,
        recipient_email=envelope.recipient_email,
        pdf_url=pdf_url,
        fields=load_fields(envelope),
        status=envelope.status.value,
    )


def _release_seal(db: Session, envelope_id: int, attempt: str) -> None:
    # Só devolve para sent se a reserva ainda for desta tentativa
    db.query(Envelope).filter(
        Envelope.id == envelope_id,
        Envelope.status == StatusEnvelope.PENDING_SEAL,
        Envelope.seal_attempt == attempt
    ).update({
        Envelope.status: StatusEnvelope.SENT,
        Envelope.seal_started_at: None,
        Envelope.seal_attempt: None,
    }, synchronize_session=False)
    db.commit()


async def _discard_uploads(store: BlobStore, paths: List[str]) -> None:
    for path in paths:
        try:
            await store.delete(path)
        except Exception:
            logging.exception(f"Could not delete {path} after failed seal")


async def submit_public_envelope(
    db: Session,
    store: BlobStore,
    clock: SystemClock,
    payload: SubmitEnvelopeRequest,
    transport_ip: Optional[str] = None,
    transport_user_agent: Optional[str] = None,
) -> SubmitEnvelopeResult:
    request_id = payload.request_id
    company_id = payload.company_id

    # 0. Limite de tentativas por documento
    if not check_rate_limit(f"submit_envelope_{request_id}", SUBMIT_RATE_LIMIT, SUBMIT_RATE_WINDOW_SECONDS):
        raise RateLimited()

    # 1. Valida o token de novo, sem confiar na leitura anterior
    envelope = _authorize(db, company_id, request_id, payload.access_token)

    # 2. Já assinado ou outra submissão selando
    if envelope.status in (StatusEnvelope.SIGNED, StatusEnvelope.PENDING_SEAL):
        raise SubmissionConflict()

    # 3. Campos obrigatórios e formato dos valores
    fields = load_fields(envelope)
    values = validate_field_values(fields, payload.field_values)

    # 4. Horário oficial é o do servidor; IP do cliente é só informativo
    now = clock.now()
    audit = payload.audit_data
    ip = transport_ip or audit.ip
    user_agent = transport_user_agent or audit.user_agent

    # 5. Reserva o envelope (sent -> pending_seal); só uma submissão ganha
    envelope_id = envelope.id
    attempt = uuid.uuid4().hex
    claimed = db.query(Envelope).filter(
        Envelope.id == envelope_id,
        Envelope.status == StatusEnvelope.SENT
    ).update({
        Envelope.status: StatusEnvelope.PENDING_SEAL,
        Envelope.seal_started_at: now,
        Envelope.seal_attempt: attempt,
    }, synchronize_session=False)
    db.commit()
    if claimed != 1:
        raise SubmissionConflict()

    # 6. Sela o documento e grava os arquivos, em caminhos desta tentativa
    uploaded: List[str] = []
    try:
        template = await load_document(store, envelope.storage_path, envelope.pdf_url)

        stored_values = {}
        for field_id, value in values.items():
            if isinstance(value, bytes):
                path = document_path(company_id, "signatures", f"{request_id}_{attempt}_{field_id}.png")
                await store.put(path, value, "image/png")
                uploaded.append(path)
                stored_values[field_id] = path
            else:
                stored_values[field_id] = value

        sealed = seal_pdf(
            template,
            fields,
            values,
            CompletionCertificate(
                request_id=request_id,
                title=envelope.title,
                recipient_name=envelope.recipient_name,
                recipient_email=envelope.recipient_email,
                completed_at=now,
                ip=ip,
                user_agent=user_agent,
            ),
        )
        signed_path = document_path(company_id, "completed", f"{request_id}_{attempt}_signed.pdf")
        signed_url = await store.put(signed_path, sealed, "application/pdf")
        uploaded.append(signed_path)
    except Exception as exc:
        logging.exception(f"Sealing failed for envelope {request_id}")
        db.rollback()
        _release_seal(db, envelope_id, attempt)
        await _discard_uploads(store, uploaded)
        raise SealingFailure() from exc

    # 7. pending_seal -> signed junto com a URL e o registro de auditoria,
    # só se a reserva ainda for desta tentativa
    try:
        finished = db.query(Envelope).filter(
            Envelope.id == envelope_id,
            Envelope.status == StatusEnvelope.PENDING_SEAL,
            Envelope.seal_attempt == attempt
        ).update({
            Envelope.status: StatusEnvelope.SIGNED,
            Envelope.signed_pdf_url: signed_url,
            Envelope.signed_storage_path: signed_path,
            Envelope.field_values: stored_values,
            Envelope.signed_at: now,
        }, synchronize_session=False)

        # 8. Registro de auditoria
        if finished == 1:
            db.add(AuditRecord(
                envelope_id=envelope_id,
                ip=ip,
                client_ip=audit.ip,
                user_agent=user_agent,
                client_timestamp=audit.timestamp,
                server_timestamp=now,
                method=AUDIT_METHOD,
            ))
            db.commit()
    except Exception as exc:
        logging.exception(f"Could not finalize envelope {request_id}")
        db.rollback()
        _release_seal(db, envelope_id, attempt)
        await _discard_uploads(store, uploaded)
        raise SealingFailure() from exc

    if finished != 1:
        # A reserva foi liberada (selagem travada) e talvez outra submissão já assinou
        db.rollback()
        await _discard_uploads(store, uploaded)
        current = db.query(Envelope.status).filter(Envelope.id == envelope_id).scalar()
        logging.error(f"Envelope {request_id} lost its seal claim before sealing finished (now {current.value})")
        if current == StatusEnvelope.SIGNED:
            raise SubmissionConflict()
        raise SealingFailure()

    logging.info(f"Envelope {request_id} signed and sealed")
    return SubmitEnvelopeResult(success=True)
