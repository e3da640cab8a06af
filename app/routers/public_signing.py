import logging
from typing import Optional, Type
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import InvalidArgument, SigningBaseException
from app.schemas.public_signing import PublicEnvelopeRequest, SubmitEnvelopeRequest
from app.services.clock import SystemClock, get_clock
from app.services.public_signing_service import get_public_envelope, submit_public_envelope
from app.services.storage_service import BlobStore, get_blob_store

router = APIRouter(tags=["Public Signing"])


async def parse_callable_data(request: Request, model: Type[BaseModel]):
    """
    Lê o corpo no formato callable ({"data": {...}}). Também aceita o
    objeto direto, sem o envelope "data".
    """
    try:
        body = await request.json()
    except ValueError:
        raise InvalidArgument("Missing data payload.")
    if isinstance(body, dict) and "data" in body:
        body = body["data"]
    if not isinstance(body, dict):
        raise InvalidArgument("Missing data payload.")
    try:
        return model.model_validate(body)
    except ValidationError:
        raise InvalidArgument("Missing parameters.")


def resolve_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/getPublicEnvelope")
async def get_public_envelope_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
):
    """
    Leitura pública do envelope pelo link com token.
    Nunca expõe nada além de título, destinatário, PDF e campos.
    """
    payload = await parse_callable_data(request, PublicEnvelopeRequest)
    try:
        view = await get_public_envelope(db, store, payload.company_id, payload.request_id, payload.access_token)
    except SigningBaseException:
        raise
    except Exception:
        logging.exception("Error in getPublicEnvelope")
        raise SigningBaseException("Internal error.")
    return {"result": view.model_dump(by_alias=True, mode="json")}


@router.post("/submitPublicEnvelope")
async def submit_public_envelope_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    clock: SystemClock = Depends(get_clock),
):
    """
    Recebe os valores preenchidos, sela o documento e grava a auditoria.
    Só a primeira submissão válida é aceita.
    """
    payload = await parse_callable_data(request, SubmitEnvelopeRequest)
    try:
        result = await submit_public_envelope(
            db,
            store,
            clock,
            payload,
            transport_ip=resolve_client_ip(request),
            transport_user_agent=request.headers.get("user-agent"),
        )
    except SigningBaseException:
        raise
    except Exception:
        logging.exception("Error in submitPublicEnvelope")
        raise SigningBaseException("Internal error.")
    return {"result": result.model_dump(by_alias=True, mode="json")}
