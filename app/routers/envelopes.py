from typing import List
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import SigningBaseException, convert_to_http_exception
from app.schemas.envelope import (
    AuditRecordOut,
    DownloadUrlOut,
    EnvelopeCreate,
    EnvelopeCreatedOut,
    EnvelopeDetailOut,
    EnvelopeOut,
    FieldSpec,
)
from app.services import envelope_service
from app.services.clock import SystemClock, get_clock
from app.services.storage_service import BlobStore, get_blob_store

router = APIRouter(prefix="/companies/{company_id}/envelopes", tags=["Envelopes"])

_fields_adapter = TypeAdapter(List[FieldSpec])


def _created_out(envelope) -> EnvelopeCreatedOut:
    return EnvelopeCreatedOut(
        **envelope_service.envelope_to_dict(envelope),
        signing_link=envelope_service.build_signing_link(
            envelope.company_id, envelope.request_id, envelope.access_token
        ),
    )


@router.post("", response_model=EnvelopeCreatedOut, status_code=status.HTTP_201_CREATED)
def create_envelope_endpoint(
    company_id: str,
    payload: EnvelopeCreate,
    db: Session = Depends(get_db),
    clock: SystemClock = Depends(get_clock),
):
    """
    Cria um envelope a partir de um PDF já acessível: URL pública ou caminho
    na pasta originals da empresa.
    Devolve o link de assinatura (com o token) para a empresa enviar.
    """
    try:
        url, storage_path = envelope_service.resolve_template_reference(company_id, payload.template_pdf_url)
        envelope = envelope_service.create_envelope(
            db,
            clock,
            company_id=company_id,
            title=payload.title,
            recipient_name=payload.recipient_name,
            recipient_email=payload.recipient_email,
            template_pdf_url=url,
            fields=payload.fields,
            storage_path=storage_path,
            dispatch=payload.dispatch,
        )
    except SigningBaseException as e:
        raise convert_to_http_exception(e)
    return _created_out(envelope)


@router.post("/upload", response_model=EnvelopeCreatedOut, status_code=status.HTTP_201_CREATED)
async def upload_envelope_endpoint(
    company_id: str,
    file: UploadFile = File(...),
    title: str = Form(None),
    recipient_name: str = Form(...),
    recipient_email: str = Form(...),
    fields: str = Form(..., description="JSON list of fields"),
    dispatch: bool = Form(True),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    clock: SystemClock = Depends(get_clock),
):
    try:
        field_specs = _fields_adapter.validate_json(fields)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors(include_url=False))
    if not field_specs:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please place at least one field.")

    try:
        # Campos inválidos não devem deixar o PDF órfão no storage
        envelope_service.validate_field_specs(field_specs)
        data = await file.read()
        storage_path, url = await envelope_service.upload_template(store, clock, company_id, file.filename, data)
    except SigningBaseException as e:
        raise convert_to_http_exception(e)

    envelope = envelope_service.create_envelope(
        db,
        clock,
        company_id=company_id,
        title=title or (file.filename or "Document").rsplit(".pdf", 1)[0],
        recipient_name=recipient_name,
        recipient_email=recipient_email,
        template_pdf_url=url,
        fields=field_specs,
        storage_path=storage_path,
        dispatch=dispatch,
    )
    return _created_out(envelope)


@router.get("", response_model=List[EnvelopeOut])
def list_envelopes_endpoint(company_id: str, db: Session = Depends(get_db)):
    return [
        EnvelopeOut(**envelope_service.envelope_to_dict(e))
        for e in envelope_service.list_envelopes(db, company_id)
    ]


@router.get("/{request_id}", response_model=EnvelopeDetailOut)
def get_envelope_endpoint(company_id: str, request_id: str, db: Session = Depends(get_db)):
    try:
        envelope = envelope_service.get_envelope(db, company_id, request_id)
    except SigningBaseException as e:
        raise convert_to_http_exception(e)
    audit = AuditRecordOut.model_validate(envelope.audit_record) if envelope.audit_record else None
    return EnvelopeDetailOut(**envelope_service.envelope_to_dict(envelope), audit_record=audit)


@router.post("/{request_id}/dispatch", response_model=EnvelopeCreatedOut)
def dispatch_envelope_endpoint(
    company_id: str,
    request_id: str,
    db: Session = Depends(get_db),
    clock: SystemClock = Depends(get_clock),
):
    """
    Envia um rascunho, ou reenvia um envelope gerando um link novo.
    O link anterior deixa de funcionar.
    """
    try:
        envelope = envelope_service.dispatch_envelope(db, clock, company_id, request_id)
    except SigningBaseException as e:
        raise convert_to_http_exception(e)
    return _created_out(envelope)


@router.get("/{request_id}/download", response_model=DownloadUrlOut)
async def download_envelope_endpoint(
    company_id: str,
    request_id: str,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
):
    try:
        url = await envelope_service.resolve_download_url(db, store, company_id, request_id)
    except SigningBaseException as e:
        raise convert_to_http_exception(e)
    return DownloadUrlOut(request_id=request_id, url=url)
