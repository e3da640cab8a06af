from typing import Dict, List, Optional
from pydantic import Field

from app.schemas.envelope import CamelModel, FieldSpec, FieldValue


class PublicEnvelopeRequest(CamelModel):
    company_id: str = Field(..., min_length=1)
    request_id: str = Field(..., min_length=1)
    access_token: str = Field(..., min_length=1)


class AuditData(CamelModel):
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: Optional[str] = None


class SubmitEnvelopeRequest(PublicEnvelopeRequest):
    field_values: Dict[str, FieldValue] = Field(default_factory=dict)
    audit_data: AuditData = Field(default_factory=AuditData)


class PublicEnvelopeView(CamelModel):
    """O que o signatário anônimo pode ver. Nada além disso sai do gateway."""
    title: str
    recipient_name: str
    recipient_email: str
    pdf_url: str
    fields: List[FieldSpec]
    status: str


class SubmitEnvelopeResult(CamelModel):
    success: bool = True
