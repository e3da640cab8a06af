import enum
from datetime import datetime
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # O front-end (React) envia e espera camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class FieldType(str, enum.Enum):
    TEXT = "text"
    DATE = "date"
    CHECKBOX = "checkbox"
    SIGNATURE = "signature"


class FieldUnit(str, enum.Enum):
    PERCENT = "percent"
    PX = "px"


# Valor enviado pelo signatário: texto, data ISO, data URL PNG ou bool (checkbox)
FieldValue = Union[bool, str, None]


class FieldSpec(CamelModel):
    id: Optional[str] = None
    type: FieldType
    label: Optional[str] = None
    page_number: int = Field(1, ge=1)
    x_position: Optional[float] = 0
    y_position: Optional[float] = 0
    width: Optional[float] = 0
    height: Optional[float] = 0
    unit: Optional[FieldUnit] = None
    required: bool = True
    default_value: FieldValue = None
    read_only: bool = False


class EnvelopeCreate(CamelModel):
    title: str = Field(..., min_length=1, description="Document title shown to the recipient")
    recipient_name: str = Field(..., min_length=1)
    recipient_email: str = Field(..., min_length=3)
    template_pdf_url: str = Field(..., description="Public URL of the unsigned PDF, or its path under the company originals folder")
    fields: List[FieldSpec] = Field(..., min_length=1)
    dispatch: bool = Field(True, description="Send right away (status=sent) or keep as draft")

    @field_validator("fields")
    @classmethod
    def unique_field_ids(cls, fields: List[FieldSpec]) -> List[FieldSpec]:
        ids = [f.id for f in fields if f.id]
        if len(ids) != len(set(ids)):
            raise ValueError("field ids must be unique")
        return fields


class AuditRecordOut(CamelModel):
    ip: Optional[str] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    client_timestamp: Optional[str] = None
    server_timestamp: datetime
    method: str


class EnvelopeOut(CamelModel):
    company_id: str
    request_id: str
    title: str
    recipient_name: str
    recipient_email: str
    pdf_url: str
    status: str
    fields: List[FieldSpec]
    signed_pdf_url: Optional[str] = None
    storage_path: Optional[str] = None
    created_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None


class EnvelopeDetailOut(EnvelopeOut):
    audit_record: Optional[AuditRecordOut] = None


class EnvelopeCreatedOut(EnvelopeOut):
    # Só é devolvido para a empresa na criação/reenvio
    signing_link: str


class DownloadUrlOut(CamelModel):
    request_id: str
    url: str


class RecoveredSealsOut(CamelModel):
    recovered: List[str]
