from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class StatusEnvelope(enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PENDING_SEAL = "pending_seal"
    SIGNED = "signed"

class Envelope(Base):
    __tablename__ = "envelopes"
    __table_args__ = (
        UniqueConstraint("company_id", "request_id", name="uq_envelopes_company_request"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, nullable=False, index=True)
    request_id = Column(String, nullable=False, index=True)
    access_token = Column(String, nullable=False)
    title = Column(String, nullable=False)
    recipient_name = Column(String, nullable=False)
    recipient_email = Column(String, nullable=False)
    pdf_url = Column(String, nullable=False)  # modelo original, nunca alterado
    storage_path = Column(String, nullable=True)  # caminho do modelo no Cloudinary, se estiver lá
    status = Column(Enum(StatusEnvelope), nullable=False, default=StatusEnvelope.SENT)
    fields = Column(JSON, nullable=False, default=list)
    field_values = Column(JSON, nullable=True)  # só é gravado na selagem
    signed_pdf_url = Column(String, nullable=True)
    signed_storage_path = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    seal_started_at = Column(DateTime(timezone=True), nullable=True)
    seal_attempt = Column(String, nullable=True)  # id da submissão que segura o pending_seal
    signed_at = Column(DateTime(timezone=True), nullable=True)

    audit_record = relationship("AuditRecord", back_populates="envelope", uselist=False, cascade="all, delete-orphan")
