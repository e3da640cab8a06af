from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

class AuditRecord(Base):
    __tablename__ = "audit_records"

    id = Column(Integer, primary_key=True, index=True)
    envelope_id = Column(Integer, ForeignKey("envelopes.id"), nullable=False, unique=True)
    ip = Column(String, nullable=True)  # resolvido pelo transporte
    client_ip = Column(String, nullable=True)  # informado pelo navegador, apenas informativo
    user_agent = Column(String, nullable=True)
    client_timestamp = Column(String, nullable=True)
    server_timestamp = Column(DateTime(timezone=True), nullable=False)
    method = Column(String, nullable=False, default="Public Secure Link")

    envelope = relationship("Envelope", back_populates="audit_record")
