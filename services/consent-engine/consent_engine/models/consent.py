from sqlalchemy import Column, String, DateTime, Text, Integer, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from consent_engine.db.base import Base

class ConsentRow(Base):
    __tablename__ = "consents"

    id = Column(Text, primary_key=True)                     # urn:<brand>:<uuid>
    client_id = Column(Text, nullable=False, index=True)
    user_identifier = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, index=True) # AWAITING_AUTHORISATION, AUTHORISED, REJECTED
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    # Full serialized Consent (permissions, rejection, extensions, resources)
    document = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    version = Column(Integer, nullable=False, default=1)

Index("idx_consents_user_identifier", ConsentRow.user_identifier)
Index("idx_consents_created_at", ConsentRow.created_at)
