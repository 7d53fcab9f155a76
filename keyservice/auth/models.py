"""
Credential models.

This module defines:
- Credential, the immutable value handed to callers
- CredentialRecord, the SQLAlchemy model backing the SQL registry
"""
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base

ACCESS_KEY_ID_LENGTH = 20
SECRET_ACCESS_KEY_LENGTH = 40

Base = declarative_base()


@dataclass(frozen=True)
class Credential:
    """An access key / secret key pair bound to a user name."""
    name: str
    access_key_id: str
    secret_access_key: str


class CredentialRecord(Base):
    """Persistent form of a live credential."""
    __tablename__ = "credentials"

    name = Column(String(255), primary_key=True)
    access_key_id = Column(String(ACCESS_KEY_ID_LENGTH), unique=True, index=True, nullable=False)
    secret_access_key = Column(String(SECRET_ACCESS_KEY_LENGTH), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_credential(self) -> Credential:
        return Credential(
            name=self.name,
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
        )
