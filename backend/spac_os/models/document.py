"""Data room documents and SEC filings attached to a SPAC."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship

from spac_os.models.base import Base
from spac_os.services.common import utcnow
from spac_os.services.vocabulary import DocumentStatus, DocumentType, FilingStatus


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    spac_id = Column(Integer, ForeignKey("spacs.id"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("documents.id"), nullable=True)  # containing folder
    name = Column(String(300), nullable=False)
    type = Column(Enum(DocumentType), default=DocumentType.file, nullable=False)
    status = Column(Enum(DocumentStatus), default=DocumentStatus.DRAFT, nullable=False)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(120), nullable=True)
    version = Column(Integer, default=1, nullable=False)
    is_latest = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    spac = relationship("Spac", back_populates="documents")


class Filing(Base):
    __tablename__ = "filings"
    __table_args__ = (UniqueConstraint("spac_id", "accession_number", name="uq_filing_accession"),)

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    spac_id = Column(Integer, ForeignKey("spacs.id"), nullable=False, index=True)
    form_type = Column(String(32), nullable=False)  # S-1|8-K|10-Q|DEFM14A|...
    filed_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)
    status = Column(Enum(FilingStatus), default=FilingStatus.DRAFT, nullable=False)
    accession_number = Column(String(32), nullable=True)
    edgar_url = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    spac = relationship("Spac", back_populates="filings")
