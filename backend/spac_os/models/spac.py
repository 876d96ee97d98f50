"""SPAC vehicles and their lifecycle state."""
from sqlalchemy import Column, Integer, String, DateTime, Float, Enum
from sqlalchemy.orm import relationship

from spac_os.models.base import Base
from spac_os.services.common import utcnow
from spac_os.services.vocabulary import SpacPhase, SpacStatus


class Spac(Base):
    __tablename__ = "spacs"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    ticker = Column(String(20), nullable=True)
    cik = Column(String(10), nullable=True)  # SEC identifier, zero-padded

    status = Column(Enum(SpacStatus), default=SpacStatus.draft, nullable=False)
    phase = Column(Enum(SpacPhase), default=SpacPhase.formation, nullable=True)

    # Key dates; deadline_date must not precede ipo_date
    ipo_date = Column(DateTime, nullable=True)
    deadline_date = Column(DateTime, nullable=True)
    vote_date = Column(DateTime, nullable=True)
    term_months = Column(Integer, default=24, nullable=False)
    extension_months = Column(Integer, default=0, nullable=False)

    # Trust account
    trust_amount = Column(Float, nullable=True)
    shares_outstanding = Column(Integer, nullable=True)  # public shares backing the trust
    redemption_rate = Column(Float, nullable=True)  # 0-1 fraction

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    targets = relationship("Target", back_populates="spac", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="spac", cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="spac", cascade="all, delete-orphan")
    filings = relationship("Filing", back_populates="spac", cascade="all, delete-orphan")
