"""Append-only AI scoring results per target."""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from spac_os.models.base import Base
from spac_os.services.common import utcnow


class ScoreHistoryEntry(Base):
    __tablename__ = "score_history"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    target_id = Column(Integer, ForeignKey("targets.id"), nullable=False, index=True)

    overall_score = Column(Integer, nullable=False)  # 0-100
    # Category scores stored on the 0-100 scale
    management_score = Column(Integer, nullable=True)
    market_score = Column(Integer, nullable=True)
    financial_score = Column(Integer, nullable=True)
    operational_score = Column(Integer, nullable=True)
    transaction_score = Column(Integer, nullable=True)
    thesis = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    target = relationship("Target", back_populates="score_history")
