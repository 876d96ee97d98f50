from sqlalchemy import Column, Integer, String, DateTime, Float, JSON, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship

from spac_os.models.base import Base
from spac_os.services.common import utcnow
from spac_os.services.vocabulary import TargetStage


class Target(Base):
    """A business-combination candidate in a SPAC's deal pipeline."""
    __tablename__ = "targets"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    spac_id = Column(Integer, ForeignKey("spacs.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    industry = Column(String(120), nullable=True)
    sector = Column(String(120), nullable=True)
    description = Column(Text, nullable=True)
    website = Column(String(500), nullable=True)

    stage = Column(Enum(TargetStage), default=TargetStage.sourcing, nullable=False)

    # Valuation and latest evaluation
    enterprise_value = Column(Float, nullable=True)
    revenue = Column(Float, nullable=True)
    ebitda = Column(Float, nullable=True)
    evaluation_score = Column(Float, nullable=True)  # 0-100, latest overall score

    # Extra scoring context: management_team, competitors, known_risks, ...
    profile_json = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    spac = relationship("Spac", back_populates="targets")
    score_history = relationship("ScoreHistoryEntry", back_populates="target", cascade="all, delete-orphan")
