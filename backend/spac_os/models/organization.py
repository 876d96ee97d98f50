"""Organization administration: team, billing, integrations, API keys."""
from sqlalchemy import Column, Integer, String, DateTime, Float, JSON, Enum

from spac_os.models.base import Base
from spac_os.services.common import utcnow
from spac_os.services.vocabulary import TeamRole


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=True)  # set once the invite is accepted
    email = Column(String(320), nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(Enum(TeamRole), default=TeamRole.member, nullable=False)
    status = Column(String(32), default="invited", nullable=False)  # invited|active
    invited_at = Column(DateTime, default=utcnow)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, unique=True)
    plan = Column(String(32), default="starter", nullable=False)  # starter|professional|enterprise
    status = Column(String(32), default="active", nullable=False)
    seats = Column(Integer, default=5, nullable=True)  # None means unlimited
    current_period_end = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    number = Column(String(64), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    status = Column(String(32), default="paid", nullable=False)  # paid|open|void
    issued_at = Column(DateTime, default=utcnow)


class Integration(Base):
    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    provider = Column(String(64), nullable=False)  # sec_edgar|slack|google_drive|...
    status = Column(String(32), default="connected", nullable=False)  # connected|disconnected
    config_json = Column(JSON, default=dict)
    connected_at = Column(DateTime, default=utcnow)


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(64), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    prefix = Column(String(16), nullable=False)  # shown in listings
    key_hash = Column(String(64), nullable=False, unique=True)  # sha256 hex, secret never stored
    permissions = Column(JSON, default=list)  # ["read", "write"]
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    revoked_at = Column(DateTime, nullable=True)
