"""Repository providers and the request auth dependency.

Tests override the repository providers with the in-memory repositories.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from spac_os.auth import AuthContext, context_from_headers
from spac_os.models.base import get_db
from spac_os.repositories.base import (
    ApiKeyRepository,
    BillingRepository,
    IntegrationRepository,
    ScoreHistoryRepository,
    SpacRepository,
    TargetRepository,
    TeamRepository,
    api_key_context,
)
from spac_os.repositories.sql import (
    SqlApiKeyRepository,
    SqlBillingRepository,
    SqlIntegrationRepository,
    SqlScoreHistoryRepository,
    SqlSpacRepository,
    SqlTargetRepository,
    SqlTeamRepository,
)


def get_spac_repository(db: AsyncSession = Depends(get_db)) -> SpacRepository:
    return SqlSpacRepository(db)


def get_target_repository(db: AsyncSession = Depends(get_db)) -> TargetRepository:
    return SqlTargetRepository(db)


def get_score_history_repository(db: AsyncSession = Depends(get_db)) -> ScoreHistoryRepository:
    return SqlScoreHistoryRepository(db)


def get_team_repository(db: AsyncSession = Depends(get_db)) -> TeamRepository:
    return SqlTeamRepository(db)


def get_billing_repository(db: AsyncSession = Depends(get_db)) -> BillingRepository:
    return SqlBillingRepository(db)


def get_integration_repository(db: AsyncSession = Depends(get_db)) -> IntegrationRepository:
    return SqlIntegrationRepository(db)


def get_api_key_repository(db: AsyncSession = Depends(get_db)) -> ApiKeyRepository:
    return SqlApiKeyRepository(db)


async def get_auth_context(
    x_user_id: Optional[str] = Header(default=None),
    x_org_id: Optional[str] = Header(default=None),
    x_roles: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
    api_keys: ApiKeyRepository = Depends(get_api_key_repository),
) -> AuthContext:
    """An X-Api-Key header wins over the identity headers."""
    if x_api_key:
        api_key = await api_keys.verify(x_api_key.strip())
        if api_key is None:
            raise HTTPException(status_code=401, detail="Invalid or revoked API key")
        return api_key_context(api_key)
    return context_from_headers(x_user_id, x_org_id, x_roles)
