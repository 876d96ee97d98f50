"""Translate domain errors into HTTP responses."""
from fastapi import HTTPException

from spac_os.auth import PermissionDeniedError
from spac_os.log import get_logger
from spac_os.repositories.base import ConflictError, NotFoundError, PlanLimitError
from spac_os.services.cap_table import CapTableInvariantError
from spac_os.services.deal_scorer import DealScoreParseError
from spac_os.services.edgar import EdgarClientError
from spac_os.services.llm.types import LLMOrchestrationError
from spac_os.services.pipeline_stages import IllegalTransitionError
from spac_os.services.vocabulary import InvalidVocabularyError

logger = get_logger(__name__)

DOMAIN_ERRORS = (
    ValueError,
    LookupError,
    PermissionError,
    LLMOrchestrationError,
    EdgarClientError,
)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, IllegalTransitionError):
        logger.warning("Rejected transition: %s", exc)
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (PlanLimitError, ConflictError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InvalidVocabularyError):
        logger.warning("Vocabulary violation: %s=%r", exc.vocabulary, exc.value)
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, CapTableInvariantError):
        return HTTPException(status_code=422, detail={"message": "Cap table invariants violated", "issues": exc.issues})
    if isinstance(exc, LLMOrchestrationError):
        if exc.not_configured:
            return HTTPException(status_code=503, detail="AI scoring is not configured")
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, (EdgarClientError, DealScoreParseError)):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=422, detail=str(exc))
    logger.error("Unmapped domain error %s: %s", exc.__class__.__name__, exc)
    return HTTPException(status_code=500, detail="Internal error")
