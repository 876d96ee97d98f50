from spac_os.models.base import Base
from spac_os.models.spac import Spac
from spac_os.models.target import Target
from spac_os.models.task import Task
from spac_os.models.document import Document, Filing
from spac_os.models.score_history import ScoreHistoryEntry
from spac_os.models.organization import ApiKey, Integration, Invoice, Subscription, TeamMember

__all__ = [
    "Base", "Spac", "Target", "Task", "Document", "Filing", "ScoreHistoryEntry",
    "TeamMember", "Subscription", "Invoice", "Integration", "ApiKey",
]
