from .base import Base
from .error_code import ErrorCode
from .session import DeclutterSession, SCENARIOS, SESSION_STATUSES, TRADE_METHODS
from .item import Item, DECISIONS, ITEM_STATUSES
from .item_photo import ItemPhoto
from .listing import Listing, LANGUAGES, TONES
from .challenge_task import ChallengeTask, TASK_SOURCES

__all__ = [
    "Base",
    "ErrorCode",
    "DeclutterSession",
    "Item",
    "ItemPhoto",
    "Listing",
    "ChallengeTask",
    "SCENARIOS",
    "SESSION_STATUSES",
    "TRADE_METHODS",
    "DECISIONS",
    "ITEM_STATUSES",
    "LANGUAGES",
    "TONES",
    "TASK_SOURCES",
]
