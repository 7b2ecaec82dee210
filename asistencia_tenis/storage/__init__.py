from .local_store import LocalStore
from .draft_store import DraftStore, DRAFT_VERSION
from .pending_queue import PendingQueue

__all__ = ["LocalStore", "DraftStore", "DRAFT_VERSION", "PendingQueue"]
