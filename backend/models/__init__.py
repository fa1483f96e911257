from .user import User
from .event_cache import CachedEvent
from .sync_state import UserSyncState
from .transcript import AIStatus, Transcript

__all__ = ["User", "CachedEvent", "UserSyncState", "AIStatus", "Transcript"]
