from .inmemory_investigation_store import InMemoryInvestigationStore
from .redis_investigation_store import RedisInvestigationStore

__all__ = ["InMemoryInvestigationStore", "RedisInvestigationStore"]
