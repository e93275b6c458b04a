"""FastAPI dependency injection."""

from functools import lru_cache

from loanledger.config import settings
from loanledger.data.store import LiabilityStore, make_session_factory


@lru_cache
def get_store() -> LiabilityStore:
    return LiabilityStore(make_session_factory(settings.database_url, echo=settings.debug))
