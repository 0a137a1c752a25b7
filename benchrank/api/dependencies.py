"""
Dependency injection for the BenchRank API.

One store, orchestrator and query service per process. The orchestrator
must be shared so that its run state reflects every request.
"""

import logging
from typing import Optional

from benchrank.computation.orchestrator import RankingOrchestrator
from benchrank.computation.supervisor import LockSupervisor
from benchrank.config.settings import get_settings
from benchrank.database.base import RankingStore
from benchrank.database.memory import InMemoryRankingStore
from benchrank.database.mongodb import initialize_mongo_store
from benchrank.projections.queries import RankingQueryService

logger = logging.getLogger(__name__)


# =============================================================================
# Store
# =============================================================================

_store: Optional[RankingStore] = None


def get_store() -> RankingStore:
    """
    Get the ranking store for the configured backend.

    Raises:
        RuntimeError: If the MongoDB backend cannot connect
    """
    global _store

    if _store is None:
        settings = get_settings()
        if settings.storage_backend == "mongodb":
            store = initialize_mongo_store(settings.mongodb_uri, settings.db_name)
            if not store.connected:
                raise RuntimeError("Failed to connect to database")
            _store = store
        else:
            _store = InMemoryRankingStore()
        logger.info(f"Using {settings.storage_backend} ranking store")

    return _store


def set_store(store: Optional[RankingStore]) -> None:
    """Install a store (or None to reset); drops dependent singletons."""
    global _store, _orchestrator, _query_service, _supervisor
    _store = store
    _orchestrator = None
    _query_service = None
    _supervisor = None


def is_store_connected() -> bool:
    try:
        store = get_store()
    except RuntimeError:
        return False
    return getattr(store, "connected", True)


# =============================================================================
# Services
# =============================================================================

_orchestrator: Optional[RankingOrchestrator] = None
_query_service: Optional[RankingQueryService] = None
_supervisor: Optional[LockSupervisor] = None


def get_orchestrator() -> RankingOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RankingOrchestrator(get_store(), get_settings().ranking_params())
    return _orchestrator


def get_query_service() -> RankingQueryService:
    global _query_service
    if _query_service is None:
        _query_service = RankingQueryService(get_store())
    return _query_service


def get_supervisor() -> LockSupervisor:
    global _supervisor
    if _supervisor is None:
        _supervisor = LockSupervisor(get_store(), get_settings().run_lock_stale_seconds)
    return _supervisor


def cleanup():
    """Clean up all resources."""
    global _store
    if _store is not None and hasattr(_store, "disconnect"):
        _store.disconnect()
    set_store(None)
