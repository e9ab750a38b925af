"""
Shared dependencies for the API.

The orchestrator (and with it the job registry and the entity caches) is a
process-wide singleton so progress can be polled from any request.
"""
import threading
from typing import Optional

from property_import.core.config import settings
from property_import.db.audit import SqlAlchemyAuditRecorder
from property_import.db.session import get_session_local
from property_import.db.store import SqlAlchemyEntityStore
from property_import.domain.imports.orchestrator import ImportOrchestrator

_orchestrator: Optional[ImportOrchestrator] = None
_orchestrator_lock = threading.Lock()


def build_orchestrator() -> ImportOrchestrator:
    session_factory = get_session_local()
    return ImportOrchestrator(
        store=SqlAlchemyEntityStore(session_factory),
        settings=settings,
        audit=SqlAlchemyAuditRecorder(session_factory),
    )


def get_orchestrator() -> ImportOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        with _orchestrator_lock:
            if _orchestrator is None:
                _orchestrator = build_orchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is not None:
            _orchestrator.registry.shutdown()
        _orchestrator = None
