"""
Audit trail collaborators.

Recording is fire-and-forget: a failing audit write is logged and never
propagates into the import that triggered it.
"""
import logging
from typing import Optional, Protocol

from sqlalchemy.orm import sessionmaker

from property_import.db.models import AuditLog

logger = logging.getLogger(__name__)


class AuditRecorder(Protocol):
    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        summary: Optional[str],
        user_id: str,
    ) -> None:
        ...


class LoggingAuditRecorder:
    """Audit recorder that only writes to the application log."""

    def record(self, action, entity_type, entity_id, summary, user_id) -> None:
        logger.info("AUDIT %s %s %s by %s: %s", action, entity_type, entity_id, user_id, summary)


class SqlAlchemyAuditRecorder:
    """Persists audit entries to the audit_logs table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record(self, action, entity_type, entity_id, summary, user_id) -> None:
        try:
            with self._session_factory() as session:
                session.add(
                    AuditLog(
                        action=action,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        summary=summary,
                        user_id=user_id,
                    )
                )
                session.commit()
        except Exception as exc:
            logger.warning("Unable to record audit entry for %s %s: %s", entity_type, entity_id, exc)
