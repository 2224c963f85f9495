"""
Audit Logger

DESIGN DECISION: Every persistence and sync step is logged.
This provides:
1. Traceability of what reached local storage and the cloud
2. Debugging capability when a save or an upload fails
3. A record of restores and account resets

The audit logger:
- Is async so it can sit on the same code paths as storage calls
- Never raises (logging must not break a save or a sync)
- Binds the session's account id to every event when known
"""

from typing import Optional

import structlog

from bita_ledger.models.audit import AuditEvent, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Events are written to the structured local log. Keeps the last
    events in memory so a session can show what just happened.
    """

    def __init__(self, account_id: Optional[str] = None, history_size: int = 200):
        self._account_id = account_id
        self._history_size = history_size
        self._history: list[AuditEvent] = []
        self._logger = structlog.get_logger("bita_ledger.audit")

    def bind_account(self, account_id: Optional[str]) -> None:
        """Attach (or detach) the signed-in account to subsequent events."""
        self._account_id = account_id

    @property
    def recent_events(self) -> list[AuditEvent]:
        return list(self._history)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written; never raises.
        """
        if event.account_id is None and self._account_id is not None:
            event = event.model_copy(update={"account_id": self._account_id})

        self._history.append(event)
        if len(self._history) > self._history_size:
            del self._history[0]

        try:
            log_dict = event.to_log_dict()
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False
        return True
