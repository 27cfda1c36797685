"""
Decision records and audit sinks.

The engine never persists decisions. It builds a DecisionRecord for each
check and hands it to an AuditSink; persisting is the sink's job. A sink
that fails is logged and otherwise ignored, so auditing can never change
an authorization outcome.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("rbac.audit")


@dataclass(frozen=True)
class DecisionRecord:
    """One allow/deny outcome, in a shape an audit service can store."""
    user_id: str
    action: str
    resource: str
    allowed: bool
    reason: str
    required_permission: str
    record_id: Optional[str] = None
    role_name: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AuditSink(Protocol):
    def record(self, decision: DecisionRecord) -> None: ...


class LoggingAuditSink:
    """Writes decisions to the 'rbac.audit' logger."""

    def record(self, decision: DecisionRecord) -> None:
        level = logging.DEBUG if decision.allowed else logging.INFO
        outcome = "allowed" if decision.allowed else "denied"
        audit_logger.log(
            level,
            f"Permission {outcome}: user={decision.user_id} "
            f"permission={decision.required_permission} reason={decision.reason}",
            extra={"decision": decision.to_dict()},
        )


class MemoryAuditSink:
    """Keeps decisions in a list. Useful in tests."""

    def __init__(self):
        self.records: List[DecisionRecord] = []

    def record(self, decision: DecisionRecord) -> None:
        self.records.append(decision)

    @property
    def denials(self) -> List[DecisionRecord]:
        return [r for r in self.records if not r.allowed]


def emit(sink: Optional[AuditSink], decision: DecisionRecord) -> None:
    """Hand a decision to the sink; sink failures are logged, not raised."""
    if sink is None:
        return
    try:
        sink.record(decision)
    except Exception as e:
        logger.warning(
            f"Audit sink failed: {e}",
            extra={"user_id": decision.user_id, "permission": decision.required_permission},
        )
