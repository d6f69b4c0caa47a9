"""
Alarm entities.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional
from uuid import UUID, uuid4


class AlarmSeverity(str, Enum):
    """Alarm severity levels."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class AlarmKind(str, Enum):
    """Alarm kinds raised by the engine."""
    HIGH_TEMP = "HIGH_TEMP"
    HIGH_CPU = "HIGH_CPU"
    LOSS_OF_SIGNAL = "LOS"
    POOR_SIGNAL = "POOR_SIGNAL"
    UNIT_OFFLINE = "UNIT_OFFLINE"
    OFFLINE = "OFFLINE"


class AlarmTransition(str, Enum):
    """Outcome of reconciling one evaluation with the ledger."""
    RAISED = "raised"
    ESCALATED = "escalated"
    CLEARED = "cleared"
    UNCHANGED = "unchanged"


class AlarmKey(NamedTuple):
    """Dedup key: the alarm subject (device, optional unit) and kind."""
    device_id: UUID
    unit_id: Optional[UUID]
    kind: AlarmKind


@dataclass
class Alarm:
    """
    A raised alarm.

    Alarms are cleared, never deleted. An alarm is open while
    ``cleared_at`` is None.
    """
    device_id: UUID
    severity: AlarmSeverity
    kind: AlarmKind
    message: str
    raised_at: datetime
    unit_id: Optional[UUID] = None
    value: Optional[str] = None
    cleared_at: Optional[datetime] = None
    id: UUID = field(default_factory=uuid4)

    @property
    def key(self) -> AlarmKey:
        return AlarmKey(self.device_id, self.unit_id, self.kind)

    @property
    def is_open(self) -> bool:
        return self.cleared_at is None

    def clear(self, now: datetime) -> None:
        """Mark the alarm as cleared."""
        self.cleared_at = now

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": str(self.id),
            "device_id": str(self.device_id),
            "unit_id": str(self.unit_id) if self.unit_id else None,
            "severity": self.severity.value,
            "kind": self.kind.value,
            "message": self.message,
            "value": self.value,
            "raised_at": self.raised_at.isoformat(),
            "cleared_at": self.cleared_at.isoformat() if self.cleared_at else None,
        }


@dataclass(frozen=True)
class AlarmEvaluation:
    """
    Result of evaluating one rule for one subject.

    ``severity`` and ``message`` are only meaningful when ``met`` is True.
    """
    key: AlarmKey
    met: bool
    severity: Optional[AlarmSeverity] = None
    message: str = ""
    value: Optional[str] = None

    @classmethod
    def not_met(cls, key: AlarmKey) -> "AlarmEvaluation":
        return cls(key=key, met=False)
