"""
Alarm module.

Provides alarm entities and rule evaluation. The dedup ledger lives in
``olt_monitor.alarms.ledger``.
"""
from .models import (
    Alarm,
    AlarmEvaluation,
    AlarmKey,
    AlarmKind,
    AlarmSeverity,
    AlarmTransition,
)
from .rules import (
    ThresholdRule,
    device_rules,
    evaluate_device_samples,
    evaluate_staleness,
    evaluate_unit,
)

__all__ = [
    "Alarm",
    "AlarmEvaluation",
    "AlarmKey",
    "AlarmKind",
    "AlarmSeverity",
    "AlarmTransition",
    "ThresholdRule",
    "device_rules",
    "evaluate_device_samples",
    "evaluate_staleness",
    "evaluate_unit",
]
