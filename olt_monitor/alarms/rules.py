"""
Alarm rule evaluation.

Pure functions mapping the latest samples of a device, or the current
state of a subscriber unit, to alarm evaluations. Every rule that applies
to a subject yields an evaluation whether or not its condition is met, so
the ledger can clear alarms whose condition went away.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from ..config import AlarmSettings
from ..devices.models import MetricKind, MetricSample, SignalQuality, SubscriberUnit, UnitStatus
from .models import AlarmEvaluation, AlarmKey, AlarmKind, AlarmSeverity

POOR_SIGNAL_QUALITIES = frozenset({SignalQuality.POOR, SignalQuality.FAIR})


@dataclass(frozen=True)
class ThresholdRule:
    """Two-tier threshold rule on a device metric."""
    kind: AlarmKind
    metric: MetricKind
    label: str
    unit: str
    warning_above: float
    critical_above: float

    def evaluate(self, device_id: UUID, value: float) -> AlarmEvaluation:
        """
        Evaluate a metric value.

        Args:
            device_id: Device the value belongs to.
            value: Latest metric value.

        Returns:
            AlarmEvaluation for the device-level subject.
        """
        key = AlarmKey(device_id, None, self.kind)

        if value > self.critical_above:
            severity = AlarmSeverity.CRITICAL
        elif value > self.warning_above:
            severity = AlarmSeverity.WARNING
        else:
            return AlarmEvaluation.not_met(key)

        return AlarmEvaluation(
            key=key,
            met=True,
            severity=severity,
            message=f"{self.label} is {value:g}{self.unit} - {severity.value}",
            value=f"{value:g}",
        )


def device_rules(settings: Optional[AlarmSettings] = None) -> List[ThresholdRule]:
    """Build the device-level threshold rules from settings."""
    settings = settings or AlarmSettings()
    return [
        ThresholdRule(
            kind=AlarmKind.HIGH_TEMP,
            metric=MetricKind.TEMPERATURE,
            label="Device temperature",
            unit="°C",
            warning_above=settings.temperature_warning,
            critical_above=settings.temperature_critical,
        ),
        ThresholdRule(
            kind=AlarmKind.HIGH_CPU,
            metric=MetricKind.CPU_USAGE,
            label="Device CPU usage",
            unit="%",
            warning_above=settings.cpu_warning,
            critical_above=settings.cpu_critical,
        ),
    ]


def evaluate_device_samples(
    device_id: UUID,
    latest: Dict[MetricKind, MetricSample],
    settings: Optional[AlarmSettings] = None,
) -> List[AlarmEvaluation]:
    """
    Evaluate device-level rules against the newest sample of each kind.

    Rules whose metric is absent from ``latest`` are not evaluated, so a
    sweep of one metric class never clears alarms owned by another.
    """
    evaluations = []
    for rule in device_rules(settings):
        sample = latest.get(rule.metric)
        if sample is None:
            continue
        evaluations.append(rule.evaluate(device_id, sample.value))
    return evaluations


def evaluate_unit(
    unit: SubscriberUnit,
    now: datetime,
    settings: Optional[AlarmSettings] = None,
) -> List[AlarmEvaluation]:
    """
    Evaluate the subscriber unit rules.

    Args:
        unit: Unit with its current status and signal fields.
        now: Evaluation time.
        settings: Alarm thresholds.

    Returns:
        One evaluation per unit rule.
    """
    settings = settings or AlarmSettings()
    evaluations = []

    los_key = AlarmKey(unit.device_id, unit.id, AlarmKind.LOSS_OF_SIGNAL)
    if unit.status == UnitStatus.LOSS_OF_SIGNAL:
        evaluations.append(AlarmEvaluation(
            key=los_key,
            met=True,
            severity=AlarmSeverity.CRITICAL,
            message=f"Unit {unit.label} has lost signal",
            value=unit.status.value,
        ))
    else:
        evaluations.append(AlarmEvaluation.not_met(los_key))

    signal_key = AlarmKey(unit.device_id, unit.id, AlarmKind.POOR_SIGNAL)
    if unit.signal_quality in POOR_SIGNAL_QUALITIES:
        evaluations.append(AlarmEvaluation(
            key=signal_key,
            met=True,
            severity=AlarmSeverity.WARNING,
            message=f"Unit {unit.label} has {unit.signal_quality.value} signal quality",
            value=unit.signal_quality.value,
        ))
    else:
        evaluations.append(AlarmEvaluation.not_met(signal_key))

    offline_key = AlarmKey(unit.device_id, unit.id, AlarmKind.UNIT_OFFLINE)
    hours_offline = _hours_since(unit.last_seen_at, now)
    if (
        unit.status == UnitStatus.OFFLINE
        and hours_offline is not None
        and hours_offline > settings.unit_offline_hours
    ):
        evaluations.append(AlarmEvaluation(
            key=offline_key,
            met=True,
            severity=AlarmSeverity.WARNING,
            message=f"Unit {unit.label} has been offline for {hours_offline:.1f} hours",
            value=f"{hours_offline:.1f}",
        ))
    else:
        evaluations.append(AlarmEvaluation.not_met(offline_key))

    return evaluations


def evaluate_staleness(
    device_id: UUID,
    age_seconds: Optional[float],
    max_age_seconds: float,
) -> AlarmEvaluation:
    """
    Evaluate the device OFFLINE rule.

    Args:
        device_id: Device ID.
        age_seconds: Seconds since the last successful poll, None if never.
        max_age_seconds: Age beyond which the device is offline.
    """
    key = AlarmKey(device_id, None, AlarmKind.OFFLINE)

    if age_seconds is not None and age_seconds <= max_age_seconds:
        return AlarmEvaluation.not_met(key)

    if age_seconds is None:
        message = "Device has never responded to polling"
    else:
        message = (
            f"Device has not responded to polling for more than "
            f"{max_age_seconds / 60:g} minutes"
        )

    return AlarmEvaluation(
        key=key,
        met=True,
        severity=AlarmSeverity.CRITICAL,
        message=message,
        value=f"{age_seconds:.0f}" if age_seconds is not None else None,
    )


def _hours_since(then: Optional[datetime], now: datetime) -> Optional[float]:
    if then is None:
        return None
    return (now - then).total_seconds() / 3600
