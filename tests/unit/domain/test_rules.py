"""
Unit tests for alarm rule evaluation.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from olt_monitor.alarms import (
    AlarmKey,
    AlarmKind,
    AlarmSeverity,
    ThresholdRule,
    evaluate_device_samples,
    evaluate_staleness,
    evaluate_unit,
)
from olt_monitor.config import AlarmSettings
from olt_monitor.devices.models import MetricKind, SignalQuality, UnitStatus

from tests.factories import MetricSampleFactory, SubscriberUnitFactory

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temperature_rule():
    return ThresholdRule(
        kind=AlarmKind.HIGH_TEMP,
        metric=MetricKind.TEMPERATURE,
        label="Device temperature",
        unit="°C",
        warning_above=55.0,
        critical_above=70.0,
    )


@pytest.fixture
def unit():
    return SubscriberUnitFactory(device_id=uuid4(), port_id=uuid4(), serial_number="HWTC0001")


class TestThresholdRule:
    """Test two-tier threshold rules."""

    def test_below_warning(self, temperature_rule):
        evaluation = temperature_rule.evaluate(uuid4(), 42.0)
        assert evaluation.met is False

    def test_at_warning_threshold_not_met(self, temperature_rule):
        assert temperature_rule.evaluate(uuid4(), 55.0).met is False

    def test_warning(self, temperature_rule):
        device_id = uuid4()

        evaluation = temperature_rule.evaluate(device_id, 60.0)

        assert evaluation.met is True
        assert evaluation.severity == AlarmSeverity.WARNING
        assert evaluation.key == AlarmKey(device_id, None, AlarmKind.HIGH_TEMP)
        assert evaluation.message == "Device temperature is 60°C - warning"
        assert evaluation.value == "60"

    def test_critical(self, temperature_rule):
        evaluation = temperature_rule.evaluate(uuid4(), 75.0)

        assert evaluation.severity == AlarmSeverity.CRITICAL
        assert evaluation.message == "Device temperature is 75°C - critical"


class TestEvaluateDeviceSamples:
    """Test device-level evaluation of the newest samples."""

    def test_only_rules_with_samples(self):
        device_id = uuid4()
        latest = {
            MetricKind.TEMPERATURE: MetricSampleFactory(
                device_id=device_id, kind=MetricKind.TEMPERATURE, value=72.0,
            ),
        }

        evaluations = evaluate_device_samples(device_id, latest, AlarmSettings())

        assert len(evaluations) == 1
        assert evaluations[0].key.kind == AlarmKind.HIGH_TEMP
        assert evaluations[0].severity == AlarmSeverity.CRITICAL

    def test_cpu_rule(self):
        device_id = uuid4()
        latest = {
            MetricKind.CPU_USAGE: MetricSampleFactory(
                device_id=device_id, kind=MetricKind.CPU_USAGE, value=85.0,
            ),
            MetricKind.MEMORY_USAGE: MetricSampleFactory(
                device_id=device_id, kind=MetricKind.MEMORY_USAGE, value=99.0,
            ),
        }

        evaluations = evaluate_device_samples(device_id, latest, AlarmSettings())

        assert [e.key.kind for e in evaluations] == [AlarmKind.HIGH_CPU]
        assert evaluations[0].severity == AlarmSeverity.WARNING

    def test_custom_thresholds(self):
        device_id = uuid4()
        latest = {
            MetricKind.TEMPERATURE: MetricSampleFactory(
                device_id=device_id, kind=MetricKind.TEMPERATURE, value=60.0,
            ),
        }
        settings = AlarmSettings(temperature_warning=65, temperature_critical=75)

        assert evaluate_device_samples(device_id, latest, settings)[0].met is False

    def test_no_samples(self):
        assert evaluate_device_samples(uuid4(), {}, AlarmSettings()) == []


class TestEvaluateUnit:
    """Test subscriber unit rules."""

    def test_healthy_unit(self, unit):
        evaluations = evaluate_unit(unit, NOW, AlarmSettings())

        assert len(evaluations) == 3
        assert all(not e.met for e in evaluations)
        assert {e.key.kind for e in evaluations} == {
            AlarmKind.LOSS_OF_SIGNAL,
            AlarmKind.POOR_SIGNAL,
            AlarmKind.UNIT_OFFLINE,
        }

    def test_loss_of_signal(self, unit):
        unit.status = UnitStatus.LOSS_OF_SIGNAL

        los = evaluate_unit(unit, NOW)[0]

        assert los.met is True
        assert los.severity == AlarmSeverity.CRITICAL
        assert los.key == AlarmKey(unit.device_id, unit.id, AlarmKind.LOSS_OF_SIGNAL)
        assert "HWTC0001" in los.message

    @pytest.mark.parametrize("quality", [SignalQuality.POOR, SignalQuality.FAIR])
    def test_poor_signal(self, unit, quality):
        unit.signal_quality = quality

        signal = evaluate_unit(unit, NOW)[1]

        assert signal.met is True
        assert signal.severity == AlarmSeverity.WARNING
        assert signal.value == quality.value

    @pytest.mark.parametrize("quality", [SignalQuality.GOOD, SignalQuality.UNKNOWN])
    def test_acceptable_signal(self, unit, quality):
        unit.signal_quality = quality
        assert evaluate_unit(unit, NOW)[1].met is False

    def test_offline_beyond_threshold(self, unit):
        unit.status = UnitStatus.OFFLINE
        unit.last_seen_at = NOW - timedelta(hours=25)

        offline = evaluate_unit(unit, NOW)[2]

        assert offline.met is True
        assert offline.severity == AlarmSeverity.WARNING
        assert offline.value == "25.0"

    def test_offline_within_threshold(self, unit):
        unit.status = UnitStatus.OFFLINE
        unit.last_seen_at = NOW - timedelta(hours=23)

        assert evaluate_unit(unit, NOW)[2].met is False

    def test_offline_never_seen(self, unit):
        unit.status = UnitStatus.OFFLINE
        unit.last_seen_at = None

        assert evaluate_unit(unit, NOW)[2].met is False

    def test_online_unit_long_unseen(self, unit):
        unit.status = UnitStatus.ONLINE
        unit.last_seen_at = NOW - timedelta(days=3)

        assert evaluate_unit(unit, NOW)[2].met is False


class TestEvaluateStaleness:
    """Test the device offline rule."""

    def test_fresh(self):
        assert evaluate_staleness(uuid4(), 540.0, 600.0).met is False

    def test_at_limit(self):
        assert evaluate_staleness(uuid4(), 600.0, 600.0).met is False

    def test_stale(self):
        device_id = uuid4()

        evaluation = evaluate_staleness(device_id, 660.0, 600.0)

        assert evaluation.met is True
        assert evaluation.severity == AlarmSeverity.CRITICAL
        assert evaluation.key == AlarmKey(device_id, None, AlarmKind.OFFLINE)
        assert "10 minutes" in evaluation.message

    def test_never_polled(self):
        evaluation = evaluate_staleness(uuid4(), None, 600.0)

        assert evaluation.met is True
        assert evaluation.value is None
