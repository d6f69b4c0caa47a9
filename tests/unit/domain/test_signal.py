"""
Unit tests for optical signal classification.
"""
import pytest

from olt_monitor.devices import classify_rx_power
from olt_monitor.devices.models import SignalQuality


@pytest.mark.parametrize(
    "rx_power, expected",
    [
        (-18.0, SignalQuality.EXCELLENT),
        (-25.0, SignalQuality.EXCELLENT),
        (-25.01, SignalQuality.GOOD),
        (-28.0, SignalQuality.GOOD),
        (-29.5, SignalQuality.FAIR),
        (-30.0, SignalQuality.FAIR),
        (-30.01, SignalQuality.POOR),
        (-40.0, SignalQuality.POOR),
    ],
)
def test_classify_rx_power(rx_power, expected):
    assert classify_rx_power(rx_power) == expected


def test_missing_reading_is_unknown():
    assert classify_rx_power(None) == SignalQuality.UNKNOWN
