"""
Optical signal classification.
"""
from typing import Optional

from .models import SignalQuality

# Minimum receive power (dBm) for each quality band
EXCELLENT_MIN_DBM = -25.0
GOOD_MIN_DBM = -28.0
FAIR_MIN_DBM = -30.0


def classify_rx_power(rx_power: Optional[float]) -> SignalQuality:
    """
    Map a receive power reading to a signal quality band.

    Args:
        rx_power: Receive power in dBm, or None if not reported.

    Returns:
        SignalQuality for the reading.
    """
    if rx_power is None:
        return SignalQuality.UNKNOWN
    if rx_power >= EXCELLENT_MIN_DBM:
        return SignalQuality.EXCELLENT
    if rx_power >= GOOD_MIN_DBM:
        return SignalQuality.GOOD
    if rx_power >= FAIR_MIN_DBM:
        return SignalQuality.FAIR
    return SignalQuality.POOR
