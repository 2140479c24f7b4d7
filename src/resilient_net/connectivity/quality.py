"""
Connectivity quality classification.

Pure functions over the latest network snapshot, the switching flag and
the last probe result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from resilient_net.types.network import AttachmentType, NetworkState, QualityClass

if TYPE_CHECKING:
    from resilient_net.connectivity.probe import ProbeResult

# Attachment hint thresholds
POOR_CELLULAR_GENERATIONS = frozenset({"2g"})
POOR_WIFI_STRENGTH = 30

# Probe latency thresholds in milliseconds
EXCELLENT_LATENCY_MS = 1000.0
GOOD_LATENCY_MS = 3000.0


def is_attachment_poor(state: NetworkState) -> bool:
    """Check the link-level hints of a snapshot.

    A cellular link reporting 2g, or a WiFi link reporting strength below
    30, is poor. Without hints, an unreachable internet counts as poor.
    """
    if state.attachment == AttachmentType.CELLULAR and state.cellular_generation:
        return state.cellular_generation.lower() in POOR_CELLULAR_GENERATIONS
    if state.attachment == AttachmentType.WIFI and state.wifi_strength is not None:
        return state.wifi_strength < POOR_WIFI_STRENGTH
    return state.internet_reachable is False


def classify_quality(
    state: NetworkState | None,
    *,
    switching: bool = False,
    last_probe: ProbeResult | None = None,
) -> QualityClass:
    """Classify connectivity quality.

    Args:
        state: Latest snapshot, or None before the first one arrives
        switching: Whether a failover run is in progress
        last_probe: Most recent probe result

    Returns:
        QualityClass
    """
    if state is None or not state.connected:
        return QualityClass.DISCONNECTED
    if switching:
        return QualityClass.SWITCHING
    if state.internet_reachable is False:
        return QualityClass.POOR
    if is_attachment_poor(state):
        return QualityClass.POOR

    if last_probe is not None and last_probe.success:
        if last_probe.latency_ms < EXCELLENT_LATENCY_MS:
            return QualityClass.EXCELLENT
        if last_probe.latency_ms < GOOD_LATENCY_MS:
            return QualityClass.GOOD
        return QualityClass.POOR

    return QualityClass.GOOD
