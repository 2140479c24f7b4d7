"""Tests for quality classification."""

import time

import pytest

from resilient_net.connectivity.probe import ProbeResult
from resilient_net.connectivity.quality import classify_quality, is_attachment_poor
from resilient_net.types import AttachmentType, NetworkState, QualityClass


def _probe(success: bool, latency_ms: float) -> ProbeResult:
    return ProbeResult(success=success, latency_ms=latency_ms, timestamp=time.time())


class TestIsAttachmentPoor:
    """Tests for is_attachment_poor."""

    @pytest.mark.parametrize(
        ("state", "poor"),
        [
            (NetworkState.online(AttachmentType.CELLULAR, cellular_generation="2g"), True),
            (NetworkState.online(AttachmentType.CELLULAR, cellular_generation="2G"), True),
            (NetworkState.online(AttachmentType.CELLULAR, cellular_generation="4g"), False),
            (NetworkState.online(AttachmentType.WIFI, wifi_strength=29), True),
            (NetworkState.online(AttachmentType.WIFI, wifi_strength=30), False),
            (NetworkState.online(AttachmentType.ETHERNET), False),
            (
                NetworkState(attachment=AttachmentType.OTHER, connected=True, internet_reachable=False),
                True,
            ),
        ],
    )
    def test_hints(self, state: NetworkState, poor: bool) -> None:
        """Link hints decide, falling back to reachability."""
        assert is_attachment_poor(state) is poor


class TestClassifyQuality:
    """Tests for classify_quality."""

    def test_no_state(self) -> None:
        """Before the first snapshot the host counts as disconnected."""
        assert classify_quality(None) == QualityClass.DISCONNECTED

    def test_disconnected_wins_over_switching(self) -> None:
        """No link is disconnected even while switching."""
        assert classify_quality(NetworkState.disconnected(), switching=True) == QualityClass.DISCONNECTED

    def test_switching(self) -> None:
        """A connected host mid-failover is switching."""
        assert classify_quality(NetworkState.online(), switching=True) == QualityClass.SWITCHING

    def test_unreachable_is_poor(self) -> None:
        """Connected but cut off is poor."""
        state = NetworkState(attachment=AttachmentType.WIFI, connected=True, internet_reachable=False)
        assert classify_quality(state) == QualityClass.POOR

    def test_weak_wifi_is_poor(self) -> None:
        """Weak WiFi is poor regardless of probe."""
        state = NetworkState.online(AttachmentType.WIFI, wifi_strength=10)
        assert classify_quality(state, last_probe=_probe(True, 50)) == QualityClass.POOR

    def test_no_probe_is_good(self) -> None:
        """A healthy link without a probe is good."""
        assert classify_quality(NetworkState.online()) == QualityClass.GOOD

    @pytest.mark.parametrize(
        ("latency", "expected"),
        [
            (50.0, QualityClass.EXCELLENT),
            (1500.0, QualityClass.GOOD),
            (5000.0, QualityClass.POOR),
        ],
    )
    def test_probe_latency(self, latency: float, expected: QualityClass) -> None:
        """Successful probe latency refines the class."""
        assert classify_quality(NetworkState.online(), last_probe=_probe(True, latency)) == expected

    def test_failed_probe_ignored(self) -> None:
        """A failed probe does not downgrade a connected link."""
        assert classify_quality(NetworkState.online(), last_probe=_probe(False, 10000)) == QualityClass.GOOD
