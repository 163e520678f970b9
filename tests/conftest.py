"""Pytest configuration for reachability-probe tests."""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path))

LOCAL_HOST = "probe-host.corp.example"


@pytest.fixture
def fake_primitive():
    """Create a fake check primitive where every host answers."""
    from reachability_probe.checks import FakeCheckPrimitive

    return FakeCheckPrimitive()


@pytest.fixture
def make_prober():
    """Factory for probers with a fixed local host name."""
    from reachability_probe.prober import ReachabilityProber

    def _make(primitive, **kwargs):
        kwargs.setdefault("local_host", LOCAL_HOST)
        kwargs.setdefault("per_check_timeout_ms", 1000)
        return ReachabilityProber(primitive, **kwargs)

    return _make
