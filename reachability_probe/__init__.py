"""Reachability Probe service package."""

from .config import settings
from .directory import Directory, DirectoryError, DirectoryRecord
from .prober import (
    CheckOutcome,
    PlatformUnsupported,
    ProbeReport,
    ReachabilityProber,
    probe_reachability,
)
from .publisher import EventPublisher

__all__ = [
    "settings",
    "Directory",
    "DirectoryError",
    "DirectoryRecord",
    "CheckOutcome",
    "PlatformUnsupported",
    "ProbeReport",
    "ReachabilityProber",
    "probe_reachability",
    "EventPublisher",
]
