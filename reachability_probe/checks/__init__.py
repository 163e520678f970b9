"""Reachability check primitives."""

from .base import CheckPrimitive, CheckStatus, PendingCheck
from .fake import FakeCheckPrimitive
from .icmp import IcmpCheckPrimitive
from .tcp import TcpCheckPrimitive

__all__ = [
    "CheckPrimitive",
    "CheckStatus",
    "PendingCheck",
    "FakeCheckPrimitive",
    "IcmpCheckPrimitive",
    "TcpCheckPrimitive",
    "build_primitive",
]


def build_primitive(method: str, tcp_ports: list[int] | None = None) -> CheckPrimitive:
    """Create the check primitive named by ``method``."""
    method = (method or "").strip().lower()
    if method == "icmp":
        return IcmpCheckPrimitive()
    if method == "tcp":
        if tcp_ports:
            return TcpCheckPrimitive(tcp_ports)
        return TcpCheckPrimitive()
    raise ValueError(f"Unsupported check method: {method}")
