"""TCP connect checks for hosts that drop ICMP."""

import asyncio
import logging
import socket

from .base import CheckPrimitive, CheckStatus, PendingCheck

logger = logging.getLogger(__name__)

# SMB, WinRM, WinRM/TLS, RPC, SSH
DEFAULT_PORTS = (445, 5985, 5986, 135, 22)


class TcpPendingCheck(PendingCheck):
    """Tries each port in turn; the first accepted connection wins."""

    def __init__(self, target: str, ports: tuple[int, ...]):
        super().__init__(target)
        self._ports = ports
        self._writer: asyncio.StreamWriter | None = None

    async def result(self) -> CheckStatus:
        refused = False
        for port in self._ports:
            try:
                _, self._writer = await asyncio.open_connection(self.target, port)
                return CheckStatus.REACHABLE
            except socket.gaierror:
                return CheckStatus.UNRESOLVED
            except ConnectionRefusedError:
                refused = True
            except OSError:
                continue
        return CheckStatus.REFUSED if refused else CheckStatus.UNREACHABLE

    async def release(self) -> None:
        writer = self._writer
        if writer is None:
            return
        self._writer = None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


class TcpCheckPrimitive(CheckPrimitive):
    """Issues TCP connect checks against a fixed list of ports."""

    name = "tcp"

    def __init__(self, ports: tuple[int, ...] | list[int] = DEFAULT_PORTS):
        if not ports:
            raise ValueError("TCP check needs at least one port")
        self.ports = tuple(int(p) for p in ports)

    def issue(self, target: str, timeout_s: float) -> PendingCheck:
        logger.debug(f"Issuing TCP check for {target} on ports {self.ports}")
        return TcpPendingCheck(target, self.ports)
