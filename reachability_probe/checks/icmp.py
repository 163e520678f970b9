"""ICMP echo checks via the system ping binary."""

import asyncio
import logging
import math
import shutil
import sys

from .base import CheckPrimitive, CheckStatus, PendingCheck

logger = logging.getLogger(__name__)

DEFAULT_PING_BIN = "ping"

# Resolver failures as reported by iputils, busybox, BSD and Windows ping
_UNRESOLVED_MARKERS = (
    "unknown host",
    "name or service not known",
    "temporary failure in name resolution",
    "no address associated",
    "cannot resolve",
    "could not find host",
    "bad address",
)


def build_ping_command(
    ping_bin: str, target: str, timeout_s: float, platform: str = sys.platform
) -> list[str]:
    """Build a single-echo ping command line for the given platform."""
    timeout_ms = max(1, int(timeout_s * 1000))
    if platform.startswith("win"):
        return [ping_bin, "-n", "1", "-w", str(timeout_ms), target]
    if platform == "darwin":
        # BSD ping takes -W in milliseconds
        return [ping_bin, "-n", "-c", "1", "-W", str(timeout_ms), target]
    # iputils/busybox want whole seconds; the caller's deadline is the real bound
    return [ping_bin, "-n", "-c", "1", "-W", str(max(1, math.ceil(timeout_s))), target]


def classify_ping(returncode: int, output: str) -> CheckStatus:
    """Map a finished ping run to a check status."""
    lowered = output.lower()
    if any(marker in lowered for marker in _UNRESOLVED_MARKERS):
        return CheckStatus.UNRESOLVED
    if returncode == 0:
        # Windows ping exits 0 on "Destination host unreachable" replies
        if "unreachable" in lowered:
            return CheckStatus.UNREACHABLE
        return CheckStatus.REACHABLE
    if returncode == 1:
        return CheckStatus.UNREACHABLE
    return CheckStatus.ERROR


class IcmpPendingCheck(PendingCheck):
    """A ping subprocess for one target."""

    def __init__(self, target: str, command: list[str]):
        super().__init__(target)
        self._command = command
        self._proc: asyncio.subprocess.Process | None = None

    async def result(self) -> CheckStatus:
        # Never let a target be parsed as a ping option
        if not self.target or self.target.startswith("-"):
            return CheckStatus.UNRESOLVED

        spawn = asyncio.ensure_future(
            asyncio.create_subprocess_exec(
                *self._command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        )
        try:
            self._proc = await asyncio.shield(spawn)
        except asyncio.CancelledError:
            # The spawn still finishes; hand the process to release()
            await asyncio.wait({spawn})
            if not spawn.cancelled() and spawn.exception() is None:
                self._proc = spawn.result()
            raise
        stdout, _ = await self._proc.communicate()
        output = stdout.decode("utf-8", errors="ignore") if stdout else ""
        return classify_ping(self._proc.returncode, output)

    async def release(self) -> None:
        proc = self._proc
        if proc is None:
            return
        self._proc = None
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()


class IcmpCheckPrimitive(CheckPrimitive):
    """Issues ICMP echo checks by spawning the system ping binary.

    Requires ``ping`` on PATH; raw sockets would need root.
    """

    name = "icmp"

    def __init__(self, ping_bin: str = DEFAULT_PING_BIN):
        self.ping_bin = ping_bin

    def is_supported(self) -> bool:
        return shutil.which(self.ping_bin) is not None

    def issue(self, target: str, timeout_s: float) -> PendingCheck:
        command = build_ping_command(self.ping_bin, target, timeout_s)
        logger.debug(f"Issuing ICMP check for {target}")
        return IcmpPendingCheck(target, command)
