"""Concurrent host reachability prober.

Fans out one non-blocking check per target, waits for every check to
settle, and reports the targets that answered. Individual host failures
never raise; the caller only sees a shorter result list. The only hard
failure is ``PlatformUnsupported``, raised before any check is issued.
"""

import asyncio
import ipaddress
import logging
import socket
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence
from uuid import uuid4

from . import metrics
from .checks import CheckPrimitive, CheckStatus, IcmpCheckPrimitive, PendingCheck
from .directory import Directory

logger = logging.getLogger(__name__)

# asyncio.timeout() arrived in 3.11
MIN_RUNTIME_VERSION = (3, 11)

DEFAULT_CONCURRENCY_LIMIT = 100
DEFAULT_PER_CHECK_TIMEOUT_MS = 120


class PlatformUnsupported(Exception):
    """The runtime cannot issue non-blocking reachability checks."""


@dataclass
class CheckOutcome:
    """Settled state of the check issued for one target."""

    target: str
    completed: bool = False
    succeeded: bool = False
    status: CheckStatus = CheckStatus.CANCELLED
    rtt_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "completed": self.completed,
            "succeeded": self.succeeded,
            "status": self.status.value,
            "rtt_ms": self.rtt_ms,
        }


@dataclass
class ProbeReport:
    """Outcome of one probe invocation, in issuance order."""

    probe_id: str
    outcomes: list[CheckOutcome] = field(default_factory=list)
    issued: int = 0
    released: int = 0
    duration_ms: float = 0.0

    @property
    def reachable(self) -> list[str]:
        """Targets whose check completed and succeeded."""
        return [o.target for o in self.outcomes if o.completed and o.succeeded]

    def status_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for outcome in self.outcomes:
            counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1
        return counts


def short_hostname(name: str) -> str:
    s = (name or "").strip().rstrip(".")
    if not s:
        return ""
    return s.split(".", 1)[0]


def _ip_or_none(name: str):
    try:
        return ipaddress.ip_address((name or "").strip())
    except ValueError:
        return None


class ReachabilityProber:
    """Probes a set of hosts concurrently.

    Concurrency is bounded by ``concurrency_limit`` outstanding checks.
    Each check gets its own ``per_check_timeout_ms`` deadline; the optional
    ``overall_timeout_ms`` bounds the whole invocation.
    """

    def __init__(
        self,
        primitive: CheckPrimitive,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        per_check_timeout_ms: int = DEFAULT_PER_CHECK_TIMEOUT_MS,
        local_host: str | None = None,
        overall_timeout_ms: int | None = None,
        runtime_version: Sequence[int] | None = None,
    ):
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be a positive integer")
        if per_check_timeout_ms <= 0:
            raise ValueError("per_check_timeout_ms must be positive")

        self.primitive = primitive
        self.concurrency_limit = concurrency_limit
        self.per_check_timeout_s = per_check_timeout_ms / 1000.0
        self.overall_timeout_s = (
            overall_timeout_ms / 1000.0 if overall_timeout_ms else None
        )
        self.local_host = local_host if local_host is not None else socket.gethostname()
        self._runtime_version = tuple(
            runtime_version if runtime_version is not None else sys.version_info[:2]
        )

    def ensure_supported(self) -> None:
        """Raise PlatformUnsupported if no check can be issued here."""
        if self._runtime_version[:2] < MIN_RUNTIME_VERSION:
            required = ".".join(str(v) for v in MIN_RUNTIME_VERSION)
            found = ".".join(str(v) for v in self._runtime_version[:2])
            raise PlatformUnsupported(
                f"Python {required} or newer is required for reachability checks "
                f"(running {found})"
            )
        if not self.primitive.is_supported():
            raise PlatformUnsupported(
                f"{self.primitive.name} checks are not available on this host"
            )

    def is_local(self, target: str) -> bool:
        """Match addresses exactly and DNS names by short name."""
        local_ip = _ip_or_none(self.local_host)
        target_ip = _ip_or_none(target)
        if local_ip is not None or target_ip is not None:
            return local_ip is not None and local_ip == target_ip

        local = short_hostname(self.local_host).casefold()
        return bool(local) and short_hostname(target).casefold() == local

    def filter_targets(self, targets: Iterable[str]) -> list[str]:
        """Drop the local host; keep order and duplicates."""
        return [t for t in targets if not self.is_local(t)]

    async def probe(
        self,
        targets: Iterable[str],
        cancel_event: asyncio.Event | None = None,
    ) -> ProbeReport:
        """
        Check every target and wait for all checks to settle.

        Args:
            targets: Host identifiers, in issuance order
            cancel_event: Setting this event stops the probe early; checks
                still outstanding are released and reported as cancelled

        Returns:
            ProbeReport with one outcome per non-local target

        Raises:
            PlatformUnsupported: Before any check is issued
        """
        self.ensure_supported()
        _reject_bare_string(targets)

        report = ProbeReport(probe_id=str(uuid4()))
        filtered = self.filter_targets(targets)
        if not filtered:
            logger.info(f"Probe {report.probe_id}: no targets to check")
            return report

        logger.info(
            f"Starting probe {report.probe_id}: {len(filtered)} targets via "
            f"{self.primitive.name} (limit {self.concurrency_limit}, "
            f"timeout {self.per_check_timeout_s * 1000:.0f}ms)"
        )
        started = time.monotonic()
        report.outcomes = [CheckOutcome(target=t) for t in filtered]

        # Semaphore waiters are woken FIFO, so issuance follows input order
        semaphore = asyncio.Semaphore(self.concurrency_limit)
        tasks = [
            asyncio.create_task(self._run_check(semaphore, report, index))
            for index in range(len(filtered))
        ]
        try:
            await self._wait_all(report, tasks, cancel_event)
        finally:
            outstanding = [t for t in tasks if not t.done()]
            for task in outstanding:
                task.cancel()
            if outstanding:
                await asyncio.wait(outstanding)

        report.duration_ms = round((time.monotonic() - started) * 1000, 3)
        for outcome in report.outcomes:
            metrics.CHECKS_TOTAL.labels(status=outcome.status.value).inc()
        metrics.PROBE_RUNS_TOTAL.inc()
        metrics.PROBE_DURATION_SECONDS.observe(report.duration_ms / 1000.0)

        logger.info(
            f"Probe {report.probe_id} finished in {report.duration_ms:.0f}ms: "
            f"{len(report.reachable)}/{len(filtered)} reachable {report.status_counts()}"
        )
        return report

    async def _wait_all(
        self,
        report: ProbeReport,
        tasks: list[asyncio.Task],
        cancel_event: asyncio.Event | None,
    ) -> None:
        fan_in = asyncio.gather(*tasks, return_exceptions=True)
        waiters: set[asyncio.Future] = {fan_in}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.overall_timeout_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()
                await asyncio.wait({cancel_waiter})

        if fan_in in done:
            return
        if cancel_waiter is not None and cancel_waiter in done:
            logger.warning(f"Probe {report.probe_id} cancelled by caller")
        else:
            logger.warning(
                f"Probe {report.probe_id} hit overall deadline of "
                f"{self.overall_timeout_s:.3f}s"
            )

    async def _run_check(
        self, semaphore: asyncio.Semaphore, report: ProbeReport, index: int
    ) -> None:
        outcome = report.outcomes[index]
        async with semaphore:
            started = time.monotonic()
            try:
                pending = self.primitive.issue(outcome.target, self.per_check_timeout_s)
            except Exception as e:
                logger.debug(f"Could not issue check for {outcome.target}: {e}")
                outcome.completed = True
                outcome.status = CheckStatus.ERROR
                return

            report.issued += 1
            metrics.CHECKS_IN_FLIGHT.inc()
            try:
                status = await self._settle(pending)
                outcome.completed = True
                outcome.status = status
                outcome.succeeded = status is CheckStatus.REACHABLE
                outcome.rtt_ms = round((time.monotonic() - started) * 1000, 3)
                logger.debug(f"Check for {outcome.target} settled: {status.value}")
            finally:
                await self._release(pending, report)
                metrics.CHECKS_IN_FLIGHT.dec()

    async def _settle(self, pending: PendingCheck) -> CheckStatus:
        try:
            async with asyncio.timeout(self.per_check_timeout_s):
                return await pending.result()
        except TimeoutError:
            return CheckStatus.TIMEOUT
        except Exception as e:
            logger.debug(
                f"Check for {pending.target} failed: {type(e).__name__}: {e}"
            )
            return CheckStatus.ERROR

    async def _release(self, pending: PendingCheck, report: ProbeReport) -> None:
        try:
            await pending.release()
        except Exception as e:
            logger.warning(
                f"Failed to release check for {pending.target}: "
                f"{type(e).__name__}: {e}"
            )
        finally:
            report.released += 1


def _reject_bare_string(targets) -> None:
    if isinstance(targets, (str, bytes)):
        raise TypeError("targets must be a collection of host names, not a string")


async def resolve_targets(
    targets: Iterable[str] | None,
    directory: Directory | None,
    name_filter: str = "*",
) -> list[str]:
    """Use explicit targets, or fall back to the directory's computer names."""
    if targets is not None:
        _reject_bare_string(targets)
        return list(targets)
    if directory is None:
        raise ValueError("Either targets or a directory is required")

    loop = asyncio.get_running_loop()
    records = await loop.run_in_executor(None, directory.lookup, name_filter)
    return [r.name for r in records]


async def probe_reachability(
    targets: Iterable[str] | None = None,
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    per_check_timeout_ms: int = DEFAULT_PER_CHECK_TIMEOUT_MS,
    *,
    primitive: CheckPrimitive | None = None,
    directory: Directory | None = None,
    name_filter: str = "*",
    local_host: str | None = None,
    overall_timeout_ms: int | None = None,
    cancel_event: asyncio.Event | None = None,
) -> list[str]:
    """
    Return the targets that answered a reachability check.

    When ``targets`` is None the names come from ``directory``.
    Defaults to ICMP checks via the system ping binary.
    """
    prober = ReachabilityProber(
        primitive if primitive is not None else IcmpCheckPrimitive(),
        concurrency_limit=concurrency_limit,
        per_check_timeout_ms=per_check_timeout_ms,
        local_host=local_host,
        overall_timeout_ms=overall_timeout_ms,
    )
    # Fail before touching the directory or the network
    prober.ensure_supported()
    names = await resolve_targets(targets, directory, name_filter)
    report = await prober.probe(names, cancel_event=cancel_event)
    return report.reachable
