"""Scripted check primitive for dry runs and tests."""

import asyncio

from .base import CheckPrimitive, CheckStatus, PendingCheck


class FakePendingCheck(PendingCheck):
    """Pending check that settles as scripted."""

    def __init__(self, primitive: "FakeCheckPrimitive", target: str):
        super().__init__(target)
        self._primitive = primitive

    async def result(self) -> CheckStatus:
        p = self._primitive
        p.in_flight += 1
        p.max_in_flight = max(p.max_in_flight, p.in_flight)
        try:
            delay = p.delays.get(self.target, 0.0)
            if delay:
                await asyncio.sleep(delay)

            status = p.script.get(self.target, p.default)
            if status == "timeout":
                # never answers; the caller's deadline settles it
                await asyncio.Event().wait()
            if status == "error":
                raise OSError(f"scripted failure for {self.target}")
            return CheckStatus(status)
        finally:
            p.in_flight -= 1

    async def release(self) -> None:
        p = self._primitive
        p.released.append(self.target)
        if self.target in p.release_errors:
            raise RuntimeError(f"scripted release failure for {self.target}")


class FakeCheckPrimitive(CheckPrimitive):
    """
    script: dict[target] -> status name ("reachable", "timeout", "unresolved",
    "unreachable", "refused", or "error" to raise inside the check).
    Targets missing from the script settle as ``default``.
    delays: dict[target] -> seconds to wait before settling.
    release_errors: targets whose release() raises.
    """

    name = "fake"

    def __init__(
        self,
        script: dict[str, str] | None = None,
        default: str = "reachable",
        delays: dict[str, float] | None = None,
        release_errors: set[str] | None = None,
        supported: bool = True,
    ):
        self.script = dict(script or {})
        self.default = default
        self.delays = dict(delays or {})
        self.release_errors = set(release_errors or ())
        self.supported = supported

        self.issued: list[str] = []
        self.released: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def is_supported(self) -> bool:
        return self.supported

    def issue(self, target: str, timeout_s: float) -> PendingCheck:
        self.issued.append(target)
        return FakePendingCheck(self, target)
