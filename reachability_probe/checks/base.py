"""Base interface for non-blocking reachability checks."""

from abc import ABC, abstractmethod
from enum import Enum


class CheckStatus(str, Enum):
    """Final state of a settled check."""

    REACHABLE = "reachable"
    TIMEOUT = "timeout"
    UNRESOLVED = "unresolved"
    UNREACHABLE = "unreachable"
    REFUSED = "refused"
    ERROR = "error"
    CANCELLED = "cancelled"


class PendingCheck(ABC):
    """One issued check against a single target.

    The check owns its underlying resource (subprocess, socket stream).
    The prober calls ``release()`` exactly once, whatever the outcome.
    """

    def __init__(self, target: str):
        self.target = target

    @abstractmethod
    async def result(self) -> CheckStatus:
        """
        Wait for the check to settle.

        The caller enforces the deadline by cancelling this coroutine, so
        implementations must leave the resource in a releasable state when
        cancelled.

        Returns:
            Final status of the check
        """
        pass

    @abstractmethod
    async def release(self) -> None:
        """Release the underlying resource."""
        pass


class CheckPrimitive(ABC):
    """Factory for pending checks."""

    name: str = "base"

    def is_supported(self) -> bool:
        """Whether this primitive can issue checks on the current host."""
        return True

    @abstractmethod
    def issue(self, target: str, timeout_s: float) -> PendingCheck:
        """
        Issue a check without blocking.

        Args:
            target: Host identifier to check
            timeout_s: Per-check deadline, passed on as a hint to the
                underlying tool

        Returns:
            PendingCheck correlated with ``target``
        """
        pass
