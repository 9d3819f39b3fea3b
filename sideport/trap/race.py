"""Racing capture strategies.

Each strategy is a coroutine factory returning a handle, or ``None`` when
it gave up without one. :func:`first_success` runs them concurrently and
keeps the first handle; everything still running is cancelled.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from sideport.core.errors import AcquisitionFailure
from sideport.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Strategy:
    """A named way of obtaining a handle."""
    name: str
    run: Callable[[], Awaitable[Any]]


async def first_success(strategies: Sequence[Strategy]) -> tuple[str, Any]:
    """Return ``(strategy name, handle)`` of the first strategy to succeed.

    Raises:
        AcquisitionFailure: every strategy finished without a handle.
    """
    if not strategies:
        raise AcquisitionFailure("No capture strategy available")

    tasks = {asyncio.ensure_future(strategy.run()): strategy.name for strategy in strategies}
    pending = set(tasks)
    errors: dict[str, Any] = {}

    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            # Settle in declaration order so simultaneous finishes are deterministic.
            for task in sorted(done, key=lambda t: list(tasks).index(t)):
                name = tasks[task]
                if task.cancelled():
                    errors[name] = "cancelled"
                    continue
                error = task.exception()
                if error is not None:
                    errors[name] = error
                    continue
                handle = task.result()
                if handle is not None:
                    return name, handle
                errors[name] = "no handle"
    finally:
        for task in pending:
            task.cancel()

    raise AcquisitionFailure("All capture strategies failed", errors=errors)


class CaptureState(str, Enum):
    IDLE = "idle"
    RACING = "racing"
    CAPTURED = "captured"
    ABANDONED = "abandoned"


class AcquisitionRace:
    """Captures one handle through the first strategy that finds it."""

    def __init__(self, what: str, strategies: Sequence[Strategy]):
        self.what = what
        self._strategies = list(strategies)
        self.state = CaptureState.IDLE
        self.handle: Any = None
        self.winner: Optional[str] = None
        self.captures = 0

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    async def run(self) -> Any:
        """Race the strategies and return the captured handle.

        Raises:
            AcquisitionFailure: no strategy produced a handle; the race is
                abandoned and never retried.
        """
        if self.state is CaptureState.CAPTURED:
            return self.handle
        if self.state is not CaptureState.IDLE:
            raise RuntimeError(f"Race for {self.what} is already {self.state.value}")

        self.state = CaptureState.RACING
        try:
            name, handle = await first_success(self._strategies)
        except AcquisitionFailure:
            self.state = CaptureState.ABANDONED
            raise

        self._capture(name, handle)
        return self.handle

    def _capture(self, name: str, handle: Any) -> None:
        if self.state is CaptureState.CAPTURED:
            return
        self.state = CaptureState.CAPTURED
        self.handle = handle
        self.winner = name
        self.captures += 1
        logger.handle_captured(self.what, name)
