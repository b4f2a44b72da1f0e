"""Polling helpers for clients without push notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional

from .config import PollingConfig
from .contracts import RunResult, RunStatus
from .controller import RunController
from .errors import PollTimeout

logger = logging.getLogger(__name__)

SETTLED = (RunStatus.SUSPENDED, RunStatus.COMPLETED, RunStatus.FAILED)


class RunPoller:
    """Poll ``status`` at a fixed interval with a bounded number of attempts.

    Running out of attempts raises :class:`PollTimeout`, which is a
    client-side condition: the run itself may still finish later.
    """

    def __init__(
        self,
        controller: RunController,
        interval: float = PollingConfig().interval,
        max_attempts: int = PollingConfig().max_attempts,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._controller = controller
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    @classmethod
    def from_config(cls, controller: RunController, config: PollingConfig) -> "RunPoller":
        return cls(controller, interval=config.interval, max_attempts=config.max_attempts)

    async def wait_for(
        self,
        run_id: str,
        statuses: Iterable[RunStatus] = SETTLED,
        step_id: Optional[str] = None,
    ) -> RunResult:
        """Return the first status whose ``status`` is in ``statuses``.

        When ``step_id`` is given, a suspended run only matches if it is
        suspended at that step.
        """
        wanted = set(statuses)
        for attempt in range(1, self.max_attempts + 1):
            result = await self._controller.status(run_id)
            if result.status in wanted and (
                step_id is None
                or result.status != RunStatus.SUSPENDED
                or result.current_step_id == step_id
            ):
                return result
            logger.debug(
                f"Run {run_id} is {result.status.value} (attempt {attempt}/{self.max_attempts})"
            )
            if attempt < self.max_attempts:
                await self._sleep(self.interval)
        raise PollTimeout(
            f"Run {run_id} did not reach {sorted(s.value for s in wanted)} "
            f"after {self.max_attempts} attempts",
            attempts=self.max_attempts,
        )
