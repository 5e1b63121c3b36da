"""응답 경로 밖에서 도는 부수 작업 실행기.

기록 저장과 이벤트 발행은 응답을 막지 않지만 실패를 삼키지도 않는다.
실패는 logger.exception 으로 남기고 failures 에 모아 둔다.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BackgroundFailure:
    name: str
    error: BaseException


class BackgroundTaskRunner:
    def __init__(self, max_failures: int = 100) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._max_failures = max_failures
        self.failures: list[BackgroundFailure] = []

    def submit(self, name: str, func: Callable[..., Any], *args: Any) -> asyncio.Task[Any]:
        """동기 함수를 스레드에서 실행하는 백그라운드 태스크를 등록한다."""
        task = asyncio.create_task(self._run(name, func, *args), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, func: Callable[..., Any], *args: Any) -> None:
        try:
            await asyncio.to_thread(func, *args)
        except Exception as exc:  # noqa: BLE001
            logger.exception("background task %s failed", name)
            self.failures.append(BackgroundFailure(name=name, error=exc))
            if len(self.failures) > self._max_failures:
                del self.failures[: len(self.failures) - self._max_failures]

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """등록된 태스크가 끝날 때까지 기다린다 (종료 시, 테스트에서 사용)."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("%d background tasks still running after drain", len(pending))
