import time
from contextlib import contextmanager
from typing import Any, Iterator

from loguru import logger


class StageTimer:
    """
    Optional per stage durations for a multi step operation, e.g.

        timer = StageTimer('upload', enabled=settings.UPLOAD_TIMING)
        with timer.stage('prepare'):
            ...
        timer.log(user_id=user_id)
    """

    def __init__(self, name: str, enabled: bool = False) -> None:
        self.name = name
        self.enabled = enabled
        self.durations_ms: dict[str, float] = {}

    @contextmanager
    def stage(self, stage_name: str) -> Iterator[None]:
        if not self.enabled:
            yield
            return

        start = time.perf_counter()
        try:
            yield
        finally:
            self.durations_ms[stage_name] = round((time.perf_counter() - start) * 1000, 2)

    def log(self, **extra: Any) -> None:
        if not self.enabled:
            return
        logger.bind(stages_ms=self.durations_ms, **extra).info(f'{self.name} timing')
