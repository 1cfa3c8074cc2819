import time

import msgspec
from loguru import logger


__all__ = ["Timings", "timer"]


class Timings(msgspec.Struct, frozen=True):
    """Wall-clock span of one measured block, in `time.perf_counter` seconds."""

    begin: float
    end: float
    delta: float


class timer:
    def __init__(self, message: str, log_start=False, level="INFO"):
        self.message = message
        self.log_start = log_start
        self.level = level
        self.start_time = 0.0
        self.end_time = 0.0

    def __enter__(self):
        # Record the start time
        if self.log_start:
            logger.log(self.level, f"{self.message} - started")
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.end_time = time.perf_counter()
        # Only successful blocks report a completion
        if exc_type is None:
            logger.log(self.level, f"{self.message} - completed ({self.elapsed:.4f} seconds)")

    @property
    def elapsed(self):
        # type: () -> float
        return self.end_time - self.start_time

    @property
    def timings(self):
        # type: () -> Timings
        return Timings(begin=self.start_time, end=self.end_time, delta=self.elapsed)
