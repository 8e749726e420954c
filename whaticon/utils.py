import time
from loguru import logger


__all__ = ["timer"]


class timer:
    """Log the wall time of a block. The measured value is kept in ``elapsed``."""

    def __init__(self, message: str, log_start=False, level="INFO"):
        self.message = message
        self.log_start = log_start
        self.level = level
        self.elapsed = 0.0

    def __enter__(self):
        if self.log_start:
            logger.log(self.level, f"{self.message} - started")
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.elapsed = time.perf_counter() - self.start_time
        if exc_type is not None:
            logger.log(self.level, f"{self.message} - failed after {self.elapsed:.4f} seconds")
            return
        logger.log(self.level, f"{self.message} - completed ({self.elapsed:.4f} seconds)")
