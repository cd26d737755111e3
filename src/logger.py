# logger.py
import logging
import os
import time


class LogicalClockFilter(logging.Filter):
    """A filter that adds logical clock information to log records

    Clocks are replaced rather than mutated, so the filter holds the clock's
    owner (anything with a ``clock`` attribute) and reads it at emit time.
    """

    def __init__(self, source):
        super().__init__()
        self.source = source

    def filter(self, record):
        record.logical_clock = str(self.source.clock)
        return True


def setup_logger(
    process_id,
    clock_source,
    log_level=logging.INFO,
    file_mode="w",
    log_dir=None,
):
    logger = logging.getLogger(f"Process_{process_id}")
    logger.setLevel(log_level)
    logger.propagate = False

    # Clear any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    for existing in logger.filters[:]:
        logger.removeFilter(existing)

    logger.addFilter(LogicalClockFilter(clock_source))

    if log_dir is None:
        handler = logging.StreamHandler()
    else:
        os.makedirs(log_dir, exist_ok=True)
        log_file_name = os.path.join(
            log_dir, f"process_log_{time.strftime('%Y-%m-%d_%H-%M')}_{process_id}.txt"
        )
        handler = logging.FileHandler(log_file_name, mode=file_mode)
    handler.setLevel(log_level)

    formatter = logging.Formatter(
        " %(message)s | %(asctime)s | %(levelname)s | [LogicalClock: %(logical_clock)s]"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger
