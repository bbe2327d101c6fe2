import logging
import json
import time
import threading
from datetime import datetime

import numpy as np


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": threading.current_thread().name,
            "thread_id": threading.get_ident(),
        }

        # Add extra fields if present
        if hasattr(record, 'extra_data'):
            log_entry.update(record.extra_data)

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


COMPONENTS = ['mesh', 'metric', 'geometry', 'interpolation', 'coordinates', 'operators', 'spectral', 'io']


def setup_logging(level=logging.INFO, log_file=None):
    """Setup structured JSON logging for the geometry components."""
    logger = logging.getLogger('fluxcoords')
    logger.setLevel(level)

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = JSONFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    for comp in COMPONENTS:
        comp_logger = logging.getLogger(f'fluxcoords.{comp}')
        comp_logger.setLevel(level)
        comp_logger.propagate = True

    return logger


class Timer:
    def __init__(self, name=""):
        self.name = name
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    def elapsed_ms(self):
        if self.start_time is None:
            return 0.0
        return (time.perf_counter() - self.start_time) * 1000


def array_stats(arr, name=""):
    """Compute min, max, mean over the finite entries of an array."""
    if arr is None or arr.size == 0:
        return {"name": name, "min": None, "max": None, "mean": None, "shape": None}

    finite = arr[np.isfinite(arr)]
    return {
        "name": name,
        "min": float(np.min(finite)) if finite.size > 0 else None,
        "max": float(np.max(finite)) if finite.size > 0 else None,
        "mean": float(np.mean(finite)) if finite.size > 0 else None,
        "n_nonfinite": int(arr.size - finite.size),
        "shape": list(arr.shape),
    }
