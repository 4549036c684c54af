"""Logging setup and operation metrics for Notura Store.

``NoturaService`` operations are wrapped with :func:`traced`, which logs a
START/END pair sharing a short correlation id and feeds the process-wide
:data:`metrics` collector. The CLI points the collector at a JSON file and
saves it on exit; library users opt in with ``metrics.set_metrics_file``.
"""
import functools
import inspect
import json
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".notura" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".notura" / "metrics.json"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Arguments that identify the entity an operation works on, in lookup order
_TRACE_KEYS = ("id", "note_id", "collection_id", "image_id")

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the ``notura`` logger hierarchy to a rotating ``notura.log``.

    Args:
        log_dir: Directory for log files. Defaults to ~/.notura/logs/
        level: Level for the ``notura`` logger and its handlers.
        max_bytes: Rotate once the file reaches this size (default 10 MB).
        backup_count: Rotated files to keep.
        console: Also attach a stderr handler (added at most once).

    Returns:
        The log directory.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    store_logger = logging.getLogger("notura")
    store_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "notura.log"
    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    store_logger.addHandler(file_handler)

    has_console = any(
        type(handler) is logging.StreamHandler for handler in store_logger.handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        store_logger.addHandler(console_handler)

    store_logger.info(f"Logging to {log_file} (rotating at {max_bytes} bytes, keeping {backup_count})")
    return log_path


@dataclass
class OperationMetrics:
    """Running totals for one store operation (create_note, search, ...)."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float("inf")
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "avg_duration_ms": round(self.total_duration_ms / self.count, 2) if self.count else 0,
            "min_duration_ms": round(self.min_duration_ms, 2) if self.count else 0,
            "max_duration_ms": round(self.max_duration_ms, 2),
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
        }


class MetricsCollector:
    """Thread-safe per-operation timings and outcomes.

    Nothing is written to disk unless a metrics file is set, either here or
    later through :meth:`set_metrics_file`.
    """

    def __init__(self, metrics_file: Optional[Union[str, Path]] = None):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else None

    @property
    def metrics_file(self) -> Optional[Path]:
        return self._metrics_file

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.min_duration_ms = min(m.min_duration_ms, duration_ms)
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Operation name -> totals, as plain JSON-ready dicts."""
        with self._lock:
            return {op: m.snapshot() for op, m in self._metrics.items()}

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)

    def set_metrics_file(self, metrics_file: Optional[Union[str, Path]]) -> None:
        """Enable persistence to metrics_file, or disable it with None."""
        with self._lock:
            self._metrics_file = Path(metrics_file) if metrics_file else None

    def save_metrics(self) -> bool:
        """Write the current totals to the metrics file.

        Returns:
            False when no file is set or the write failed.
        """
        if self._metrics_file is None:
            return False
        payload = {
            "start_time": self._start_time.isoformat(),
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "operations": self.get_metrics(),
        }
        temp_file = self._metrics_file.with_suffix(".tmp")
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            temp_file.replace(self._metrics_file)
        except OSError as e:
            logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
            return False
        return True


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context: Any) -> Iterator[Dict[str, Any]]:
    """Time a block, log START/END at debug level and record the outcome.

    The yielded dict is logged with the END line; put result details in it.

    Example:
        with timed_operation("search", query="rust") as op:
            results = run_search()
            op["result_count"] = len(results)
    """
    correlation_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield details
    except Exception as e:
        error = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, duration_ms, error is None, error)
        status = "OK" if error is None else f"ERROR: {error}"
        details_str = ", ".join(f"{k}={v}" for k, v in details.items())
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) [{status}] {details_str}"
        )


def _trace_context(signature: inspect.Signature, args: tuple, kwargs: dict) -> Dict[str, Any]:
    """Pick the entity id (or a title/name/query) out of a call's arguments."""
    try:
        bound = signature.bind(*args, **kwargs)
    except TypeError:
        return {}
    arguments = bound.arguments
    for key in _TRACE_KEYS:
        if arguments.get(key) is not None:
            return {key: arguments[key]}
    for key in ("title", "name", "query"):
        value = arguments.get(key)
        if isinstance(value, str) and value:
            return {key: value[:50]}
    return {}


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run the decorated call inside :func:`timed_operation`.

    Positional and keyword arguments are bound to the function signature, so
    ``service.delete_note(note.id)`` logs ``id=<note id>``. List results add
    ``result_count`` to the END line.
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = _trace_context(signature, args, kwargs)
            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op["result_count"] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
