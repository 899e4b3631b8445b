"""Observability utilities for the vault engine.

Provides persistent disk logging with rotation, timing metrics, operation
tracing, and the diagnostics channel that replaces silent error swallowing:
failures the engine deliberately tolerates are recorded here so callers can
surface them without every call becoming fallible.
"""
import functools
import logging
import time
import uuid
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional, TypeVar, Union

from pkm_vault.exceptions import ErrorCode, VaultError

logger = logging.getLogger(__name__)

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Type variable for decorators
F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    log_dir: Union[str, Path],
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Configure persistent file logging with rotation.

    Sets up a rotating file handler on the ``pkm_vault`` logger hierarchy.
    Log files are rotated when they reach max_bytes, keeping backup_count
    old files.

    Args:
        log_dir: Directory for log files
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation (default: 10 MB)
        backup_count: Number of rotated files to keep (default: 5)
        console: Also log to stderr (default: True)

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger("pkm_vault")
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "pkm-vault.log"
    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.info(
        f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)"
    )

    return log_path


# ----------------------------------------------------------------------
# Diagnostics
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class VaultIssue:
    """A tolerated failure, recorded instead of raised.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable description.
        operation: Engine operation that hit the problem (``save``, ...).
        path: Vault-relative path involved, when there is one.
        at: When the issue was recorded (UTC).
    """

    code: ErrorCode
    message: str
    operation: Optional[str] = None
    path: Optional[str] = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "operation": self.operation,
            "path": self.path,
            "at": self.at.isoformat(),
        }


class VaultDiagnostics:
    """Bounded, thread-safe log of tolerated failures."""

    def __init__(self, max_issues: int = 200):
        self._issues: Deque[VaultIssue] = deque(maxlen=max_issues)
        self._lock = Lock()

    def report(
        self,
        code: ErrorCode,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
    ) -> VaultIssue:
        """Record an issue and log it at WARNING."""
        issue = VaultIssue(code=code, message=message, operation=operation, path=path)
        with self._lock:
            self._issues.append(issue)
        where = f" [{path}]" if path else ""
        logger.warning(f"{code.name} during {operation or 'vault operation'}{where}: {message}")
        return issue

    def report_error(
        self, error: VaultError, operation: Optional[str] = None
    ) -> VaultIssue:
        """Record a VaultError raised inside the engine."""
        path = error.details.get("path") if error.details else None
        return self.report(error.code, error.message, operation=operation, path=path)

    def recent(self) -> List[VaultIssue]:
        """Snapshot of the recorded issues, oldest first."""
        with self._lock:
            return list(self._issues)

    def drain(self) -> List[VaultIssue]:
        """Return and clear the recorded issues."""
        with self._lock:
            issues = list(self._issues)
            self._issues.clear()
            return issues

    def __len__(self) -> int:
        with self._lock:
            return len(self._issues)


# ----------------------------------------------------------------------
# Metrics
# ----------------------------------------------------------------------


@dataclass
class OperationMetrics:
    """Metrics for a single operation type."""

    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


class MetricsCollector:
    """Thread-safe metrics collection for vault operations.

    Collects timing, success/failure rates, and error information
    for each operation type (load, save, store_attachment, ...).
    """

    def __init__(self) -> None:
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Record metrics for an operation.

        Args:
            operation: The operation name (e.g., 'load', 'save')
            duration_ms: Duration in milliseconds
            success: Whether the operation succeeded
            error: Error message if the operation failed
        """
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)

            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get a snapshot of all metrics."""
        with self._lock:
            result = {}
            for op, m in self._metrics.items():
                avg_duration = m.total_duration_ms / m.count if m.count > 0 else 0
                result[op] = {
                    "count": m.count,
                    "success_count": m.success_count,
                    "error_count": m.error_count,
                    "avg_duration_ms": round(avg_duration, 2),
                    "max_duration_ms": round(m.max_duration_ms, 2),
                    "last_error": m.last_error,
                    "last_error_time": (
                        m.last_error_time.isoformat() if m.last_error_time else None
                    ),
                }
            return result

    def get_summary(self) -> Dict[str, Any]:
        """Aggregate statistics across all operations."""
        with self._lock:
            total_ops = sum(m.count for m in self._metrics.values())
            total_errors = sum(m.error_count for m in self._metrics.values())
            return {
                "uptime_seconds": (
                    datetime.now(timezone.utc) - self._start_time
                ).total_seconds(),
                "total_operations": total_ops,
                "total_errors": total_errors,
                "operations_tracked": list(self._metrics.keys()),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Context manager for timing and logging operations.

    Args:
        operation: Name of the operation being performed
        **context: Additional context to include in log messages

    Yields:
        A dictionary where you can store result info (e.g., note_count)

    Example:
        with timed_operation('save', notes=len(payload)) as op:
            op['written'] = write_all()
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {"correlation_id": correlation_id}

    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        result_str = ", ".join(
            f"{k}={v}" for k, v in result_info.items() if k != "correlation_id"
        )
        status = "OK" if success else f"ERROR: {error_msg}"
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator for automatic operation tracing.

    Times the function, records metrics, and logs start/end with a
    correlation ID.

    Args:
        operation_name: Name to use for the operation. If None, uses function name.
    """

    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(op_name) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op["result_count"] = len(result)
                elif result is not None:
                    op["has_result"] = True
                return result

        return wrapper  # type: ignore

    return decorator
