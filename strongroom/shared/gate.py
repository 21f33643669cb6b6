"""
Shared Gate utilities for Strongroom.

Provides the patterns every Gate builds on:
- GateLogger: namespaced logging on top of Python's logging module
- GateErrorHandler: log-and-default decorator for best-effort steps
- build_health_status: standard health payload
- PathUtils: directory helpers
- GateOperationResult: success/failure result with a reason
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union


# =============================================================================
# GateLogger - Unified logging for all Gates
# =============================================================================


class GateLogger:
    """
    Unified logging for all Gates.

    Each gate (or gate part, e.g. "WatchGate.Observer") gets its own
    logger under the "strongroom" namespace.
    """

    ROOT = "strongroom"

    _loggers: Dict[str, logging.Logger] = {}
    _configured = False

    @classmethod
    def _ensure_configured(cls):
        """Attach the stream handler to the root strongroom logger once."""
        if cls._configured:
            return

        root_logger = logging.getLogger(cls.ROOT)
        if not root_logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
            root_logger.addHandler(handler)
            root_logger.setLevel(logging.INFO)

        cls._configured = True

    @classmethod
    def get(cls, gate_name: str) -> logging.Logger:
        """
        Get a logger for a specific gate.

        Args:
            gate_name: Name of the gate (e.g., "DiskGate", "RecycleGate.Cleanup")

        Returns:
            Logger instance for the gate
        """
        cls._ensure_configured()

        logger_name = f"{cls.ROOT}.{gate_name}"
        if logger_name not in cls._loggers:
            cls._loggers[logger_name] = logging.getLogger(logger_name)

        return cls._loggers[logger_name]

    @classmethod
    def set_level(cls, level: Union[int, str], gate_name: Optional[str] = None):
        """
        Set logging level.

        Args:
            level: Logging level (e.g., logging.DEBUG or "DEBUG")
            gate_name: Specific gate to set level for, or None for all
        """
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        if gate_name:
            cls.get(gate_name).setLevel(level)
        else:
            cls._ensure_configured()
            logging.getLogger(cls.ROOT).setLevel(level)


# =============================================================================
# GateErrorHandler - Unified error handling
# =============================================================================


class GateErrorHandler:
    """
    Error handling for best-effort Gate operations.

    Core operations raise typed errors (see strongroom.shared.errors);
    these decorators are for steps whose failure must never fail the caller,
    such as thumbnailing or notifying a listener.
    """

    @staticmethod
    def handle(
        gate_name: str,
        operation: str,
        exception: Exception,
        default_return: Any = None,
        log_level: int = logging.ERROR,
    ) -> Any:
        """Log a failed operation and return the default value."""
        GateLogger.get(gate_name).log(log_level, f"{operation} failed: {exception}")
        return default_return

    @staticmethod
    def wrap(
        gate_name: str,
        operation: str,
        default_return: Any = None,
        log_level: int = logging.ERROR,
        reraise: bool = False,
    ):
        """
        Decorator for wrapping sync operations with error handling.

        Args:
            gate_name: Name of the gate
            operation: Operation name for logging
            default_return: Value to return on error
            log_level: Logging level to use
            reraise: Whether to re-raise the exception after logging
        """
        def decorator(func: Callable) -> Callable:
            @wraps(func)
            def wrapper(*args, **kwargs):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    GateErrorHandler.handle(gate_name, operation, e, default_return, log_level)
                    if reraise:
                        raise
                    return default_return
            return wrapper
        return decorator


# =============================================================================
# Health
# =============================================================================


def build_health_status(
    gate_name: str,
    initialized: bool,
    dependencies: List[str],
    checks: Dict[str, bool],
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build a standardized health status dict.

    Args:
        gate_name: Name of the gate
        initialized: Whether the gate is initialized
        dependencies: List of dependency names
        checks: Dict of check name -> passed
        details: Additional details

    Returns:
        Standardized health status dict
    """
    all_checks_passed = all(checks.values()) if checks else True

    return {
        "gate": gate_name,
        "healthy": initialized and all_checks_passed,
        "initialized": initialized,
        "dependencies": dependencies,
        "checks": checks,
        "details": details or {},
    }


# =============================================================================
# PathUtils
# =============================================================================


class PathUtils:
    """Common path utilities for Gates."""

    @staticmethod
    def ensure_dirs(*paths: Union[str, Path]) -> None:
        """Create each directory (and its parents) if missing."""
        for path in paths:
            Path(path).mkdir(parents=True, exist_ok=True)

    @staticmethod
    def is_within(root: Union[str, Path], target: Union[str, Path]) -> bool:
        """True if target resolves to root or somewhere beneath it."""
        root_path = Path(root).resolve()
        target_path = Path(target).resolve()
        return target_path == root_path or root_path in target_path.parents

    @staticmethod
    def directory_size(path: Union[str, Path]) -> int:
        """Total size in bytes of a file, or of every file under a directory."""
        path = Path(path)
        if path.is_file():
            return path.stat().st_size

        total = 0
        for file_path in path.rglob("*"):
            try:
                if file_path.is_file():
                    total += file_path.stat().st_size
            except OSError:
                continue
        return total


# =============================================================================
# GateOperationResult - Unified result type
# =============================================================================


@dataclass
class GateOperationResult:
    """
    Outcome of an operation that reports failure instead of raising.

    Serializes as {success, reason?, ...data}.
    """

    success: bool
    operation: str
    message: str = ""
    data: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        result: Dict[str, Any] = {"success": self.success, "operation": self.operation}
        if self.message:
            result["message"] = self.message
        if self.reason:
            result["reason"] = self.reason
        if self.data:
            result.update(self.data)
        return result

    @classmethod
    def ok(cls, operation: str, message: str = "", data: Optional[Dict[str, Any]] = None) -> "GateOperationResult":
        """Create a successful result."""
        return cls(success=True, operation=operation, message=message, data=data)

    @classmethod
    def fail(cls, operation: str, reason: str, data: Optional[Dict[str, Any]] = None) -> "GateOperationResult":
        """Create a failed result."""
        return cls(success=False, operation=operation, data=data, reason=reason)
