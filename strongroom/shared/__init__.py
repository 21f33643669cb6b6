"""
Shared utilities for Strongroom.

Provides access to common functionality used across Gate implementations.
"""

from strongroom.shared.db_service import (
    init_db,
    is_initialized,
    get_session,
    get_async_session,
    get_engine,
    create_tables,
)

from strongroom.shared.errors import (
    StrongroomError,
    NotFound,
    InvalidInput,
    AccessDenied,
    Conflict,
    StorageLimitExceeded,
    IOFailure,
)

from strongroom.shared.gate import (
    GateLogger,
    GateErrorHandler,
    GateOperationResult,
    PathUtils,
    build_health_status,
)

__all__ = [
    # Database
    "init_db",
    "is_initialized",
    "get_session",
    "get_async_session",
    "get_engine",
    "create_tables",
    # Errors
    "StrongroomError",
    "NotFound",
    "InvalidInput",
    "AccessDenied",
    "Conflict",
    "StorageLimitExceeded",
    "IOFailure",
    # Gate utilities
    "GateLogger",
    "GateErrorHandler",
    "GateOperationResult",
    "PathUtils",
    "build_health_status",
]
