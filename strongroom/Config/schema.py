"""
Configuration schema for Strongroom.

Defines all configurable options with metadata for type conversion and
validation.
"""

from enum import Enum
from typing import List, Any
from dataclasses import dataclass


class ConfigType(Enum):
    """Configuration value types."""
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    PATH = "path"          # File system path
    URL = "url"
    LIST = "list"          # Comma-separated values
    JSON = "json"          # JSON document in a string
    CRON = "cron"          # Five-field cron expression


class ConfigCategory(Enum):
    """Configuration categories for grouping."""
    DATABASE = "database"
    STORAGE = "storage"
    RECYCLE_BIN = "recycle_bin"
    WATCHERS = "watchers"
    SERVER = "server"


DEFAULT_ACCESS_RULES_JSON = (
    '{"Project": ["Admin", "User"], "Admin": ["Admin"], "Estimator": ["Estimator"]}'
)


@dataclass
class ConfigField:
    """Definition of a configuration field."""
    key: str
    description: str
    config_type: ConfigType
    category: ConfigCategory
    required: bool = False
    default: Any = None
    env_var: str = None          # Override env var name (defaults to key)
    validation: str = None       # Regex pattern
    options: List[str] = None    # For enumerated types

    def __post_init__(self):
        if self.env_var is None:
            self.env_var = self.key


# ==================== Schema Definition ====================

CONFIG_SCHEMA: List[ConfigField] = [
    # === Database ===
    ConfigField(
        key="DATABASE_URL",
        description="SQLAlchemy URL for recycle-bin records and project lookup",
        config_type=ConfigType.URL,
        category=ConfigCategory.DATABASE,
        required=True,
        default="sqlite+aiosqlite:///data/strongroom.sqlite",
        validation=r"^(sqlite|postgres(ql)?)(\+\w+)?://.*",
    ),

    # === Storage ===
    ConfigField(
        key="STORAGE_ROOT",
        description="Explicit project storage root (skips the mount probe when set)",
        config_type=ConfigType.PATH,
        category=ConfigCategory.STORAGE,
    ),
    ConfigField(
        key="STORAGE_ROOT_PRODUCTION",
        description="Production mount probed first for the project storage root",
        config_type=ConfigType.PATH,
        category=ConfigCategory.STORAGE,
        default="/mnt/fm",
    ),
    ConfigField(
        key="STORAGE_ROOT_DEVELOPMENT",
        description="Fallback storage root when the production mount is absent",
        config_type=ConfigType.PATH,
        category=ConfigCategory.STORAGE,
        default=".FM",
    ),
    ConfigField(
        key="DEFAULT_REGION",
        description="Region segment used when a request does not name one",
        config_type=ConfigType.STRING,
        category=ConfigCategory.STORAGE,
        default="AU",
        validation=r"^[A-Za-z]{2,3}$",
    ),
    ConfigField(
        key="FOLDER_ACCESS_RULES",
        description="JSON map of scaffolded subfolder name to permitted roles",
        config_type=ConfigType.JSON,
        category=ConfigCategory.STORAGE,
        default=DEFAULT_ACCESS_RULES_JSON,
    ),

    # === Recycle Bin ===
    ConfigField(
        key="RECYCLE_BIN_PATH",
        description="Directory holding recycled content and thumbnails",
        config_type=ConfigType.PATH,
        category=ConfigCategory.RECYCLE_BIN,
        default="./storage/recycle_bin",
    ),
    ConfigField(
        key="RECYCLE_MAX_RETENTION_DAYS",
        description="Days an item stays restorable before cleanup removes it",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.RECYCLE_BIN,
        default=7,
    ),
    ConfigField(
        key="RECYCLE_MAX_TOTAL_SIZE",
        description="Global cap on active recycle-bin content, in bytes",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.RECYCLE_BIN,
        default=2 * 1024 * 1024 * 1024,
    ),
    ConfigField(
        key="RECYCLE_MAX_FILE_SIZE",
        description="Largest single item the recycle bin accepts, in bytes",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.RECYCLE_BIN,
        default=100 * 1024 * 1024,
    ),
    ConfigField(
        key="RECYCLE_CLEANUP_SCHEDULE",
        description="Cron expression for the automatic cleanup run",
        config_type=ConfigType.CRON,
        category=ConfigCategory.RECYCLE_BIN,
        default="0 2 * * *",
    ),
    ConfigField(
        key="RECYCLE_BATCH_SIZE",
        description="Maximum items loaded per cleanup query",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.RECYCLE_BIN,
        default=100,
    ),
    ConfigField(
        key="RECYCLE_EXCLUDED_EXTENSIONS",
        description="Extensions deleted directly instead of being recycled",
        config_type=ConfigType.LIST,
        category=ConfigCategory.RECYCLE_BIN,
        default=[".tmp", ".log", ".cache"],
    ),

    # === Watchers ===
    ConfigField(
        key="ENABLE_WATCHERS",
        description="Enable filesystem watching and the watch-disk long-poll",
        config_type=ConfigType.BOOLEAN,
        category=ConfigCategory.WATCHERS,
        default=True,
    ),
    ConfigField(
        key="WATCH_MAX_DEPTH",
        description="Deepest directory level below a project root that emits events",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.WATCHERS,
        default=10,
    ),
    ConfigField(
        key="WATCH_INACTIVITY_SECONDS",
        description="Idle time after which a project watch is retired",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.WATCHERS,
        default=300,
    ),
    ConfigField(
        key="WATCH_SWEEP_INTERVAL_SECONDS",
        description="Interval between inactivity sweeps",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.WATCHERS,
        default=60,
    ),
    ConfigField(
        key="LONG_POLL_TIMEOUT_SECONDS",
        description="How long watch-disk waits before answering 'no change'",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.WATCHERS,
        default=60,
    ),

    # === Server ===
    ConfigField(
        key="LOG_LEVEL",
        description="Logging level for the strongroom logger tree",
        config_type=ConfigType.STRING,
        category=ConfigCategory.SERVER,
        default="INFO",
        options=["DEBUG", "INFO", "WARNING", "ERROR"],
    ),
    ConfigField(
        key="CORS_ORIGINS",
        description="Origins allowed to call the API",
        config_type=ConfigType.LIST,
        category=ConfigCategory.SERVER,
        default=["http://localhost:3000", "http://localhost:5173"],
    ),
]
