"""
Configuration module for CaStar.

Contains constants, settings, and configuration values used throughout the application.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Version
VERSION = "1.0.0"

# Application paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOG_DIR = PROJECT_ROOT / "logs"
ENV_FILE = PROJECT_ROOT / ".env"

# Database configuration
DEFAULT_DB_PATH = DATA_DIR / "castar.db"
DB_TIMEOUT = 10.0  # seconds

# Currency
DEFAULT_CURRENCY = "UZS"
SUPPORTED_CURRENCIES = ["UZS", "USD", "EUR", "RUB"]
EXCHANGE_RATE_MAX_AGE_MS = 60 * 60 * 1000  # 1 hour

# Sync outbox
MAX_SYNC_RETRIES = 3
DEFAULT_PENDING_LIMIT = 50

# Query limits
DEFAULT_TRANSACTION_LIMIT = 100

# Budget thresholds (percent of limit)
BUDGET_WARNING_PERCENT = 80.0
BUDGET_EXCEEDED_PERCENT = 100.0

# Validation constraints
MAX_ACCOUNT_NAME_LENGTH = 50
MAX_CATEGORY_NAME_LENGTH = 50
MAX_BUDGET_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

# Default seed data
DEFAULT_ACCOUNT_NAME = "Cash"
DEFAULT_ACCOUNT_ICON = "💵"

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = os.getenv("CASTAR_LOG_FILE", "castar.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def load_environment(env_path: Path = ENV_FILE) -> bool:
    """Load variables from a .env file if one exists."""
    if env_path.exists():
        return load_dotenv(env_path)
    return False


def get_db_path() -> Path:
    """Get the database path, honouring CASTAR_DB_PATH."""
    override = os.getenv("CASTAR_DB_PATH")
    return Path(override) if override else DEFAULT_DB_PATH


def ensure_directories():
    """Ensure required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def get_log_level():
    """Get the configured log level."""
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(os.getenv("LOG_LEVEL", LOG_LEVEL).upper(), logging.INFO)
