"""Utility modules for the building alert engine."""
from utils.logger import setup_logging
from utils.formatters import format_kwh, format_pct, format_timestamp, time_ago, priority_markup
from utils.errors import (
    AlertEngineError, StoreError, TransientStoreError, DataIntegrityError,
    PublishError, ConfigurationError, AlertNotFoundError,
)
from utils.store_client import StoreClient
