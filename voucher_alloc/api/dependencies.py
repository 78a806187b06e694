"""
Shared dependencies for API routers.

Provides dependency injection for the logger and the CoreUtils storage
factory. Tests override `get_core_utils` to point at a temporary database.
"""

import logging
from typing import Optional

from voucher_alloc.settings import ALLOCATION_CONFIG, get_database_url
from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.domain import AllocationConfig


def get_logger(name: str = "api") -> logging.Logger:
    """
    Get a logger instance for API routers.

    Usage in routers:
        from voucher_alloc.api.dependencies import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


# Core utils instance (singleton pattern)
_core_utils_instance: Optional[CoreUtils] = None


def get_core_utils() -> CoreUtils:
    """
    Get CoreUtils singleton instance.

    The database URL is resolved lazily from the configured MODE.

    Usage in routers:
        core_utils: CoreUtils = Depends(get_core_utils)
    """
    global _core_utils_instance
    if _core_utils_instance is None:
        _core_utils_instance = CoreUtils(get_database_url())
    return _core_utils_instance


def get_allocation_config() -> AllocationConfig:
    return ALLOCATION_CONFIG
