"""
Utility modules - Shared utilities for the application

This module should NEVER import from other chiefai modules (ai, database, services)
to maintain the import hierarchy and prevent circular dependencies.
"""

# ============================================
# CONFIGURATION
# ============================================
from .config import Config, load_config, get_timezone

# ============================================
# LOGGING
# ============================================
from .logger import setup_logger, configure_logging

# ============================================
# RESILIENCE
# ============================================
from .retry import RetryConfig, call_with_retry, is_transient_error
from .locks import LockService, InMemoryLockService, RedisLockService, create_lock_service

# ============================================
# PARSING / VALIDATION
# ============================================
from .json_utils import repair_json, strip_code_fences
from .scheduling_links import SchedulingLink, validate_scheduling_link

__all__ = [
    'Config',
    'load_config',
    'get_timezone',
    'setup_logger',
    'configure_logging',
    'RetryConfig',
    'call_with_retry',
    'is_transient_error',
    'LockService',
    'InMemoryLockService',
    'RedisLockService',
    'create_lock_service',
    'repair_json',
    'strip_code_fences',
    'SchedulingLink',
    'validate_scheduling_link',
]
