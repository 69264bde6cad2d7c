"""
Utilities package
Common helpers, logging, and utility functions
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
    log_performance,
    get_current_log_file
)
from .helpers import (
    sanitize_filename,
    track_filename,
    format_duration,
    retry_on_failure,
    ensure_directory,
    get_current_timestamp,
    minutes_since,
    create_backup_filename
)

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'OperationLogger',
    'create_operation_logger',
    'log_performance',
    'get_current_log_file',

    # Helper exports
    'sanitize_filename',
    'track_filename',
    'format_duration',
    'retry_on_failure',
    'ensure_directory',
    'get_current_timestamp',
    'minutes_since',
    'create_backup_filename'
]
