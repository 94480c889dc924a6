"""
linkguard Configuration & Logging Module
========================================
Centralized configuration, structured logging, and the error hierarchy
shared by the resolver, the network checker and the CLI.
"""

import os
import sys
import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple
from pathlib import Path
from dataclasses import dataclass
from contextlib import contextmanager

__version__ = "0.4.0"
APP_NAME = "linkguard"

# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================
DEFAULT_DEFAULT_FILE = "index.html"
DEFAULT_CONCURRENCY = 64
DEFAULT_REQUEST_TIMEOUT = 10        # seconds
DEFAULT_CACHE_TTL_HOURS = 24
MAX_SAFE_CONCURRENCY = 1024
DEFAULT_USER_AGENT = f"{APP_NAME}/{__version__}"


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean environment variable."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

@dataclass
class LinkGuardConfig:
    """Link validation configuration with secure defaults."""

    # Resolution policy
    root_directory: Optional[Path] = None
    default_file: str = DEFAULT_DEFAULT_FILE
    links_may_traverse_root: bool = False  # Keep links inside the root
    follow_symlinks: bool = True

    # Network checks
    concurrency: int = DEFAULT_CONCURRENCY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    cache_timeout_hours: float = DEFAULT_CACHE_TTL_HOURS
    cache_db: Optional[Path] = None
    user_agent: str = DEFAULT_USER_AGENT

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # Options: json, text

    @classmethod
    def from_env(cls) -> 'LinkGuardConfig':
        """Load configuration from environment variables."""
        root = os.environ.get('LINKGUARD_ROOT')
        cache_db = os.environ.get('LINKGUARD_CACHE_DB')
        return cls(
            root_directory=Path(root) if root else None,
            default_file=os.environ.get('LINKGUARD_DEFAULT_FILE', DEFAULT_DEFAULT_FILE),
            links_may_traverse_root=_env_flag('LINKGUARD_TRAVERSE_ROOT', False),
            follow_symlinks=_env_flag('LINKGUARD_FOLLOW_SYMLINKS', True),
            concurrency=int(os.environ.get('LINKGUARD_CONCURRENCY', str(DEFAULT_CONCURRENCY))),
            request_timeout=float(os.environ.get('LINKGUARD_TIMEOUT', str(DEFAULT_REQUEST_TIMEOUT))),
            cache_timeout_hours=float(
                os.environ.get('LINKGUARD_CACHE_TTL_HOURS', str(DEFAULT_CACHE_TTL_HOURS))
            ),
            cache_db=Path(cache_db) if cache_db else None,
            user_agent=os.environ.get('LINKGUARD_USER_AGENT', DEFAULT_USER_AGENT),
            log_level=os.environ.get('LINKGUARD_LOG_LEVEL', 'INFO'),
            log_format=os.environ.get('LINKGUARD_LOG_FORMAT', 'text'),
        )

    def validate(self) -> Tuple[bool, List[str]]:
        """Validate configuration and return (is_valid, errors)."""
        errors = []

        if self.concurrency < 1 or self.concurrency > MAX_SAFE_CONCURRENCY:
            errors.append(f"Concurrency must be between 1 and {MAX_SAFE_CONCURRENCY}")

        if self.request_timeout <= 0:
            errors.append("Request timeout must be positive")

        if self.cache_timeout_hours < 0:
            errors.append("Cache timeout cannot be negative")

        if not self.default_file or '/' in self.default_file or '\\' in self.default_file:
            errors.append(f"Invalid default file: {self.default_file!r}")

        if self.root_directory is not None and not self.root_directory.is_dir():
            errors.append(f"Root directory does not exist: {self.root_directory}")

        if self.log_format not in ('json', 'text'):
            errors.append(f"Invalid log_format: {self.log_format}. Must be 'json' or 'text'")

        if not hasattr(logging, self.log_level.upper()):
            errors.append(f"Invalid log_level: {self.log_level}")

        return (len(errors) == 0, errors)


# Global config instance
_config: Optional[LinkGuardConfig] = None

def get_config() -> LinkGuardConfig:
    """Get or create the global configuration."""
    global _config
    if _config is None:
        _config = LinkGuardConfig.from_env()
    return _config


def reset_config():
    """Reset the global configuration (for testing)."""
    global _config
    _config = None


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

_RESERVED_RECORD_KEYS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'thread', 'threadName', 'exc_info', 'exc_text',
    'message', 'taskName',
))


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['traceback'] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(config: Optional[LinkGuardConfig] = None,
                      stream=None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        config: Configuration to read level and format from (default: global)
        stream: Output stream (default: stderr)

    Returns:
        The configured ``linkguard`` logger
    """
    config = config or get_config()
    logger = logging.getLogger(APP_NAME)
    logger.setLevel(getattr(logging, config.log_level.upper()))
    logger.handlers.clear()

    if config.log_format == 'json':
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s - %(message)s'
        )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace."""
    if name == APP_NAME or name.startswith(APP_NAME + '.'):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_NAME}.{name}")


@contextmanager
def log_operation(logger: logging.Logger, operation: str, **context):
    """Context manager for logging operation start/end with timing."""
    start_time = time.time()
    logger.info(f"{operation} started", extra={'operation': operation, 'status': 'started', **context})
    try:
        yield
        duration_ms = (time.time() - start_time) * 1000
        logger.info(f"{operation} completed", extra={
            'operation': operation, 'status': 'completed',
            'duration_ms': round(duration_ms, 2), **context
        })
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(f"{operation} failed: {e}", exc_info=True, extra={
            'operation': operation, 'status': 'failed',
            'duration_ms': round(duration_ms, 2), **context
        })
        raise


# =============================================================================
# ERROR HANDLING
# =============================================================================

class LinkGuardError(Exception):
    """Base exception for linkguard."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR",
                 details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a report-friendly dict."""
        return {
            'success': False,
            'error': {
                'code': self.code,
                'message': self.message,
                'details': self.details
            }
        }


class ConfigurationError(LinkGuardError):
    """Invalid configuration, detected before any link is checked."""
    def __init__(self, message: str, setting: Optional[str] = None, **kwargs):
        super().__init__(message, code="CONFIG_ERROR",
                         details={'setting': setting, **kwargs})


class LinkValidationError(LinkGuardError):
    """A single link failed validation."""
    def __init__(self, reason, **kwargs):
        super().__init__(str(reason), code="INVALID_LINK",
                         details={'reason': reason.to_dict(), **kwargs})
        self.reason = reason
