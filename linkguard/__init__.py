"""
linkguard
=========
Validate the hyperlinks found in documents.

Each link is classified as a filesystem path or a URL and then checked:
- filesystem paths are resolved under a root-confinement policy (default
  files, alternate extensions, symlink handling, custom validation)
- URLs are probed over HTTP, skipping those a cache says were recently fine

Checks run concurrently with a bounded number in flight, and the results
are folded into an ``Outcomes`` report.

Usage:
    from linkguard import BasicContext, Options, scan_file, validate

    ctx = BasicContext(options=Options().with_root_directory('docs'))
    outcomes = validate('docs', scan_file('docs/README.md'), ctx)
"""

from .config_logging import (
    __version__,
    LinkGuardConfig,
    get_config,
    reset_config,
    configure_logging,
    get_logger,
    log_operation,
    LinkGuardError,
    ConfigurationError,
    LinkValidationError,
)

from .models import (
    Span,
    Link,
    LinkType,
    FileSystem,
    CurrentFile,
    Url,
    Category,
    classify,
    decode_uri_path,
    ReasonKind,
    IoKind,
    NetworkKind,
    Reason,
    OutcomeKind,
    Outcome,
    InvalidLink,
    Outcomes,
)

from .filesystem import Options, resolve_link, check_filesystem
from .cache import Cache, CacheEntry
from .web import head, check_web
from .context import Context, BasicContext, IgnoreRule
from .validator import validate, validate_one
from .scanners import markdown, plaintext, scan_text, scan_file
from .storage import CacheStorage, load_json, save_json

__all__ = [
    # Configuration, logging, errors
    'LinkGuardConfig',
    'get_config',
    'reset_config',
    'configure_logging',
    'get_logger',
    'log_operation',
    'LinkGuardError',
    'ConfigurationError',
    'LinkValidationError',
    # Models
    'Span',
    'Link',
    'LinkType',
    'FileSystem',
    'CurrentFile',
    'Url',
    'Category',
    'classify',
    'decode_uri_path',
    'ReasonKind',
    'IoKind',
    'NetworkKind',
    'Reason',
    'OutcomeKind',
    'Outcome',
    'InvalidLink',
    'Outcomes',
    # Checkers
    'Options',
    'resolve_link',
    'check_filesystem',
    'Cache',
    'CacheEntry',
    'head',
    'check_web',
    # Orchestration
    'Context',
    'BasicContext',
    'IgnoreRule',
    'validate',
    'validate_one',
    # Scanners and storage
    'markdown',
    'plaintext',
    'scan_text',
    'scan_file',
    'CacheStorage',
    'load_json',
    'save_json',
    # Version
    '__version__'
]
