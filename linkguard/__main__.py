"""
linkguard Command Line
======================
Scan documents for links, validate them and print a report.

Usage:
    python -m linkguard docs/ README.md --root docs --cache-db .linkcache.db
    linkguard notes.txt --offline --json

Exit status: 0 when every link is valid, 1 when some are invalid,
2 for configuration errors, 3 when a document or the cache file can't be
read or written.
"""

import argparse
import json
import logging
import sqlite3
import sys
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Optional

from .cache import Cache
from .config_logging import (
    __version__, APP_NAME, ConfigurationError, LinkGuardConfig, configure_logging,
)
from .context import BasicContext, IgnoreRule
from .models import Outcomes
from .scanners import scan_file
from .storage import CacheStorage, load_json, save_json
from .validator import validate

logger = logging.getLogger(APP_NAME)

SCANNED_SUFFIXES = ('.md', '.markdown', '.txt')

# Anything that starts with a scheme is a URL
OFFLINE_PATTERN = r'^[A-Za-z][A-Za-z0-9+.\-]+:'

EXIT_OK = 0
EXIT_INVALID_LINKS = 1
EXIT_CONFIG_ERROR = 2
EXIT_IO_ERROR = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description='Check that the links in markdown and text files point somewhere real'
    )
    parser.add_argument('paths', nargs='+', help='Files or directories to scan')
    parser.add_argument('--root', type=str, help='Root directory links may not leave')
    parser.add_argument('--default-file', type=str,
                        help='File used when a link points at a directory (default: index.html)')
    parser.add_argument('--traverse-root', action='store_true', default=None,
                        help='Allow links to leave the root directory')
    parser.add_argument('--no-follow-symlinks', dest='follow_symlinks', action='store_false',
                        default=None, help='Resolve paths lexically instead of following symlinks')
    parser.add_argument('--concurrency', type=int, help='Maximum links checked at once')
    parser.add_argument('--timeout', type=float, help='Per-request timeout in seconds')
    parser.add_argument('--cache-db', type=str,
                        help='Cache file (.json for a JSON file, anything else is SQLite)')
    parser.add_argument('--cache-ttl-hours', type=float,
                        help='How long a successful URL check is trusted')
    parser.add_argument('--ignore', action='append', default=[], metavar='PATTERN',
                        help='Skip links matching this regex (repeatable)')
    parser.add_argument('--offline', action='store_true', help='Skip every URL')
    parser.add_argument('--json', action='store_true', help='Print the report as JSON')
    parser.add_argument('--log-level', type=str, help='DEBUG, INFO, WARNING or ERROR')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def config_from_args(args: argparse.Namespace, base: Optional[LinkGuardConfig] = None) -> LinkGuardConfig:
    """Overlay command line arguments on the environment configuration."""
    config = base or LinkGuardConfig.from_env()
    overrides = {
        'root_directory': Path(args.root) if args.root else None,
        'default_file': args.default_file,
        'links_may_traverse_root': args.traverse_root,
        'follow_symlinks': args.follow_symlinks,
        'concurrency': args.concurrency,
        'request_timeout': args.timeout,
        'cache_db': Path(args.cache_db) if args.cache_db else None,
        'cache_timeout_hours': args.cache_ttl_hours,
        'log_level': args.log_level,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def collect_files(paths: Iterable[str]) -> List[Path]:
    """
    Expand the command line paths into the files to scan.

    Directories are walked for markdown and text files; files named
    explicitly are always scanned.

    Raises:
        ConfigurationError: If a path does not exist
    """
    files: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(
                p for p in path.rglob('*')
                if p.is_file() and p.suffix.lower() in SCANNED_SUFFIXES
            ))
        elif path.is_file():
            files.append(path)
        else:
            raise ConfigurationError(f"No such file or directory: {raw}", setting='paths')
    return files


def load_cache(path: Optional[Path]) -> Cache:
    if path is None:
        return Cache()
    if path.suffix.lower() == '.json':
        return load_json(path)
    return CacheStorage(path).load()


def save_cache(cache: Cache, path: Optional[Path]):
    if path is None:
        return
    if path.suffix.lower() == '.json':
        save_json(cache, path)
    else:
        CacheStorage(path).save(cache)


def run(files: List[Path], ctx: BasicContext) -> Outcomes:
    """Validate every file relative to its own directory and merge the results."""
    outcomes = Outcomes.empty()
    for path in files:
        links = scan_file(path)
        if not links:
            continue
        logger.info(f"Checking {len(links)} links in {path}")
        outcomes.merge(validate(path.resolve().parent, links, ctx))
    return outcomes


def format_report(outcomes: Outcomes) -> str:
    lines = []
    for item in sorted(outcomes.invalid, key=lambda i: (i.link.file, i.link.span.start)):
        lines.append(f"{item.link.file}:{item.link.span.start}: {item.link.href}: {item.reason}")

    summary = outcomes.summary()
    lines.append(
        f"{summary['total']} links: {summary['valid']} valid, {summary['invalid']} invalid, "
        f"{summary['ignored']} ignored, {summary['unknown_category']} unknown"
    )
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        is_valid, errors = config.validate()
        if not is_valid:
            raise ConfigurationError("; ".join(errors), errors=errors)
        configure_logging(config)

        files = collect_files(args.paths)
        ignore_rules = [IgnoreRule(pattern, match_type='regex', reason='--ignore')
                        for pattern in args.ignore]
        if args.offline:
            ignore_rules.append(IgnoreRule(OFFLINE_PATTERN, match_type='regex', reason='offline'))

        cache = load_cache(config.cache_db)
        ctx = BasicContext.from_config(config, cache=cache, ignore_rules=ignore_rules)
    except (ConfigurationError, ValueError) as e:
        print(f"{APP_NAME}: error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except (OSError, sqlite3.Error) as e:
        print(f"{APP_NAME}: error: {e}", file=sys.stderr)
        return EXIT_IO_ERROR

    try:
        with ctx:
            outcomes = run(files, ctx)
        save_cache(cache, config.cache_db)
    except (OSError, sqlite3.Error) as e:
        print(f"{APP_NAME}: error: {e}", file=sys.stderr)
        return EXIT_IO_ERROR

    if args.json:
        print(json.dumps(outcomes.to_dict(), indent=2))
    else:
        print(format_report(outcomes))

    return EXIT_OK if outcomes.is_ok else EXIT_INVALID_LINKS


if __name__ == '__main__':
    sys.exit(main())
