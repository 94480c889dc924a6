"""
linkguard Validation Engine
===========================
Validate a batch of links concurrently and fold the results into an
``Outcomes`` report.

Each link is dispatched by category:
- filesystem paths go through the resolution policy and custom hook
- URLs go through the cache and the context's HTTP probe
- bare #fragments are skipped (in-document anchors aren't checked)
- anything else is reported as an unknown category

At most ``ctx.concurrency()`` checks run at once. Results are folded in
completion order, so bucket order does not follow input order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from .config_logging import LinkValidationError, log_operation
from .context import Context
from .filesystem import check_filesystem
from .models import (
    Category, CurrentFile, FileSystem, IoKind, Link, Outcome, Outcomes, Reason, Url,
)
from .web import check_web

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def validate_one(link: Link, current_directory: Union[str, Path], ctx: Context) -> Outcome:
    """
    Validate a single link, deferring to the checker for its category.

    Never raises: every failure becomes an ``Invalid`` outcome.
    """
    try:
        outcome, category = _triage(link, ctx)
    except Exception as e:
        return _failure(link, e)
    if outcome is not None:
        return outcome
    return _check(link, category, current_directory, ctx)


def _failure(link: Link, error: Exception) -> Outcome:
    """Turn the exception being handled for ``link`` into an Invalid outcome."""
    if isinstance(error, LinkValidationError):
        return Outcome.invalid(link, error.reason)
    if isinstance(error, OSError):
        logger.warning(f"OS error while checking \"{link.href}\": {error}")
        return Outcome.invalid(link, Reason.from_os_error(error))
    logger.exception(f"Unexpected error while checking \"{link.href}\": {error}")
    return Outcome.invalid(link, Reason.io(IoKind.OTHER, f"{type(error).__name__}: {error}"))


def _triage(link: Link, ctx: Context) -> Tuple[Optional[Outcome], Optional[Category]]:
    """Settle links that need no I/O: ignored, in-document, unclassifiable."""
    if ctx.should_ignore(link):
        logger.debug(f"Ignoring \"{link.href}\"")
        return Outcome.ignored(link), None

    category = link.category()
    if category is None:
        logger.debug(f"Unable to categorize \"{link.href}\"")
        return Outcome.unknown_category(link), None

    if isinstance(category, CurrentFile):
        logger.warning(
            f"Not checking \"{category.fragment}\" in the current file because "
            f"fragment resolution isn't implemented"
        )
        return Outcome.ignored(link), None

    return None, category


def _check(link: Link, category: Category, current_directory: Union[str, Path], ctx: Context) -> Outcome:
    try:
        if isinstance(category, FileSystem):
            check_filesystem(current_directory, category.path, category.fragment, ctx)
        elif isinstance(category, Url):
            check_web(category, ctx)
        else:
            return Outcome.unknown_category(link)
    except Exception as e:
        return _failure(link, e)

    return Outcome.valid(link)


def validate(
    current_directory: Union[str, Path],
    links: Iterable[Link],
    ctx: Context,
    progress_callback: Optional[ProgressCallback] = None,
) -> Outcomes:
    """
    Validate several links relative to a particular directory.

    Args:
        current_directory: Directory relative links are resolved against
        links: Links to check
        ctx: Configuration and capabilities (policy, cache, probe, ...)
        progress_callback: Optional callback(completed, total, href)

    Returns:
        Outcomes with exactly one entry per link
    """
    links = list(links)
    total = len(links)
    outcomes = Outcomes.empty()
    completed = 0

    def report(outcome: Outcome):
        nonlocal completed
        outcomes.add(outcome)
        completed += 1
        if progress_callback:
            progress_callback(completed, total, outcome.link.href)

    pending: List[Tuple[Link, Category]] = []
    for link in links:
        try:
            outcome, category = _triage(link, ctx)
        except Exception as e:
            outcome = _failure(link, e)
        if outcome is not None:
            report(outcome)
        else:
            pending.append((link, category))

    if not pending:
        return outcomes

    concurrency = max(1, int(ctx.concurrency()))

    with log_operation(logger, "Link validation", link_count=total, concurrency=concurrency):
        workers = min(concurrency, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="linkguard") as executor:
            futures = {
                executor.submit(_check, link, category, current_directory, ctx): link
                for link, category in pending
            }
            for future in as_completed(futures):
                report(future.result())

    return outcomes
