"""
Network Link Checks
===================
Probe URLs over HTTP, consulting the context's cache first.

A probe is a HEAD request. Many servers refuse HEAD (403/404/405/501 for
HEAD only) but answer GET normally, so those responses and non-timeout
transport errors are retried once with a streamed GET whose body is never
downloaded.
"""

import logging
import time
from typing import Mapping, Optional, Union

import requests

from .config_logging import LinkValidationError, DEFAULT_REQUEST_TIMEOUT
from .models import NetworkKind, Reason, Url

logger = logging.getLogger(__name__)

# Statuses some servers return for HEAD only
HEAD_REJECTED_STATUSES = frozenset((403, 404, 405, 501))


def _status_reason(response: requests.Response) -> Optional[Reason]:
    if 200 <= response.status_code < 400:
        return None
    detail = f"HTTP {response.status_code}"
    if response.reason:
        detail = f"{detail} {response.reason}"
    return Reason.network(NetworkKind.STATUS, detail, status_code=response.status_code)


def _exception_reason(error: requests.RequestException) -> Reason:
    if isinstance(error, requests.exceptions.Timeout):
        return Reason.network(NetworkKind.TIMEOUT, f"Request timed out: {error}")
    return Reason.network(NetworkKind.TRANSPORT, f"{type(error).__name__}: {error}")


def head(session: requests.Session, url: str,
         headers: Optional[Mapping[str, str]] = None,
         timeout: float = DEFAULT_REQUEST_TIMEOUT) -> Optional[Reason]:
    """
    Check that a URL points at a reachable resource.

    Args:
        session: Session carrying the client configuration
        url: URL to probe
        headers: Extra headers for this request
        timeout: Connect/read timeout in seconds

    Returns:
        None if the resource is reachable, otherwise the failure Reason
    """
    headers = dict(headers or {})

    try:
        response = session.head(url, headers=headers, timeout=timeout, allow_redirects=True)
        if response.status_code not in HEAD_REJECTED_STATUSES:
            return _status_reason(response)
        logger.debug(f"HEAD {url} returned {response.status_code}, retrying with GET")
    except (requests.exceptions.Timeout, requests.exceptions.InvalidSchema) as e:
        return _exception_reason(e)
    except requests.RequestException as e:
        logger.debug(f"HEAD {url} failed ({e}), retrying with GET")

    try:
        response = session.get(url, headers=headers, timeout=timeout,
                               allow_redirects=True, stream=True)
        # Close the response body without reading it
        response.close()
    except requests.RequestException as e:
        return _exception_reason(e)
    return _status_reason(response)


def _already_valid(url: str, ctx) -> bool:
    cache = ctx.cache()
    if cache is None:
        return False
    return cache.is_fresh(url, ctx.cache_timeout())


def _update_cache(url: str, ctx, success: bool):
    cache = ctx.cache()
    if cache is not None:
        cache.record(url, success, now=time.time())


def check_web(url: Union[Url, str], ctx):
    """
    Check whether a URL points to a valid resource on the internet.

    Raises:
        LinkValidationError: With a ``Network`` reason if the probe fails
    """
    if not isinstance(url, Url):
        parsed = Url.parse(url)
        if parsed is None:
            raise ValueError(f"Not a URL: {url!r}")
        url = parsed

    href = str(url)
    logger.debug(f"Checking \"{href}\" on the web")

    if _already_valid(href, ctx):
        logger.debug(f"The cache says \"{href}\" is still valid")
        return

    reason = ctx.probe(href, ctx.url_specific_headers(href))

    if url.fragment:
        logger.warning(
            f"Fragment checking isn't implemented, not checking if there is a "
            f"\"{url.fragment}\" header in \"{href}\""
        )

    _update_cache(href, ctx, reason is None)

    if reason is not None:
        raise LinkValidationError(reason)
