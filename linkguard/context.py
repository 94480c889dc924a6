"""
Validation Context
==================
The seam between the validation core and whoever drives it.

``Context`` supplies the resolution policy, concurrency limit, cache,
per-URL headers, ignore predicate and HTTP probe. Subclass it and override
what you need; ``BasicContext`` wires everything to a ``requests.Session``.
"""

import logging
import re
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from .cache import Cache
from .config_logging import (
    ConfigurationError, LinkGuardConfig,
    DEFAULT_CONCURRENCY, DEFAULT_CACHE_TTL_HOURS, DEFAULT_REQUEST_TIMEOUT, DEFAULT_USER_AGENT,
)
from .filesystem import Options
from .models import Link, Reason
from . import web

logger = logging.getLogger(__name__)

MATCH_TYPES = ('exact', 'prefix', 'suffix', 'contains', 'regex')


@dataclass
class IgnoreRule:
    """
    Rule for skipping links during validation.

    Attributes:
        pattern: Pattern to match against the href
        match_type: How to match ('exact', 'prefix', 'suffix', 'contains', 'regex')
        reason: Why matching links are skipped
        created_at: When the rule was created
    """
    pattern: str
    match_type: str = "contains"
    reason: str = ""
    created_at: str = ""

    def __post_init__(self):
        if self.match_type not in MATCH_TYPES:
            raise ConfigurationError(f"Invalid match_type: {self.match_type}", setting='match_type')
        if self.match_type == 'regex':
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid ignore pattern {self.pattern!r}: {e}",
                                         setting='pattern') from e
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')

    def matches(self, href: str) -> bool:
        """Check if an href matches this rule (case-insensitive)."""
        href_lower = href.lower()
        pattern_lower = self.pattern.lower()

        if self.match_type == "exact":
            return href_lower == pattern_lower
        elif self.match_type == "prefix":
            return href_lower.startswith(pattern_lower)
        elif self.match_type == "suffix":
            return href_lower.endswith(pattern_lower)
        elif self.match_type == "contains":
            return pattern_lower in href_lower
        return bool(re.search(self.pattern, href, re.IGNORECASE))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IgnoreRule':
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)


class Context:
    """
    Contextual information that guides the validation process.

    Every method except :meth:`probe` has a working default.
    """

    def filesystem_options(self) -> Options:
        """Options to use when checking a link on the filesystem."""
        return Options()

    def concurrency(self) -> int:
        """How many links may be checked at the same time."""
        return DEFAULT_CONCURRENCY

    def cache_timeout(self) -> timedelta:
        """How long a successful network check stays valid."""
        return timedelta(hours=DEFAULT_CACHE_TTL_HOURS)

    def cache(self) -> Optional[Cache]:
        """Cache used to avoid unnecessary requests (None disables caching)."""
        return None

    def url_specific_headers(self, url: str) -> Dict[str, str]:
        """Extra headers to send when checking this URL."""
        return {}

    def should_ignore(self, link: Link) -> bool:
        """Should this link be skipped?"""
        return False

    def probe(self, url: str, headers: Mapping[str, str]) -> Optional[Reason]:
        """
        Check a URL over the network.

        Returns:
            None when reachable, otherwise the failure Reason
        """
        raise NotImplementedError(f"{type(self).__name__} cannot probe URLs")


class BasicContext(Context):
    """
    A Context backed by a ``requests.Session`` and an in-memory cache.

    Usage:
        ctx = BasicContext(options=Options().with_root_directory('docs'))
        outcomes = validate('docs', links, ctx)
    """

    USER_AGENT = DEFAULT_USER_AGENT

    def __init__(
        self,
        options: Optional[Options] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[Cache] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        cache_timeout: timedelta = timedelta(hours=DEFAULT_CACHE_TTL_HOURS),
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        ignore_rules: Optional[Sequence[IgnoreRule]] = None,
        url_headers: Optional[Mapping[str, Mapping[str, str]]] = None,
        user_agent: Optional[str] = None,
    ):
        """
        Initialize the context.

        Args:
            options: Filesystem resolution policy
            session: HTTP session (a new one is created if omitted)
            cache: Shared cache (a new empty one is created if omitted)
            concurrency: Maximum links checked at once
            cache_timeout: How long successful checks stay fresh
            request_timeout: Per-request timeout in seconds
            ignore_rules: Links matching any rule are skipped
            url_headers: Mapping of URL regex -> extra headers
            user_agent: User-Agent for the session
        """
        if concurrency < 1:
            raise ConfigurationError("Concurrency must be at least 1", setting='concurrency')
        if request_timeout <= 0:
            raise ConfigurationError("Request timeout must be positive", setting='request_timeout')

        self.options = options or Options()
        self.session = session or requests.Session()
        self.session.headers['User-Agent'] = user_agent or self.USER_AGENT
        self._cache = cache if cache is not None else Cache()
        self._concurrency = concurrency
        self._cache_timeout = cache_timeout
        self.request_timeout = request_timeout
        self.ignore_rules: List[IgnoreRule] = list(ignore_rules or [])
        self._url_headers: List[Tuple[re.Pattern, Dict[str, str]]] = []
        for pattern, headers in (url_headers or {}).items():
            try:
                self._url_headers.append((re.compile(pattern), dict(headers)))
            except re.error as e:
                raise ConfigurationError(f"Invalid header pattern {pattern!r}: {e}",
                                         setting='url_headers') from e

    @classmethod
    def from_config(cls, config: LinkGuardConfig, **kwargs) -> 'BasicContext':
        """Build a context from a LinkGuardConfig."""
        is_valid, errors = config.validate()
        if not is_valid:
            raise ConfigurationError("; ".join(errors), errors=errors)

        options = (Options()
                   .with_default_file(config.default_file)
                   .with_links_may_traverse_the_root_directory(config.links_may_traverse_root)
                   .with_follow_symlinks(config.follow_symlinks))
        if config.root_directory is not None:
            options = options.with_root_directory(config.root_directory)

        return cls(
            options=options,
            concurrency=config.concurrency,
            cache_timeout=timedelta(hours=config.cache_timeout_hours),
            request_timeout=config.request_timeout,
            user_agent=config.user_agent,
            **kwargs
        )

    def filesystem_options(self) -> Options:
        return self.options

    def concurrency(self) -> int:
        return self._concurrency

    def cache_timeout(self) -> timedelta:
        return self._cache_timeout

    def cache(self) -> Optional[Cache]:
        return self._cache

    def url_specific_headers(self, url: str) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for pattern, extra in self._url_headers:
            if pattern.search(url):
                headers.update(extra)
        return headers

    def should_ignore(self, link: Link) -> bool:
        for rule in self.ignore_rules:
            if rule.matches(link.href):
                logger.debug(f"Ignoring \"{link.href}\": {rule.reason or rule.pattern}")
                return True
        return False

    def probe(self, url: str, headers: Mapping[str, str]) -> Optional[Reason]:
        return web.head(self.session, url, headers, timeout=self.request_timeout)

    def close(self):
        self.session.close()

    def __enter__(self) -> 'BasicContext':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
