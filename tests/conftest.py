"""
Shared fixtures for the linkguard tests.

Nothing here touches the network: ``RecordingContext`` answers probes from
a table and counts how many are in flight.
"""

import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import pytest

from linkguard.cache import Cache
from linkguard.config_logging import reset_config
from linkguard.context import Context
from linkguard.filesystem import Options
from linkguard.models import Link, Reason, Span


class RecordingContext(Context):
    """A Context whose probe answers from a table and records every call."""

    def __init__(self, options: Optional[Options] = None, cache: Optional[Cache] = None,
                 responses: Optional[Mapping[str, Optional[Reason]]] = None,
                 concurrency: int = 4, delay: float = 0.0, ignore=()):
        self.options = options or Options()
        self._cache = cache
        self.responses = dict(responses or {})
        self._concurrency = concurrency
        self.delay = delay
        self.ignore = set(ignore)
        self.probed: List[str] = []
        self.headers_seen: Dict[str, Mapping[str, str]] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def filesystem_options(self) -> Options:
        return self.options

    def concurrency(self) -> int:
        return self._concurrency

    def cache(self) -> Optional[Cache]:
        return self._cache

    def should_ignore(self, link: Link) -> bool:
        return link.href in self.ignore

    def probe(self, url: str, headers: Mapping[str, str]) -> Optional[Reason]:
        with self._lock:
            self.probed.append(url)
            self.headers_seen[url] = headers
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            return self.responses.get(url)
        finally:
            with self._lock:
                self.in_flight -= 1


def make_link(href: str, file: str = "doc.md") -> Link:
    return Link(href=href, span=Span(0, len(href)), file=file)


@pytest.fixture
def site(tmp_path) -> Path:
    """
    A small documentation tree:

        site/
            index.html
            README.md
            docs/
                index.html
                guide.md
                page.html        (no page.md)
                nested/
                    deep.md
            empty/               (no default file)
    """
    root = tmp_path.resolve() / "site"
    (root / "docs" / "nested").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "index.html").write_text("<h1>home</h1>")
    (root / "README.md").write_text("# readme")
    (root / "docs" / "index.html").write_text("<h1>docs</h1>")
    (root / "docs" / "guide.md").write_text("# guide")
    (root / "docs" / "page.html").write_text("<h1>page</h1>")
    (root / "docs" / "nested" / "deep.md").write_text("# deep")
    return root


@pytest.fixture
def options(site) -> Options:
    return Options().with_root_directory(site)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Keep LINKGUARD_* variables from the environment out of the tests."""
    for key in list(os.environ):
        if key.startswith('LINKGUARD_'):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()
    # configure_logging() detaches the package logger from the root logger
    package_logger = logging.getLogger('linkguard')
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
