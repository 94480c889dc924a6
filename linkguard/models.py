"""
linkguard Data Models
=====================
Links, link categories, failure reasons and batch outcomes.

This module is designed to be independent and can be tested separately
from the rest of the validation system.
"""

import errno
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Dict, Iterable, List, Optional, Union
from urllib.parse import SplitResult, unquote, urlsplit


# =============================================================================
# LINKS
# =============================================================================

@dataclass(frozen=True)
class Span:
    """Location of a link inside its source text (start inclusive, end exclusive)."""
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid span: {self.start}..{self.end}")

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Link:
    """
    A hyperlink found in a document.

    Attributes:
        href: The raw link target, exactly as written
        span: Where the link appears in the source text
        file: Identifier of the source document
    """
    href: str
    span: Span
    file: str = ""

    def category(self) -> Optional['Category']:
        """Classify this link's href (see :func:`classify`)."""
        return classify(self.href)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'href': self.href,
            'file': self.file,
            'start': self.span.start,
            'end': self.span.end,
        }


# =============================================================================
# CATEGORIES
# =============================================================================

class LinkType(Enum):
    """Kinds of link target the validator knows how to check."""
    FILE_SYSTEM = "file_system"       # Local/relative file paths
    CURRENT_FILE = "current_file"     # #fragment within the same document
    URL = "url"                       # Anything with a scheme


@dataclass(frozen=True)
class FileSystem:
    """A path on the local filesystem, optionally with a #fragment."""
    path: PurePath
    fragment: Optional[str] = None
    link_type = LinkType.FILE_SYSTEM


@dataclass(frozen=True)
class CurrentFile:
    """A bare #fragment pointing somewhere inside the current document."""
    fragment: str
    link_type = LinkType.CURRENT_FILE


@dataclass(frozen=True)
class Url:
    """A URL with a recognizable scheme."""
    url: str
    parts: SplitResult = field(compare=False, repr=False)
    link_type = LinkType.URL

    @classmethod
    def parse(cls, href: str) -> Optional['Url']:
        """Parse ``href`` as a URL, returning None when it has no usable scheme."""
        match = _SCHEME_RE.match(href)
        if not match:
            return None

        scheme = match.group(1).lower()
        # Single letters are Windows drive names, not schemes
        if len(scheme) == 1:
            return None

        rest = href[match.end():]
        if scheme in _AUTHORITY_SCHEMES and not rest.startswith('//'):
            return None

        try:
            parts = urlsplit(href)
            parts.port  # Raises ValueError for an invalid port
        except ValueError:
            return None

        if scheme in _AUTHORITY_SCHEMES and scheme != 'file' and not parts.hostname:
            return None

        return cls(url=href, parts=parts)

    @property
    def scheme(self) -> str:
        return self.parts.scheme

    @property
    def host(self) -> str:
        return self.parts.hostname or ""

    @property
    def fragment(self) -> Optional[str]:
        """The fragment, or None when the URL has no '#'."""
        if '#' not in self.url:
            return None
        return self.parts.fragment

    def __str__(self) -> str:
        return self.url


Category = Union[FileSystem, CurrentFile, Url]

_SCHEME_RE = re.compile(r'^([A-Za-z][A-Za-z0-9+.\-]*):')
_AUTHORITY_SCHEMES = frozenset(('http', 'https', 'ftp', 'ftps', 'ws', 'wss', 'file'))

# Characters that may not appear unescaped in a URI path
_FORBIDDEN_PATH_CHARS = re.compile(r'[\x00-\x20\x7f"<>`{}|^]')
_MALFORMED_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')


def decode_uri_path(path: str) -> Optional[str]:
    """
    Strictly percent-decode a URI path.

    Returns None when the path contains characters that are not allowed in
    a URI or malformed percent escapes.
    """
    if _FORBIDDEN_PATH_CHARS.search(path) or _MALFORMED_ESCAPE.search(path):
        return None
    try:
        decoded = unquote(path, errors='strict')
    except UnicodeDecodeError:
        return None
    if '\x00' in decoded:
        return None
    return decoded


def classify(href: str) -> Optional[Category]:
    """
    Decide what kind of target an href points at.

    Args:
        href: Raw link target

    Returns:
        ``Url`` when the href has a scheme, ``CurrentFile`` for a bare
        ``#fragment``, ``FileSystem`` for a decodable path, or None when the
        href is neither.
    """
    url = Url.parse(href)
    if url is not None:
        return url

    path, hash_sign, fragment = href.partition('#')
    fragment = fragment if hash_sign else None

    if not path:
        return CurrentFile(fragment) if fragment is not None else None

    path = path.split('?', 1)[0]
    if not path:
        return None

    decoded = decode_uri_path(path)
    if not decoded:
        return None

    return FileSystem(path=PurePath(decoded), fragment=fragment)


# =============================================================================
# FAILURE REASONS
# =============================================================================

class ReasonKind(Enum):
    """Top-level failure taxonomy."""
    TRAVERSES_PARENT_DIRECTORIES = "traverses_parent_directories"
    IO = "io"
    NETWORK = "network"


class IoKind(Enum):
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    OTHER = "other"


class NetworkKind(Enum):
    TIMEOUT = "timeout"
    STATUS = "status"
    TRANSPORT = "transport"


_NOT_FOUND_ERRNOS = frozenset((errno.ENOENT, errno.ENOTDIR))
_PERMISSION_ERRNOS = frozenset((errno.EACCES, errno.EPERM))


@dataclass(frozen=True)
class Reason:
    """
    Why a link is invalid.

    Attributes:
        kind: Top-level category of failure
        subkind: IoKind or NetworkKind for IO and network failures
        detail: Human-readable detail
        status_code: HTTP status for NetworkKind.STATUS failures
    """
    kind: ReasonKind
    subkind: Optional[Union[IoKind, NetworkKind]] = None
    detail: str = ""
    status_code: Optional[int] = None

    @classmethod
    def traverses_parent_directories(cls) -> 'Reason':
        return cls(ReasonKind.TRAVERSES_PARENT_DIRECTORIES)

    @classmethod
    def io(cls, subkind: IoKind, detail: str = "") -> 'Reason':
        return cls(ReasonKind.IO, subkind, detail)

    @classmethod
    def not_found(cls, detail: str = "") -> 'Reason':
        return cls.io(IoKind.NOT_FOUND, detail)

    @classmethod
    def network(cls, subkind: NetworkKind, detail: str = "",
                status_code: Optional[int] = None) -> 'Reason':
        return cls(ReasonKind.NETWORK, subkind, detail, status_code)

    @classmethod
    def from_os_error(cls, error: OSError) -> 'Reason':
        """Map an OSError onto the IO taxonomy."""
        if isinstance(error, (FileNotFoundError, NotADirectoryError)) or error.errno in _NOT_FOUND_ERRNOS:
            subkind = IoKind.NOT_FOUND
        elif isinstance(error, PermissionError) or error.errno in _PERMISSION_ERRNOS:
            subkind = IoKind.PERMISSION
        else:
            subkind = IoKind.OTHER
        return cls.io(subkind, error.strerror or str(error))

    def is_not_found(self) -> bool:
        """Was this failure due to a missing file?"""
        return self.kind is ReasonKind.IO and self.subkind is IoKind.NOT_FOUND

    def is_timeout(self) -> bool:
        """Did the network probe time out?"""
        return self.kind is ReasonKind.NETWORK and self.subkind is NetworkKind.TIMEOUT

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'subkind': self.subkind.value if self.subkind else None,
            'detail': self.detail,
            'status_code': self.status_code,
        }

    def __str__(self) -> str:
        if self.kind is ReasonKind.TRAVERSES_PARENT_DIRECTORIES:
            return 'Linking outside of the "root" directory is forbidden'
        if self.kind is ReasonKind.IO:
            message = "An OS-level error occurred"
        else:
            message = "The web client encountered an error"
        suffix = self.detail or (self.subkind.value if self.subkind else "")
        return f"{message}: {suffix}" if suffix else message


# =============================================================================
# OUTCOMES
# =============================================================================

class OutcomeKind(Enum):
    VALID = "valid"
    INVALID = "invalid"
    IGNORED = "ignored"
    UNKNOWN_CATEGORY = "unknown_category"


@dataclass(frozen=True)
class InvalidLink:
    """A link and the reason it is invalid."""
    link: Link
    reason: Reason

    def to_dict(self) -> Dict[str, Any]:
        return {**self.link.to_dict(), 'reason': self.reason.to_dict(), 'message': str(self.reason)}


@dataclass(frozen=True)
class Outcome:
    """The result of validating a single link."""
    kind: OutcomeKind
    link: Link
    reason: Optional[Reason] = None

    @classmethod
    def valid(cls, link: Link) -> 'Outcome':
        return cls(OutcomeKind.VALID, link)

    @classmethod
    def invalid(cls, link: Link, reason: Reason) -> 'Outcome':
        return cls(OutcomeKind.INVALID, link, reason)

    @classmethod
    def ignored(cls, link: Link) -> 'Outcome':
        return cls(OutcomeKind.IGNORED, link)

    @classmethod
    def unknown_category(cls, link: Link) -> 'Outcome':
        return cls(OutcomeKind.UNKNOWN_CATEGORY, link)


@dataclass
class Outcomes:
    """
    The result of validating a batch of links.

    Attributes:
        valid: Links that point at something real
        invalid: Broken links, each with its reason
        ignored: Links the context asked to skip
        unknown_category: Links that could not be classified

    List order follows completion order, not input order.
    """
    valid: List[Link] = field(default_factory=list)
    invalid: List[InvalidLink] = field(default_factory=list)
    ignored: List[Link] = field(default_factory=list)
    unknown_category: List[Link] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'Outcomes':
        return cls()

    def add(self, outcome: Outcome):
        """File a single outcome into its bucket."""
        if outcome.kind is OutcomeKind.VALID:
            self.valid.append(outcome.link)
        elif outcome.kind is OutcomeKind.INVALID:
            self.invalid.append(InvalidLink(outcome.link, outcome.reason))
        elif outcome.kind is OutcomeKind.IGNORED:
            self.ignored.append(outcome.link)
        else:
            self.unknown_category.append(outcome.link)

    def extend(self, outcomes: Iterable[Outcome]):
        for outcome in outcomes:
            self.add(outcome)

    def merge(self, other: 'Outcomes') -> 'Outcomes':
        """Merge another batch into this one (in place) and return self."""
        self.valid.extend(other.valid)
        self.invalid.extend(other.invalid)
        self.ignored.extend(other.ignored)
        self.unknown_category.extend(other.unknown_category)
        return self

    def __len__(self) -> int:
        return len(self.valid) + len(self.invalid) + len(self.ignored) + len(self.unknown_category)

    @property
    def is_ok(self) -> bool:
        """True when no link is invalid."""
        return not self.invalid

    def as_sets(self) -> Dict[str, frozenset]:
        """Order-insensitive view of the four buckets, for comparisons."""
        return {
            'valid': frozenset(self.valid),
            'invalid': frozenset(self.invalid),
            'ignored': frozenset(self.ignored),
            'unknown_category': frozenset(self.unknown_category),
        }

    def summary(self) -> Dict[str, int]:
        """Counts per bucket plus coarse triage of the failures."""
        return {
            'total': len(self),
            'valid': len(self.valid),
            'invalid': len(self.invalid),
            'ignored': len(self.ignored),
            'unknown_category': len(self.unknown_category),
            'not_found': sum(1 for item in self.invalid if item.reason.is_not_found()),
            'timed_out': sum(1 for item in self.invalid if item.reason.is_timeout()),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'summary': self.summary(),
            'valid': [link.to_dict() for link in self.valid],
            'invalid': [item.to_dict() for item in self.invalid],
            'ignored': [link.to_dict() for link in self.ignored],
            'unknown_category': [link.to_dict() for link in self.unknown_category],
        }
