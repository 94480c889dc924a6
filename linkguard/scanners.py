"""
Link Scanners
=============
Extract ``(href, Span)`` pairs from source text.

- markdown: inline links and images, autolinks, and reference-style links
  (reported at the place they are used), ignoring code
- plaintext: bare ``scheme://`` URLs in ordinary text
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .models import Link, Span

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = ('.md', '.markdown')

# =============================================================================
# MARKDOWN
# =============================================================================

_FENCE_OPEN = re.compile(r'^ {0,3}(`{3,}|~{3,})')
_CODE_SPAN = re.compile(r'(`+)(?!`)(.+?)(?<!`)\1(?!`)', re.S)

_LABEL = r'(?:[^\[\]\\]|\\.)+'
_TEXT = r'(?:[^\[\]\\]|\\.|\[(?:[^\[\]\\]|\\.)*\])*'
_DEST = r'<[^<>\n]*>|[^\s()<>]*(?:\([^\s()]*\)[^\s()<>]*)*'
_TITLE = r'"[^"]*"|\'[^\']*\'|\([^()]*\)'

_INLINE_LINK = re.compile(
    rf'!?\[(?P<text>{_TEXT})\]\(\s*(?P<dest>{_DEST})(?:\s+(?:{_TITLE}))?\s*\)'
)
_REFERENCE_DEFINITION = re.compile(
    rf'^ {{0,3}}\[(?P<label>{_LABEL})\]:[ \t]*\n?[ \t]*(?P<dest><[^<>\n]*>|\S+)[^\n]*$',
    re.M
)
_FULL_REFERENCE = re.compile(rf'!?\[(?P<text>{_TEXT})\]\[(?P<label>{_LABEL})?\]')
_SHORTCUT_REFERENCE = re.compile(rf'!?\[(?P<label>{_LABEL})\](?![\[(:])')
_AUTOLINK = re.compile(r'<(?P<dest>[A-Za-z][A-Za-z0-9+.\-]{1,31}:[^\s<>]*)>')


def _normalize_label(label: str) -> str:
    return ' '.join(label.split()).casefold()


def _strip_angle_brackets(dest: str) -> str:
    if dest.startswith('<') and dest.endswith('>'):
        return dest[1:-1]
    return dest


def _blank(text: str, start: int, end: int) -> str:
    """Replace a region with spaces, keeping newlines so offsets stay put."""
    region = ''.join('\n' if ch == '\n' else ' ' for ch in text[start:end])
    return text[:start] + region + text[end:]


def _mask_code(src: str) -> str:
    """Blank out fenced code blocks and inline code spans."""
    masked = src
    offset = 0
    fence: Optional[str] = None
    fence_start = 0

    for line in src.splitlines(keepends=True):
        stripped = line.strip()
        if fence is None:
            match = _FENCE_OPEN.match(line)
            if match:
                fence = match.group(1)
                fence_start = offset
        elif stripped.startswith(fence[0] * len(fence)) and set(stripped) <= {fence[0]}:
            masked = _blank(masked, fence_start, offset + len(line))
            fence = None
        offset += len(line)

    if fence is not None:
        # Unclosed fences run to the end of the document
        masked = _blank(masked, fence_start, len(masked))

    for match in _CODE_SPAN.finditer(masked):
        if '\n\n' not in match.group(0):
            masked = _blank(masked, match.start(), match.end())

    return masked


def markdown(src: str) -> Iterator[Tuple[str, Span]]:
    """
    Find every link and image in a markdown document.

    Examples:
        >>> list(markdown("This is a [link](https://example.com/)"))
        [('https://example.com/', Span(start=10, end=38))]
    """
    text = _mask_code(src)
    found: List[Tuple[str, Span]] = []

    definitions: Dict[str, str] = {}
    for match in list(_REFERENCE_DEFINITION.finditer(text)):
        label = match.group('label')
        if label.startswith('^'):
            # Footnote definitions hold text, not a destination
            continue
        # The first definition of a label wins
        definitions.setdefault(_normalize_label(label), _strip_angle_brackets(match.group('dest')))
        text = _blank(text, match.start(), match.end())

    for match in _INLINE_LINK.finditer(text):
        found.append((_strip_angle_brackets(match.group('dest')), Span(match.start(), match.end())))
        text = _blank(text, match.start(), match.end())

    for match in _FULL_REFERENCE.finditer(text):
        label = match.group('label') or match.group('text')
        dest = definitions.get(_normalize_label(label))
        if dest is not None:
            found.append((dest, Span(match.start(), match.end())))
            text = _blank(text, match.start(), match.end())

    for match in _SHORTCUT_REFERENCE.finditer(text):
        dest = definitions.get(_normalize_label(match.group('label')))
        if dest is not None:
            found.append((dest, Span(match.start(), match.end())))

    for match in _AUTOLINK.finditer(text):
        found.append((match.group('dest'), Span(match.start(), match.end())))

    found.sort(key=lambda item: item[1].start)
    return iter(found)


# =============================================================================
# PLAIN TEXT
# =============================================================================

_BARE_URL = re.compile(r'(?<![A-Za-z0-9+.\-])[A-Za-z][A-Za-z0-9+.\-]*://[^\s<>"\'`{}|\\^\[\]]+')
_TRAILING_PUNCTUATION = '.,;:!?\'"'


def _trim_url(url: str) -> str:
    while url:
        last = url[-1]
        if last in _TRAILING_PUNCTUATION:
            url = url[:-1]
        elif last == ')' and url.count('(') < url.count(')'):
            url = url[:-1]
        else:
            break
    return url


def plaintext(src: str) -> Iterator[Tuple[str, Span]]:
    """
    Find URLs in ordinary text.

    Examples:
        >>> list(plaintext("hello http://localhost/ world."))
        [('http://localhost/', Span(start=6, end=23))]
    """
    for match in _BARE_URL.finditer(src):
        url = _trim_url(match.group(0))
        if '://' not in url or url.endswith('://'):
            continue
        yield url, Span(match.start(), match.start() + len(url))


# =============================================================================
# FILES
# =============================================================================

def scan_text(src: str, file: str = "", as_markdown: bool = True) -> List[Link]:
    """Turn source text into Links using the chosen scanner."""
    scanner = markdown if as_markdown else plaintext
    return [Link(href=href, span=span, file=file) for href, span in scanner(src)]


def scan_file(path: Union[str, Path]) -> List[Link]:
    """
    Read a file and extract its links.

    Markdown files (.md, .markdown) use the markdown scanner, everything
    else the plaintext scanner.
    """
    path = Path(path)
    src = path.read_text(encoding='utf-8', errors='replace')
    links = scan_text(src, file=str(path), as_markdown=path.suffix.lower() in MARKDOWN_SUFFIXES)
    logger.debug(f"Found {len(links)} links in {path}")
    return links
