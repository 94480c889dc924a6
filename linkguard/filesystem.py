"""
Filesystem Link Resolution
==========================
Safely map a (possibly relative, possibly malicious) link onto a file on disk.

Resolution happens in four steps:

1. Join the link onto the (canonical) current directory, or onto the root
   directory when the link is absolute. Absolute links without a configured root are
   always rejected: resolving them against the real filesystem root would
   make ``/etc/passwd`` a valid link.
2. Generate candidates: the joined path followed by the same path with each
   configured alternate extension (``foo.md`` -> ``foo.html``).
3. Canonicalize each candidate in turn, appending the default file when
   it names a directory.
4. Check the result is still inside the root directory, and only then that
   it exists. ``../..`` out of the root is a traversal even when the
   parent directory has no default file; a directory without a default
   file inside the root falls through to the next candidate.
"""

import errno
import logging
import os
from pathlib import Path, PurePath
from types import MappingProxyType
from typing import Callable, Iterator, List, Mapping, Optional, Sequence, Union

from .config_logging import ConfigurationError, LinkValidationError, DEFAULT_DEFAULT_FILE
from .models import Reason

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]
CustomValidation = Callable[[Path, Optional[str]], Optional[Reason]]

DEFAULT_ALTERNATE_EXTENSIONS = MappingProxyType({'md': ('html',)})


def _accept_everything(path: Path, fragment: Optional[str]) -> Optional[Reason]:
    return None


def _normalize_extension(extension: str) -> str:
    return extension.strip().lstrip('.').lower()


class Options:
    """
    Policy used by :func:`resolve_link`.

    Instances are immutable: every ``with_*`` method returns a new
    ``Options`` so one policy can be shared by concurrent checks.

    Usage:
        options = (Options()
                   .with_root_directory('site')
                   .with_default_file('README.md')
                   .with_alternate_extensions({'md': ['html', 'htm']}))
    """

    __slots__ = (
        '_root_directory', '_default_file', '_links_may_traverse_the_root_directory',
        '_follow_symlinks', '_alternate_extensions', '_custom_validation',
    )

    def __init__(self):
        self._root_directory: Optional[Path] = None
        self._default_file = DEFAULT_DEFAULT_FILE
        self._links_may_traverse_the_root_directory = False
        self._follow_symlinks = True
        self._alternate_extensions: Mapping[str, Sequence[str]] = DEFAULT_ALTERNATE_EXTENSIONS
        self._custom_validation: CustomValidation = _accept_everything

    def _replace(self, **changes) -> 'Options':
        clone = Options.__new__(Options)
        for name in Options.__slots__:
            setattr(clone, name, getattr(self, name))
        for name, value in changes.items():
            setattr(clone, '_' + name, value)
        return clone

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def root_directory(self) -> Optional[Path]:
        return self._root_directory

    @property
    def default_file(self) -> str:
        return self._default_file

    @property
    def links_may_traverse_the_root_directory(self) -> bool:
        return self._links_may_traverse_the_root_directory

    @property
    def follow_symlinks(self) -> bool:
        return self._follow_symlinks

    @property
    def alternate_extensions(self) -> Mapping[str, Sequence[str]]:
        return self._alternate_extensions

    @property
    def custom_validation(self) -> CustomValidation:
        return self._custom_validation

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    def with_root_directory(self, root_directory: PathLike) -> 'Options':
        """
        Set the root directory, converting it to its canonical form.

        Raises:
            ConfigurationError: If the directory does not exist
        """
        try:
            canonical = Path(root_directory).resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise ConfigurationError(
                f"Unable to canonicalize root directory {root_directory}: {e}",
                setting='root_directory'
            ) from e
        if not canonical.is_dir():
            raise ConfigurationError(
                f"Root directory is not a directory: {canonical}",
                setting='root_directory'
            )
        return self._replace(root_directory=canonical)

    def with_default_file(self, default_file: str) -> 'Options':
        """Set the file name used when a link points at a directory."""
        if not default_file or PurePath(default_file).name != default_file:
            raise ConfigurationError(f"Invalid default file: {default_file!r}", setting='default_file')
        return self._replace(default_file=default_file)

    def with_links_may_traverse_the_root_directory(self, value: bool) -> 'Options':
        return self._replace(links_may_traverse_the_root_directory=bool(value))

    def with_follow_symlinks(self, value: bool) -> 'Options':
        return self._replace(follow_symlinks=bool(value))

    def with_alternate_extensions(self, mapping: Mapping[str, Sequence[str]]) -> 'Options':
        """Replace the alternate-extension table (``{'md': ['html']}``)."""
        normalized = {
            _normalize_extension(ext): tuple(_normalize_extension(alt) for alt in alternates)
            for ext, alternates in mapping.items()
        }
        return self._replace(alternate_extensions=MappingProxyType(normalized))

    def with_custom_validation(self, hook: CustomValidation) -> 'Options':
        """
        Install an extra check run on every resolved path.

        The hook receives ``(path, fragment)`` and returns a ``Reason`` to
        reject the link, or None to accept it.
        """
        if not callable(hook):
            raise ConfigurationError("custom_validation must be callable", setting='custom_validation')
        return self._replace(custom_validation=hook)

    # -------------------------------------------------------------------------
    # Resolution steps
    # -------------------------------------------------------------------------

    def join(self, current_directory: PathLike, link: PathLike) -> Path:
        """
        Join a link onto the directory it should be resolved against.

        ``current_directory`` is canonicalized first, so a document reached
        through a symlinked directory is still compared against the
        canonical root when symlinks are not followed.
        """
        link = PurePath(link)

        if link.is_absolute() or link.anchor:
            # Absolute links are relative to the root directory, never to
            # the real filesystem root
            if self._root_directory is None:
                raise LinkValidationError(Reason.traverses_parent_directories())
            return self._root_directory.joinpath(*link.parts[1:])

        return Path(current_directory).resolve().joinpath(link)

    def possible_names(self, path: Path) -> List[Path]:
        """The path itself, then one candidate per alternate extension."""
        candidates = [path]
        extension = _normalize_extension(path.suffix)
        if extension:
            for alternate in self._alternate_extensions.get(extension, ()):
                candidates.append(path.with_suffix('.' + alternate))
        return candidates

    def _canonical_form(self, path: Path, strict: bool = True) -> Path:
        if self._follow_symlinks:
            return path.resolve(strict=strict)
        canonical = Path(os.path.normpath(os.path.abspath(path)))
        if strict and not canonical.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(canonical))
        return canonical

    def canonicalize(self, path: Path) -> Path:
        """
        Canonicalize a candidate according to the symlink policy.

        A directory is replaced by its default file. The default file itself
        may not exist; :func:`resolve_link` checks that after the sanity check.

        Raises:
            OSError: If the candidate does not exist
        """
        canonical = self._canonical_form(path)

        if canonical.is_dir():
            canonical = self._canonical_form(canonical / self._default_file, strict=False)

        return canonical

    def sanity_check(self, path: Path):
        """Reject paths that escaped the root directory."""
        root = self._root_directory
        if root is None or self._links_may_traverse_the_root_directory:
            return
        if path != root and root not in path.parents:
            raise LinkValidationError(Reason.traverses_parent_directories())

    def __repr__(self) -> str:
        return (
            f"Options(root_directory={self._root_directory!r}, default_file={self._default_file!r}, "
            f"links_may_traverse_the_root_directory={self._links_may_traverse_the_root_directory}, "
            f"follow_symlinks={self._follow_symlinks}, "
            f"alternate_extensions={dict(self._alternate_extensions)!r})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Options):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in Options.__slots__)

    __hash__ = None


def _iter_canonical(options: Options, candidates: List[Path]) -> Iterator[Union[Path, OSError]]:
    for candidate in candidates:
        try:
            yield options.canonicalize(candidate)
        except OSError as e:
            logger.debug(f"Candidate {candidate} rejected: {e}")
            yield e
        except RuntimeError as e:
            # Symlink loop
            logger.debug(f"Candidate {candidate} rejected: {e}")
            yield OSError(str(e))


def resolve_link(current_directory: PathLike, link: PathLike, options: Options) -> Path:
    """
    Resolve a link relative to the current directory.

    Args:
        current_directory: Directory containing the document with the link
        link: The filesystem part of the href
        options: Resolution policy

    Returns:
        The canonical path of the target

    Raises:
        LinkValidationError: With ``TraversesParentDirectories`` when the
            link leaves the root, or an IO reason when nothing exists
    """
    joined = options.join(current_directory, link)
    candidates = options.possible_names(joined)

    first_error: Optional[OSError] = None
    missing: Optional[Path] = None
    for result in _iter_canonical(options, candidates):
        if isinstance(result, OSError):
            if first_error is None or isinstance(result, PermissionError):
                first_error = result
            continue

        options.sanity_check(result)
        if not result.exists():
            # A directory without a default file; try the next candidate
            logger.debug(f"Candidate {result} does not exist")
            missing = result
            continue
        return result

    logger.debug(f"None of the candidates for {link} exist")
    if isinstance(first_error, PermissionError):
        raise LinkValidationError(Reason.from_os_error(first_error))
    raise LinkValidationError(Reason.not_found(f"{missing or link}: No such file or directory"))


def check_filesystem(current_directory: PathLike, path: PathLike,
                     fragment: Optional[str], ctx) -> Path:
    """
    Check a filesystem link using the context's resolution policy.

    Returns:
        The resolved path

    Raises:
        LinkValidationError: If resolution or custom validation fails
    """
    options = ctx.filesystem_options()
    logger.debug(f"Checking \"{path}\" in \"{current_directory}\" on the filesystem")

    resolved = resolve_link(current_directory, path, options)
    logger.debug(f"\"{path}\" resolved to \"{resolved}\"")

    if fragment:
        logger.warning(
            f"Not checking that the \"{fragment}\" section exists in \"{resolved}\" "
            f"because fragment resolution isn't implemented"
        )

    reason = options.custom_validation(resolved, fragment)
    if reason is not None:
        raise LinkValidationError(reason)

    return resolved
