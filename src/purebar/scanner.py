"""Disk scanning functionality for purebar."""

import logging
import os
import threading
import unicodedata
from pathlib import Path

from purebar.models import Category, MatchedEntry, MatchKind, MatchRule

log = logging.getLogger(__name__)


class ScanCancelled(Exception):
    """Raised inside a walk when its cancel event is set."""


def get_directory_size(
    path: Path,
    cancel: threading.Event | None = None,
) -> tuple[int, int, int]:
    """
    Calculate total size of a directory using os.scandir.

    Symlinks are never followed. Entries that cannot be read are skipped.

    Args:
        path: Directory to scan
        cancel: Optional event; when set the walk stops with ScanCancelled

    Returns:
        Tuple of (total_bytes, file_count, dir_count)
    """
    total_size = 0
    file_count = 0
    dir_count = 0

    def _scan(p: str):
        nonlocal total_size, file_count, dir_count
        try:
            with os.scandir(p) as entries:
                for entry in entries:
                    if cancel is not None and cancel.is_set():
                        raise ScanCancelled(str(path))
                    try:
                        if entry.is_file(follow_symlinks=False):
                            total_size += entry.stat(follow_symlinks=False).st_size
                            file_count += 1
                        elif entry.is_dir(follow_symlinks=False):
                            dir_count += 1
                            _scan(entry.path)
                    except OSError as e:
                        log.debug("Skipping %s: %s", entry.path, e)
                        continue
        except OSError as e:
            log.debug("Cannot list %s: %s", p, e)

    _scan(str(path))
    return total_size, file_count, dir_count


def _extension(name: str) -> str:
    return os.path.splitext(name)[1][1:].lower()


def matches_rule(rule: MatchRule, name: str, size: int) -> bool:
    """
    Check whether an immediate child file is selected by a flat rule.

    Args:
        rule: Rule of kind extensions, prefixes or size_threshold
        name: File name (not the full path)
        size: File size in bytes

    Returns:
        True if the file is matched
    """
    if rule.kind == MatchKind.EXTENSIONS:
        return _extension(name) in rule.extensions
    if rule.kind == MatchKind.PREFIXES:
        # Canonical equivalence: NFD names from HFS+ must match NFC prefixes
        name = unicodedata.normalize("NFC", name)
        return any(
            name.startswith(unicodedata.normalize("NFC", prefix)) for prefix in rule.prefixes
        )
    if rule.kind == MatchKind.SIZE_THRESHOLD:
        return size > rule.min_size_bytes
    return True


def _directory_entries(
    root: Path,
    cancel: threading.Event | None = None,
) -> list[MatchedEntry]:
    """Every immediate child of root, directories carrying their recursive size."""
    entries = []
    try:
        with os.scandir(root) as it:
            for entry in it:
                if cancel is not None and cancel.is_set():
                    raise ScanCancelled(str(root))
                try:
                    if entry.is_dir(follow_symlinks=False):
                        size, files, _ = get_directory_size(Path(entry.path), cancel)
                    elif entry.is_file(follow_symlinks=False):
                        size, files = entry.stat(follow_symlinks=False).st_size, 1
                    else:
                        # Symlinks and special files are removed but never sized
                        size, files = 0, 0
                except OSError as e:
                    log.debug("Skipping %s: %s", entry.path, e)
                    continue
                entries.append(MatchedEntry(path=Path(entry.path), size_bytes=size, file_count=files))
    except (FileNotFoundError, NotADirectoryError):
        return []
    except OSError as e:
        log.debug("Cannot list %s: %s", root, e)
    return entries


def _flat_entries(
    root: Path,
    rule: MatchRule,
    cancel: threading.Event | None = None,
) -> list[MatchedEntry]:
    """Immediate regular files of root selected by a flat rule."""
    entries = []
    try:
        with os.scandir(root) as it:
            for entry in it:
                if cancel is not None and cancel.is_set():
                    raise ScanCancelled(str(root))
                try:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    size = entry.stat(follow_symlinks=False).st_size
                except OSError as e:
                    log.debug("Skipping %s: %s", entry.path, e)
                    continue
                if matches_rule(rule, entry.name, size):
                    entries.append(MatchedEntry(path=Path(entry.path), size_bytes=size, file_count=1))
    except (FileNotFoundError, NotADirectoryError):
        return []
    except OSError as e:
        log.debug("Cannot list %s: %s", root, e)
    return entries


def find_matches(
    category: Category,
    home: Path,
    cancel: threading.Event | None = None,
) -> list[MatchedEntry]:
    """
    Find the entries a category selects across all of its roots.

    This is the single rule evaluation shared by scanning and reclaiming,
    so what is counted is what gets removed.

    Args:
        category: Category to evaluate
        home: Home directory the category roots are resolved against
        cancel: Optional cancel event

    Returns:
        Matched entries; empty when no root exists
    """
    matches: list[MatchedEntry] = []
    for root in category.resolve_paths(home):
        if category.rule.kind == MatchKind.WHOLE_DIRECTORY:
            matches.extend(_directory_entries(root, cancel))
        else:
            matches.extend(_flat_entries(root, category.rule, cancel))
    return matches


def scan_category(
    category: Category,
    home: Path,
    cancel: threading.Event | None = None,
) -> tuple[int, int]:
    """
    Compute the current size of a category.

    Read-only. Missing roots count as zero.

    Args:
        category: Category to scan
        home: Home directory
        cancel: Optional cancel event

    Returns:
        Tuple of (total_bytes, file_count)
    """
    matches = find_matches(category, home, cancel)
    return (
        sum(m.size_bytes for m in matches),
        sum(m.file_count for m in matches),
    )
