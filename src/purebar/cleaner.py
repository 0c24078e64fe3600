"""Reclaim execution with safety checks for purebar."""

import logging
import os
from functools import partial
from pathlib import Path
from typing import Callable

from send2trash import send2trash

from purebar.categories import list_categories
from purebar.models import Category, CleanupResult
from purebar.scanner import find_matches

log = logging.getLogger(__name__)

TrashFunc = Callable[[str], None]

# Home-relative folders that must never be trashed themselves
BLOCKED_PATHS = [
    "~/Documents",
    "~/Desktop",
    "~/Downloads",
    "~/Pictures",
    "~/Music",
    "~/Movies",
    "~/Library",
    "~",
]


def is_path_safe(path: Path, home: Path) -> bool:
    """
    Check if a path may be moved to the trash.

    Args:
        path: Path to check
        home: Home directory the blocked list is resolved against

    Returns:
        True if safe to trash, False otherwise
    """
    path_str = os.path.normpath(str(path))
    home = Path(home)

    for blocked in BLOCKED_PATHS:
        blocked_path = home if blocked == "~" else home / blocked[2:]
        if path_str == os.path.normpath(str(blocked_path)):
            return False

    # Never trash a filesystem root
    if path_str == os.path.normpath(os.sep):
        return False

    return True


def is_inside_allowed_path(path: Path, category: Category, home: Path) -> bool:
    """
    Check if path is strictly inside one of the category's roots.

    Args:
        path: Path to check
        category: Category owning the path
        home: Home directory

    Returns:
        True if path is below a category root (the root itself is excluded)
    """
    path_str = os.path.normpath(str(path))
    for root in category.resolve_paths(home):
        root_str = os.path.normpath(str(root))
        if path_str.startswith(root_str + os.sep):
            return True
    return False


def reclaim_category(
    category: Category,
    home: Path,
    trash: TrashFunc = send2trash,
    dry_run: bool = False,
) -> CleanupResult:
    """
    Move everything a category matches to the trash.

    Per-entry failures are recorded and skipped; the rest of the batch
    still runs. The caller is expected to rescan afterwards.

    Args:
        category: Category to clean
        home: Home directory
        trash: Recoverable delete function (defaults to send2trash)
        dry_run: If True, don't actually trash anything

    Returns:
        CleanupResult with counts and per-entry errors
    """
    result = CleanupResult(category=category.kind, dry_run=dry_run)

    for entry in find_matches(category, home):
        if not is_path_safe(entry.path, home) or not is_inside_allowed_path(
            entry.path, category, home
        ):
            log.warning("Refusing to trash %s for %s", entry.path, category.id)
            result.items_failed += 1
            result.errors.append(f"Blocked path: {entry.path}")
            continue

        if not dry_run:
            try:
                trash(str(entry.path))
            except Exception as e:
                log.warning("Could not trash %s: %s", entry.path, e)
                result.items_failed += 1
                result.errors.append(f"{entry.path}: {e}")
                continue

        result.items_trashed += 1
        result.bytes_matched += entry.size_bytes

    log.info(
        "Reclaimed %s: %d trashed, %d failed, %d bytes%s",
        category.id,
        result.items_trashed,
        result.items_failed,
        result.bytes_matched,
        " (dry run)" if dry_run else "",
    )
    return result


def reclaim_all(
    home: Path,
    categories: list[Category] | None = None,
    trash: TrashFunc = send2trash,
    dry_run: bool = False,
    clean: Callable[[Category], CleanupResult] | None = None,
) -> list[CleanupResult]:
    """
    Reclaim every category sequentially, in registry order.

    One category failing never stops the next one.

    Args:
        home: Home directory
        categories: Categories to clean (defaults to the whole registry)
        trash: Recoverable delete function
        dry_run: If True, don't actually trash anything
        clean: Per-category step replacing the plain reclaim, e.g. one that
            also locks and rescans the category

    Returns:
        List of CleanupResults
    """
    categories = list_categories() if categories is None else categories
    if clean is None:
        clean = partial(reclaim_category, home=home, trash=trash, dry_run=dry_run)

    results = []
    for category in categories:
        try:
            results.append(clean(category))
        except Exception as e:
            log.exception("Reclaim of %s failed", category.id)
            results.append(
                CleanupResult(
                    category=category.kind, dry_run=dry_run, items_failed=1, errors=[str(e)]
                )
            )
    return results
