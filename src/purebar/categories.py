"""Cleanable category definitions for purebar."""

from purebar.models import Category, CategoryKind, MatchKind, MatchRule

# Files in ~/Downloads strictly larger than this are "large"
LARGE_FILE_THRESHOLD = 100_000_000

DOWNLOAD_EXTENSIONS = ("dmg", "pkg", "zip")

# macOS names screenshots after the system language
SCREENSHOT_PREFIXES = ("Capture d’écran", "Screenshot")

# Display order, not priority
CATEGORIES: dict[CategoryKind, Category] = {
    CategoryKind.SYSTEM_CACHE: Category(
        kind=CategoryKind.SYSTEM_CACHE,
        name="System Caches",
        icon="memorychip",
        color="blue",
        rule=MatchRule(kind=MatchKind.WHOLE_DIRECTORY),
        paths=("~/Library/Caches",),
    ),
    CategoryKind.BROWSER_CACHE: Category(
        kind=CategoryKind.BROWSER_CACHE,
        name="Browser Caches",
        icon="globe",
        color="purple",
        rule=MatchRule(kind=MatchKind.WHOLE_DIRECTORY),
        paths=(
            "~/Library/Safari/LocalStorage",
            "~/Library/Application Support/Google/Chrome/Default/Cache",
        ),
    ),
    CategoryKind.LARGE_FILES: Category(
        kind=CategoryKind.LARGE_FILES,
        name="Large Files",
        icon="shippingbox.fill",
        color="pink",
        rule=MatchRule(kind=MatchKind.SIZE_THRESHOLD, min_size_bytes=LARGE_FILE_THRESHOLD),
        paths=("~/Downloads",),
    ),
    CategoryKind.LOGS: Category(
        kind=CategoryKind.LOGS,
        name="Logs",
        icon="doc.text.magnifyingglass",
        color="orange",
        rule=MatchRule(kind=MatchKind.WHOLE_DIRECTORY),
        paths=("~/Library/Logs",),
    ),
    CategoryKind.CRASH_REPORTS: Category(
        kind=CategoryKind.CRASH_REPORTS,
        name="Crash Reports",
        icon="exclamationmark.triangle",
        color="yellow",
        rule=MatchRule(kind=MatchKind.WHOLE_DIRECTORY),
        paths=("~/Library/Logs/DiagnosticReports",),
    ),
    CategoryKind.DOWNLOADS: Category(
        kind=CategoryKind.DOWNLOADS,
        name="Installers & Archives",
        icon="arrow.down.circle",
        color="green",
        rule=MatchRule(kind=MatchKind.EXTENSIONS, extensions=DOWNLOAD_EXTENSIONS),
        paths=("~/Downloads",),
    ),
    CategoryKind.SCREEN_CAPTURES: Category(
        kind=CategoryKind.SCREEN_CAPTURES,
        name="Screenshots",
        icon="camera.viewfinder",
        color="cyan",
        rule=MatchRule(kind=MatchKind.PREFIXES, prefixes=SCREENSHOT_PREFIXES),
        paths=("~/Desktop",),
    ),
}


def list_categories() -> list[Category]:
    """Get all categories in display order."""
    return list(CATEGORIES.values())


def get_category(kind: CategoryKind | str) -> Category | None:
    """Get a category by kind or its string id."""
    try:
        return CATEGORIES.get(CategoryKind(kind))
    except ValueError:
        return None


def category_ids() -> list[str]:
    """String ids of all categories, in display order."""
    return [c.id for c in CATEGORIES.values()]
