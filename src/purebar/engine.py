"""Scan, clean and telemetry orchestration engine."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable

from send2trash import send2trash

from purebar.categories import list_categories
from purebar.cleaner import TrashFunc, reclaim_all, reclaim_category
from purebar.commands import ACTION_COMMANDS, CommandOutcome, CommandRunner, MaintenanceAction
from purebar.models import (
    Category,
    CategoryKind,
    CategoryState,
    CleanupResult,
    EngineState,
    ScanResult,
    SystemSnapshot,
)
from purebar.scanner import ScanCancelled, scan_category
from purebar.settings import EngineSettings
from purebar.telemetry import PsutilStats, TelemetrySampler

log = logging.getLogger(__name__)

StateListener = Callable[[EngineState], None]


class Engine:
    """
    Owns category results and the telemetry snapshot.

    Scans and cleans run on a small thread pool; every state write goes
    through one lock and consumers only ever see immutable EngineState
    views. Work on a single category is serialized by a per-category lock,
    so the scan that follows a clean always starts after that clean.

    Example:
        with Engine() as engine:
            concurrent.futures.wait(engine.scan_all())
            print(engine.state().total_reclaimable_human)
    """

    def __init__(
        self,
        home: Path | None = None,
        settings: EngineSettings | None = None,
        stats: Any = None,
        runner: CommandRunner | None = None,
        trash: TrashFunc = send2trash,
        categories: list[Category] | None = None,
        on_change: StateListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.home = Path(home) if home else Path.home()
        self.settings = settings or EngineSettings()
        self.categories = list(categories) if categories is not None else list_categories()
        self.sampler = TelemetrySampler(
            stats if stats is not None else PsutilStats(),
            self.home,
            interface=self.settings.network_interface,
            clock=clock,
        )
        self.runner = runner or CommandRunner()
        self.trash = trash
        self.on_change = on_change
        self.clock = clock

        self._by_kind = {c.kind: c for c in self.categories}

        self._lock = threading.Lock()
        self._results: dict[CategoryKind, ScanResult] = {}
        self._states = {kind: CategoryState.IDLE for kind in self._by_kind}
        self._category_locks = {kind: threading.Lock() for kind in self._by_kind}
        self._scan_futures: dict[CategoryKind, Future] = {}
        self._clean_futures: dict[CategoryKind, Future] = {}
        self._batch_future: Future | None = None
        self._batch_pending: set[CategoryKind] = set()
        self._snapshot = SystemSnapshot()
        self._busy = {action: False for action in MaintenanceAction}
        self._action_futures: dict[MaintenanceAction, Future] = {}

        self._cancel = threading.Event()
        self._stop_event = threading.Event()
        self._shutdown_event = threading.Event()
        self._threads: list[threading.Thread] = []

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="purebar-work"
        )
        self._command_executor = ThreadPoolExecutor(
            max_workers=len(MaintenanceAction), thread_name_prefix="purebar-cmd"
        )

    def __enter__(self) -> Engine:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    # -- state ---------------------------------------------------------------

    def state(self) -> EngineState:
        """Return a consistent, immutable view of everything the engine knows."""
        with self._lock:
            results = {
                kind: result.model_copy(
                    update={"is_scanning": self._states[kind] == CategoryState.SCANNING}
                )
                for kind, result in self._results.items()
            }
            return EngineState(
                categories=list(self.categories),
                results=results,
                scanning=frozenset(
                    k for k, s in self._states.items() if s == CategoryState.SCANNING
                ),
                cleaning=frozenset(
                    k for k, s in self._states.items() if s == CategoryState.CLEANING
                ),
                snapshot=self._snapshot,
                is_boosting=self._busy[MaintenanceAction.BOOST],
                is_flushing=self._busy[MaintenanceAction.FLUSH_DNS],
                is_maintaining=self._busy[MaintenanceAction.MAINTENANCE],
            )

    def _notify(self) -> None:
        if not self.on_change:
            return
        try:
            self.on_change(self.state())
        except Exception as e:
            log.warning("State listener error: %s", e)

    def _set_state(self, kind: CategoryKind, state: CategoryState) -> None:
        with self._lock:
            self._states[kind] = state
        self._notify()

    def _category(self, kind: CategoryKind | str) -> Category:
        try:
            return self._by_kind[CategoryKind(kind)]
        except (ValueError, KeyError):
            raise KeyError(f"Unknown category: {kind}") from None

    def _pending(self, kind: CategoryKind) -> Future | None:
        """Future that will settle this category, if any. Caller holds the lock."""
        for futures in (self._clean_futures, self._scan_futures):
            future = futures.get(kind)
            if future is not None and not future.done():
                return future
        if kind in self._batch_pending and self._batch_future is not None:
            return self._batch_future
        return None

    # -- scanning ------------------------------------------------------------

    def scan(self, kind: CategoryKind | str) -> Future:
        """
        Request a scan of one category.

        If the category is already being scanned or cleaned, the request is
        coalesced and the outstanding future is returned instead.
        """
        category = self._category(kind)
        with self._lock:
            pending = self._pending(category.kind)
            if pending is not None:
                log.debug("Coalescing scan request for %s", category.id)
                return pending
            self._states[category.kind] = CategoryState.SCANNING
            future = self._executor.submit(self._scan_task, category)
            self._scan_futures[category.kind] = future
        self._notify()
        return future

    def scan_all(self) -> list[Future]:
        """Fan out one scan per category; results are applied as they finish."""
        return [self.scan(category.kind) for category in self.categories]

    def _scan_task(self, category: Category) -> ScanResult | None:
        with self._category_locks[category.kind]:
            return self._run_scan(category)

    def _run_scan(self, category: Category) -> ScanResult | None:
        """Scan and publish. Caller holds the category lock."""
        self._set_state(category.kind, CategoryState.SCANNING)
        try:
            size, files = scan_category(category, self.home, self._cancel)
        except ScanCancelled:
            log.debug("Scan of %s cancelled", category.id)
            return None
        except Exception:
            log.exception("Scan of %s failed", category.id)
            return None
        finally:
            with self._lock:
                self._states[category.kind] = CategoryState.IDLE

        result = ScanResult(category=category.kind, size_bytes=size, file_count=files)
        with self._lock:
            self._results[category.kind] = result
        log.debug("Scanned %s: %d bytes in %d files", category.id, size, files)
        self._notify()
        return result

    # -- cleaning ------------------------------------------------------------

    def clean_one(self, kind: CategoryKind | str) -> Future:
        """
        Move a category's matched files to the trash, then rescan it.

        A second request while a clean of the same category is pending
        returns the pending future.
        """
        category = self._category(kind)
        with self._lock:
            pending = self._clean_futures.get(category.kind)
            if pending is not None and not pending.done():
                return pending
            if category.kind in self._batch_pending and self._batch_future is not None:
                return self._batch_future
            future = self._executor.submit(self._clean_task, category)
            self._clean_futures[category.kind] = future
        return future

    def clean_all(self) -> Future:
        """Clean every category sequentially in registry order (best effort)."""
        with self._lock:
            if self._batch_future is not None and not self._batch_future.done():
                return self._batch_future
            self._batch_pending = set(self._by_kind)
            self._batch_future = self._executor.submit(self._clean_all_task)
            return self._batch_future

    def _clean_task(self, category: Category) -> CleanupResult:
        with self._category_locks[category.kind]:
            self._set_state(category.kind, CategoryState.CLEANING)
            try:
                result = reclaim_category(category, self.home, trash=self.trash)
            except Exception as e:
                log.exception("Clean of %s failed", category.id)
                result = CleanupResult(category=category.kind, items_failed=1, errors=[str(e)])
            self._run_scan(category)
        with self._lock:
            self._batch_pending.discard(category.kind)
        return result

    def _clean_all_task(self) -> list[CleanupResult]:
        results = reclaim_all(self.home, self.categories, clean=self._clean_task)
        log.info(
            "Cleaned all categories: %d entries trashed, %d failed",
            sum(r.items_trashed for r in results),
            sum(r.items_failed for r in results),
        )
        return results

    # -- maintenance commands --------------------------------------------------

    def boost_memory(self) -> Future:
        """Run purge, then re-sample memory once it settles."""
        return self._run_action(
            MaintenanceAction.BOOST, self.settings.boost_settle, after=self._refresh_memory
        )

    def flush_network_cache(self) -> Future:
        return self._run_action(MaintenanceAction.FLUSH_DNS, self.settings.flush_settle)

    def run_maintenance(self) -> Future:
        return self._run_action(MaintenanceAction.MAINTENANCE, self.settings.maintenance_settle)

    def _run_action(
        self,
        action: MaintenanceAction,
        settle: float,
        after: Callable[[], None] | None = None,
    ) -> Future:
        with self._lock:
            pending = self._action_futures.get(action)
            if pending is not None and not pending.done():
                return pending
            self._busy[action] = True
            future = self._command_executor.submit(self._action_task, action, settle, after)
            self._action_futures[action] = future
        self._notify()
        return future

    def _action_task(
        self,
        action: MaintenanceAction,
        settle: float,
        after: Callable[[], None] | None,
    ) -> CommandOutcome:
        started = self.clock()
        try:
            outcome = self.runner.run_action(action, settle)
        except Exception as e:
            log.exception("Running %s failed", action.value)
            outcome = CommandOutcome(command=ACTION_COMMANDS[action], error=str(e))
        finally:
            # Hold the busy flag for the full settle window even if the
            # command returned early or never launched
            remaining = settle - (self.clock() - started)
            if remaining > 0:
                self._shutdown_event.wait(remaining)
            with self._lock:
                self._busy[action] = False
            self._notify()

        if after:
            after()
        return outcome

    # -- telemetry -----------------------------------------------------------

    def _merge(self, **groups: Any) -> None:
        """Replace the snapshot groups that produced a value; keep the rest."""
        updates = {name: value for name, value in groups.items() if value is not None}
        if not updates:
            return
        with self._lock:
            self._snapshot = self._snapshot.model_copy(update=updates)
        self._notify()

    def _refresh_memory(self) -> None:
        self._merge(memory=self.sampler.probe_memory())

    def refresh_fast(self) -> None:
        """Sample memory, CPU, network and battery."""
        self._merge(
            memory=self.sampler.probe_memory(),
            cpu=self.sampler.probe_cpu(),
            network=self.sampler.probe_network(),
            battery=self.sampler.probe_battery(),
        )

    def refresh_slow(self, rescan: bool = True) -> list[Future]:
        """Sample disk capacity and the top process, then rescan categories."""
        self._merge(
            disk=self.sampler.probe_disk(),
            top_process=self.sampler.probe_top_process(),
        )
        return self.scan_all() if rescan else []

    # -- lifecycle -----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return bool(self._threads)

    def start(self) -> None:
        """Start the fast and slow telemetry timers."""
        if self.is_running:
            log.warning("Engine already running")
            return

        self._stop_event.clear()
        tiers = (
            ("fast", self.settings.fast_interval, self.refresh_fast),
            ("slow", self.settings.slow_interval, self.refresh_slow),
        )
        for name, interval, tick in tiers:
            thread = threading.Thread(
                target=self._tick_loop,
                args=(tick, interval),
                name=f"purebar-{name}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        log.debug(
            "Engine started (fast=%.1fs, slow=%.1fs)",
            self.settings.fast_interval,
            self.settings.slow_interval,
        )

    def _tick_loop(self, tick: Callable[[], Any], interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                tick()
            except Exception as e:
                log.error("Telemetry tick error: %s", e, exc_info=True)
            self._stop_event.wait(timeout=interval)

    def stop(self) -> None:
        """Stop the telemetry timers. Scans already running continue."""
        self._stop_event.set()
        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=2.0)
        self._threads = []
        log.debug("Engine stopped")

    def shutdown(self) -> None:
        """Stop timers, abandon running walks and release the thread pools."""
        self.stop()
        self._shutdown_event.set()
        self._cancel.set()
        self._executor.shutdown(wait=True, cancel_futures=True)
        self._command_executor.shutdown(wait=True, cancel_futures=True)
