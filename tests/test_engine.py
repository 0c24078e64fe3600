"""Tests for the orchestration engine."""

import threading
import time
from concurrent.futures import wait
from unittest.mock import patch

import pytest

from conftest import FakeRunner, RecordingTrash, write_file
from purebar.categories import get_category
from purebar.commands import MaintenanceAction
from purebar.engine import Engine
from purebar.models import CategoryKind
from purebar.scanner import scan_category
from purebar.settings import EngineSettings

FAST = EngineSettings(
    fast_interval=0.05,
    slow_interval=0.05,
    boost_settle=0,
    flush_settle=0,
    maintenance_settle=0,
)


class BlockingScan:
    """scan_category stand-in that holds every call until released."""

    def __init__(self, result=(10, 1)):
        self.result = result
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, category, home, cancel=None):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        self.release.wait(5)
        with self._lock:
            self.active -= 1
        return self.result


class BlockingRunner(FakeRunner):
    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def run_action(self, action, timeout):
        self.started.set()
        self.release.wait(5)
        return super().run_action(action, timeout)


@pytest.fixture
def engine(home, stats, runner, trash):
    engine = Engine(home=home, settings=FAST, stats=stats, runner=runner, trash=trash)
    yield engine
    engine.shutdown()


class TestScanning:
    def test_initial_state_is_empty(self, engine):
        state = engine.state()
        assert state.results == {}
        assert state.total_reclaimable_bytes == 0
        assert len(state.categories) == 7

    def test_scan_all_fills_every_category(self, engine, home):
        write_file(home / "Library/Caches/blob", 100)
        write_file(home / "Downloads/app.dmg", 20)

        wait(engine.scan_all(), timeout=5)
        state = engine.state()

        assert set(state.results) == set(CategoryKind)
        assert state.result_for(CategoryKind.SYSTEM_CACHE).size_bytes == 100
        assert state.result_for(CategoryKind.DOWNLOADS).size_bytes == 20
        assert state.total_reclaimable_bytes == 120
        assert not state.is_scanning

    def test_overlapping_categories_are_both_counted(self, engine, home):
        write_file(home / "Library/Logs/DiagnosticReports/app.crash", 50)

        wait(engine.scan_all(), timeout=5)
        state = engine.state()

        assert state.result_for(CategoryKind.LOGS).size_bytes == 50
        assert state.result_for(CategoryKind.CRASH_REPORTS).size_bytes == 50
        assert state.total_reclaimable_bytes == 100

    def test_total_matches_per_category_scans(self, engine, home):
        write_file(home / "Desktop/Screenshot 1.png", 7)
        write_file(home / "Downloads/huge.iso", 100_000_001)

        wait(engine.scan_all(), timeout=5)

        expected = sum(scan_category(c, home)[0] for c in engine.categories)
        assert engine.state().total_reclaimable_bytes == expected

    def test_scan_requests_coalesce(self, engine):
        fake = BlockingScan()
        with patch("purebar.engine.scan_category", fake):
            try:
                first = engine.scan(CategoryKind.LOGS)
                assert fake.started.wait(5)
                assert engine.state().is_scanning
                second = engine.scan("logs")
                assert second is first
            finally:
                fake.release.set()
            first.result(timeout=5)

        assert fake.calls == 1
        assert engine.state().result_for(CategoryKind.LOGS).size_bytes == 10

    def test_scan_result_marks_rescan_outstanding(self, engine):
        fake = BlockingScan()
        fake.release.set()
        with patch("purebar.engine.scan_category", fake):
            engine.scan(CategoryKind.LOGS).result(timeout=5)
            fake.release.clear()
            fake.started.clear()
            try:
                future = engine.scan(CategoryKind.LOGS)
                assert fake.started.wait(5)
                assert engine.state().result_for(CategoryKind.LOGS).is_scanning
            finally:
                fake.release.set()
            future.result(timeout=5)
        assert not engine.state().result_for(CategoryKind.LOGS).is_scanning

    def test_different_categories_scan_concurrently(self, engine):
        fake = BlockingScan()
        with patch("purebar.engine.scan_category", fake):
            try:
                futures = [engine.scan(CategoryKind.LOGS), engine.scan(CategoryKind.DOWNLOADS)]
                deadline = time.monotonic() + 5
                while fake.calls < 2 and time.monotonic() < deadline:
                    time.sleep(0.01)
                assert fake.max_active == 2
            finally:
                fake.release.set()
            wait(futures, timeout=5)

    def test_unknown_category(self, engine):
        with pytest.raises(KeyError):
            engine.scan("nonexistent")
        with pytest.raises(KeyError):
            engine.clean_one("nonexistent")

    def test_scan_failure_keeps_previous_result(self, engine, home):
        write_file(home / "Library/Logs/a.log", 5)
        engine.scan(CategoryKind.LOGS).result(timeout=5)

        with patch("purebar.engine.scan_category", side_effect=RuntimeError("boom")):
            assert engine.scan(CategoryKind.LOGS).result(timeout=5) is None

        state = engine.state()
        assert state.result_for(CategoryKind.LOGS).size_bytes == 5
        assert CategoryKind.LOGS not in state.scanning


class TestCleaning:
    def test_clean_one_then_rescan(self, engine, home, trash):
        write_file(home / "Downloads/app.dmg", 50_000_000)
        write_file(home / "Downloads/notes.txt", 1_000)
        engine.scan(CategoryKind.DOWNLOADS).result(timeout=5)
        assert engine.state().result_for(CategoryKind.DOWNLOADS).size_bytes == 50_000_000

        result = engine.clean_one(CategoryKind.DOWNLOADS).result(timeout=5)

        assert result.items_trashed == 1
        assert engine.state().result_for(CategoryKind.DOWNLOADS).size_bytes == 0
        assert (home / "Downloads/notes.txt").exists()
        assert CategoryKind.DOWNLOADS not in engine.state().cleaning

    def test_clean_and_scan_never_overlap(self, engine):
        fake = BlockingScan(result=(0, 0))
        with patch("purebar.engine.scan_category", fake):
            try:
                scan = engine.scan(CategoryKind.LOGS)
                assert fake.started.wait(5)
                clean = engine.clean_one(CategoryKind.LOGS)
                # The pending clean absorbs later scan requests
                assert engine.scan(CategoryKind.LOGS) is clean
            finally:
                fake.release.set()
            scan.result(timeout=5)
            clean.result(timeout=5)

        assert fake.calls == 2
        assert fake.max_active == 1

    def test_clean_requests_coalesce(self, engine):
        fake = BlockingScan(result=(0, 0))
        with patch("purebar.engine.scan_category", fake):
            try:
                engine.scan(CategoryKind.LOGS)
                assert fake.started.wait(5)
                first = engine.clean_one(CategoryKind.LOGS)
                assert engine.clean_one(CategoryKind.LOGS) is first
            finally:
                fake.release.set()
            first.result(timeout=5)

    def test_clean_all_is_best_effort(self, home, stats, runner, tmp_path):
        write_file(home / "Library/Caches/stuck.db", 10)
        write_file(home / "Library/Caches/ok.db", 20)
        write_file(home / "Downloads/app.zip", 30)
        write_file(home / "Desktop/Screenshot 1.png", 40)
        trash = RecordingTrash(tmp_path / "trash", fail_on={"stuck.db"})

        with Engine(home=home, settings=FAST, stats=stats, runner=runner, trash=trash) as engine:
            results = engine.clean_all().result(timeout=10)
            state = engine.state()

        assert [r.category for r in results] == list(CategoryKind)
        by_kind = {r.category: r for r in results}
        assert by_kind[CategoryKind.SYSTEM_CACHE].items_failed == 1
        assert by_kind[CategoryKind.DOWNLOADS].items_trashed == 1
        assert state.result_for(CategoryKind.SYSTEM_CACHE).size_bytes == 10
        assert state.result_for(CategoryKind.SCREEN_CAPTURES).size_bytes == 0
        assert state.total_reclaimable_bytes == 10

    def test_clean_failure_still_rescans(self, engine, home):
        write_file(home / "Library/Logs/a.log", 5)
        with patch("purebar.engine.reclaim_category", side_effect=RuntimeError("boom")):
            result = engine.clean_one(CategoryKind.LOGS).result(timeout=5)

        assert result.errors == ["boom"]
        assert result.items_failed == 1
        assert not result.success
        assert engine.state().result_for(CategoryKind.LOGS).size_bytes == 5


class TestMaintenance:
    def test_boost_clears_flag_and_resamples_memory(self, engine, stats, runner):
        seen = []
        engine.on_change = lambda state: seen.append(state.is_boosting)
        stats.used_memory = 2 * 1024**3

        outcome = engine.boost_memory().result(timeout=5)

        assert outcome.completed
        assert runner.actions == [MaintenanceAction.BOOST]
        assert True in seen
        state = engine.state()
        assert not state.is_boosting
        assert state.snapshot.memory.used_bytes == 2 * 1024**3

    def test_launch_failure_clears_flag(self, home, stats, trash):
        runner = FakeRunner(launch=False)
        with Engine(home=home, settings=FAST, stats=stats, runner=runner, trash=trash) as engine:
            outcome = engine.flush_network_cache().result(timeout=5)
            assert outcome.error
            assert not engine.state().is_flushing

    def test_runner_exception_clears_flag(self, engine):
        with patch.object(engine.runner, "run_action", side_effect=RuntimeError("boom")):
            outcome = engine.run_maintenance().result(timeout=5)
        assert outcome.error == "boom"
        assert not engine.state().is_maintaining

    def test_busy_for_the_settle_window(self, home, stats, runner, trash):
        settings = EngineSettings(flush_settle=0.2)
        with Engine(home=home, settings=settings, stats=stats, runner=runner, trash=trash) as engine:
            started = time.monotonic()
            future = engine.flush_network_cache()
            assert engine.state().is_flushing
            future.result(timeout=5)
            assert time.monotonic() - started >= 0.15
            assert not engine.state().is_flushing

    def test_settle_window_still_holds_after_stop(self, home, stats, runner, trash):
        settings = EngineSettings(flush_settle=0.2)
        with Engine(home=home, settings=settings, stats=stats, runner=runner, trash=trash) as engine:
            engine.start()
            engine.stop()

            started = time.monotonic()
            engine.flush_network_cache().result(timeout=5)
            assert time.monotonic() - started >= 0.15

    def test_requests_coalesce_while_busy(self, home, stats, trash):
        runner = BlockingRunner()
        with Engine(home=home, settings=FAST, stats=stats, runner=runner, trash=trash) as engine:
            try:
                first = engine.boost_memory()
                assert runner.started.wait(5)
                assert engine.boost_memory() is first
            finally:
                runner.release.set()
            first.result(timeout=5)
        assert runner.actions == [MaintenanceAction.BOOST]


class TestTelemetry:
    def test_refresh_fast(self, engine):
        engine.refresh_fast()
        snapshot = engine.state().snapshot
        assert snapshot.memory.used_bytes == 8 * 1024**3
        assert snapshot.cpu is None
        assert snapshot.network is None
        assert snapshot.battery.present is False

        engine.refresh_fast()
        assert engine.state().snapshot.cpu.utilization == pytest.approx(0.5)

    def test_failed_probe_keeps_previous_value(self, engine, stats):
        engine.refresh_fast()
        stats.fail.add("memory")
        stats.fail.add("battery")
        engine.refresh_fast()

        snapshot = engine.state().snapshot
        assert snapshot.memory.used_bytes == 8 * 1024**3
        assert snapshot.battery is not None

    def test_refresh_slow_without_rescan(self, engine):
        assert engine.refresh_slow(rescan=False) == []
        snapshot = engine.state().snapshot
        assert snapshot.disk.total_bytes == 500_000_000_000
        assert snapshot.top_process == "WindowServer"
        assert engine.state().results == {}

    def test_refresh_slow_rescans(self, engine):
        wait(engine.refresh_slow(), timeout=5)
        assert len(engine.state().results) == 7

    def test_top_process_kept_when_unknown(self, engine, stats):
        engine.refresh_slow(rescan=False)
        stats.process = ""
        engine.refresh_slow(rescan=False)
        assert engine.state().snapshot.top_process == "WindowServer"


class TestLifecycle:
    def test_start_and_stop(self, engine):
        engine.start()
        assert engine.is_running

        deadline = time.monotonic() + 5
        while engine.state().snapshot.disk is None and time.monotonic() < deadline:
            time.sleep(0.02)

        engine.stop()
        assert not engine.is_running
        assert engine.state().snapshot.disk is not None
        assert engine.state().snapshot.memory is not None

    def test_listener_errors_are_swallowed(self, engine, home):
        def broken(state):
            raise ValueError("listener bug")

        engine.on_change = broken
        write_file(home / "Library/Logs/a.log", 3)

        result = engine.scan(CategoryKind.LOGS).result(timeout=5)
        assert result.size_bytes == 3

    def test_listener_sees_updates(self, engine):
        states = []
        engine.on_change = states.append
        engine.scan(CategoryKind.LOGS).result(timeout=5)
        assert any(CategoryKind.LOGS in s.scanning for s in states)
        assert CategoryKind.LOGS in states[-1].results

    def test_custom_categories(self, home, stats, runner, trash):
        categories = [get_category(CategoryKind.LOGS)]
        with Engine(home=home, stats=stats, runner=runner, trash=trash, categories=categories) as engine:
            wait(engine.scan_all(), timeout=5)
            assert list(engine.state().results) == [CategoryKind.LOGS]
            with pytest.raises(KeyError):
                engine.scan(CategoryKind.DOWNLOADS)


