import logging
import threading
import time

import pytest

from gravel.infra.logging import get_current_log_path, get_logs_dir, init_logging
from gravel.infra.scheduler import Alarm
from gravel.infra.workers import TaskSlot, offload, run_inline


@pytest.fixture()
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


# ── alarm ───────────────────────────────────────────────────────────────────────

def test_alarm_fires_once():
    fired = threading.Event()
    alarm = Alarm("test")
    alarm.schedule(0.01, fired.set)
    assert fired.wait(2.0)
    assert not alarm.pending


def test_reschedule_supersedes_previous_callback():
    calls = []
    done = threading.Event()
    alarm = Alarm("test")

    alarm.schedule(0.05, lambda: calls.append("first"))
    alarm.schedule(0.01, lambda: (calls.append("second"), done.set()))

    assert done.wait(2.0)
    time.sleep(0.1)
    assert calls == ["second"]


def test_cancelled_alarm_never_fires():
    calls = []
    alarm = Alarm("test")
    alarm.schedule(0.02, lambda: calls.append(1))
    alarm.cancel()
    time.sleep(0.1)
    assert calls == []
    assert not alarm.pending


def test_negative_delay_is_refused():
    with pytest.raises(ValueError):
        Alarm().schedule(-1, lambda: None)


# ── workers ─────────────────────────────────────────────────────────────────────

def test_offload_runs_on_another_thread():
    caller = threading.get_ident()
    fut = offload(threading.get_ident)
    assert fut.result(timeout=2.0) != caller


def test_errors_surface_through_the_future():
    def boom():
        raise RuntimeError("nope")

    fut = run_inline(boom)
    with pytest.raises(RuntimeError):
        fut.result()


def test_task_slot_allows_one_task_at_a_time(deferred):
    slot = TaskSlot("test", deferred)

    first = slot.submit(lambda: 1)
    assert first is not None
    assert slot.busy
    assert slot.submit(lambda: 2) is None

    deferred.run_next()
    assert first.result() == 1
    assert not slot.busy
    assert slot.submit(lambda: 3) is not None


# ── logging ─────────────────────────────────────────────────────────────────────

@pytest.mark.usefixtures("_restore_root_logging")
def test_init_logging_with_file(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    init_logging("DEBUG", log_file=log_file)

    logging.getLogger("gravel.test").info("hello file")
    for h in logging.getLogger().handlers:
        h.flush()

    assert get_current_log_path() == log_file.resolve()
    assert get_logs_dir() == log_file.parent
    assert "hello file" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger().level == logging.DEBUG


@pytest.mark.usefixtures("_restore_root_logging")
def test_env_level_overrides_argument(monkeypatch):
    monkeypatch.setenv("GRAVEL_LOG_LEVEL", "WARNING")
    init_logging("DEBUG")
    assert logging.getLogger().level == logging.WARNING
    assert get_current_log_path() is None


@pytest.mark.usefixtures("_restore_root_logging")
def test_log_lines_name_the_thread(tmp_path):
    log_file = tmp_path / "run.log"
    init_logging("INFO", log_file=log_file)

    worker = threading.Thread(
          target=lambda: logging.getLogger("gravel.test").info("from a worker")
        , name="gravel-worker-fetch"
    )
    worker.start()
    worker.join()
    for h in logging.getLogger().handlers:
        h.flush()

    line = next(ln for ln in log_file.read_text(encoding="utf-8").splitlines() if "from a worker" in ln)
    assert "[INFO][gravel-worker-fetch][gravel.test] from a worker" in line
