import faulthandler
import os
import signal
import sys
import threading
import time

import pytest

from dclpipe.processes import (
    PROCESS_ID_ENV,
    ProcessCommand,
    ProcessInfo,
    ProcessManager,
    SignalWatcher,
    set_signal_reactions,
)

EXIT_WITH_ID = (
    "import os, sys; sys.exit(int(os.environ['SHMEM_PROCESS_ID']) + 10)"
)


def _collect(manager, expected, deadline=15.0):
    finished = {}
    end = time.monotonic() + deadline
    while len(finished) < expected and time.monotonic() < end:
        finished.update(manager.cleanup())
        time.sleep(0.05)
    return finished


def test_process_info_defaults():
    info = ProcessInfo()
    assert info.pid == -1
    assert info.cmd == ProcessCommand.STOP
    assert info.cmd == 0
    assert info.process_name == ""
    assert info.cmd_result == 0


def test_negative_count_rejected():
    with pytest.raises(ValueError):
        ProcessManager(-1)


def test_start_beyond_capacity_raises():
    manager = ProcessManager(0)
    with pytest.raises(RuntimeError):
        manager.start([sys.executable, "-c", "pass"])


def test_start_empty_argv_raises():
    manager = ProcessManager(1)
    with pytest.raises(ValueError):
        manager.start([])


def test_children_receive_slot_id_and_are_reaped():
    manager = ProcessManager(2)
    first = manager.start([sys.executable, "-c", EXIT_WITH_ID])
    second = manager.start([sys.executable, "-c", EXIT_WITH_ID])
    assert (first, second) == (0, 1)
    assert manager.started == 2
    assert manager[first].pid > 0
    assert manager[first].process_name == sys.executable
    finished = _collect(manager, 2)
    assert finished == {first: first + 10, second: second + 10}
    assert manager.cleanup() == {}


def test_env_name_is_shmem_process_id():
    manager = ProcessManager(1)
    code = f"import os, sys; sys.exit(0 if '{PROCESS_ID_ENV}' in os.environ else 1)"
    ident = manager.start([sys.executable, "-c", code])
    assert PROCESS_ID_ENV == "SHMEM_PROCESS_ID"
    assert _collect(manager, 1) == {ident: 0}


def test_failed_exec_consumes_slot(tmp_path):
    manager = ProcessManager(1)
    missing = str(tmp_path / "no-such-program")
    with pytest.raises(RuntimeError):
        manager.start([missing])
    assert manager.started == 1
    with pytest.raises(RuntimeError):
        manager.start([sys.executable, "-c", "pass"])


def test_kill_all_sends_stop_and_waits_for_results():
    manager = ProcessManager(2)
    for _ in range(2):
        manager.start([sys.executable, "-c", "pass"])
    for ident in range(2):
        manager[ident].cmd = ProcessCommand.JOB

    seen = []

    def responder(info):
        info.sem_job.acquire()
        seen.append(info.cmd)
        info.cmd_result = 0
        info.sem_result.release()

    workers = [
        threading.Thread(target=responder, args=(manager[ident],)) for ident in range(2)
    ]
    for worker in workers:
        worker.start()
    manager.kill_all()
    for worker in workers:
        worker.join(timeout=5)
    assert seen == [ProcessCommand.STOP, ProcessCommand.STOP]
    _collect(manager, 2)


def test_close_resets_table():
    manager = ProcessManager(3)
    manager[0].cmd_offs = 128
    manager.close()
    assert manager.capacity == 0
    with pytest.raises(IndexError):
        manager[0]
    with pytest.raises(RuntimeError):
        manager.start([sys.executable, "-c", "pass"])


def test_context_manager_closes():
    with ProcessManager(2) as manager:
        assert manager.capacity == 2
    assert manager.capacity == 0


def test_signal_watcher_calls_on_exit_on_sigterm():
    fired = threading.Event()
    watcher = SignalWatcher(fired.set)
    watcher.start()
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        end = time.monotonic() + 5
        while not fired.is_set() and time.monotonic() < end:
            time.sleep(0.01)
        assert fired.is_set()
    finally:
        watcher.stop()
    assert watcher.running is False


def test_signal_watcher_double_start_raises():
    watcher = SignalWatcher(lambda: None)
    watcher.start()
    try:
        with pytest.raises(RuntimeError):
            watcher.start()
    finally:
        watcher.stop()


def test_signal_watcher_restarts_after_stop():
    calls = []
    watcher = SignalWatcher(lambda: calls.append(1))
    with watcher:
        assert watcher.running
    with watcher:
        assert watcher.running
    assert not watcher.running
    assert calls == []


def test_set_signal_reactions_blocks_exit_signals():
    previous = set_signal_reactions()
    try:
        current = signal.pthread_sigmask(signal.SIG_BLOCK, [])
        assert signal.SIGTERM in current
        assert signal.SIGINT in current
        assert signal.SIGCHLD in current
        assert faulthandler.is_enabled()
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)
    assert signal.SIGTERM not in signal.pthread_sigmask(signal.SIG_BLOCK, []) or (
        signal.SIGTERM in previous
    )