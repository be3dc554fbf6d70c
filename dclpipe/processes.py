"""Child process table, job hand-off and signal handling for pipeline workers."""

from __future__ import annotations

import enum
import faulthandler
import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import Callable, Sequence

PROCESS_MAX_CNT = 10
PROCESS_DATA_MAX_LEN = 2048
PROCESS_ID_ENV = "SHMEM_PROCESS_ID"

_NAME_LENGTH = 80

_EXIT_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM") if hasattr(signal, name)
)
_CHILD_SIGNAL = getattr(signal, "SIGCHLD", None)
_WATCHED = _EXIT_SIGNALS + ((_CHILD_SIGNAL,) if _CHILD_SIGNAL is not None else ())
_FATAL_SIGNALS = tuple(
    getattr(signal, name)
    for name in ("SIGILL", "SIGSEGV", "SIGABRT", "SIGFPE")
    if hasattr(signal, name)
)
_HAVE_SIGWAIT = hasattr(signal, "sigtimedwait") and hasattr(signal, "pthread_sigmask")


class ProcessCommand(enum.IntEnum):
    """Commands sent to a worker process."""

    STOP = 0
    JOB = 1


def _semaphore() -> threading.Semaphore:
    return threading.Semaphore(0)


@dataclass
class ProcessInfo:
    """One slot of the process table: identity, command and hand-off semaphores."""

    pid: int = -1
    process_state: int = 0
    process_name: str = ""
    cmd: ProcessCommand = ProcessCommand.STOP
    cmd_result: int = 0
    cmd_offs: int = 0
    sem_job: threading.Semaphore = field(default_factory=_semaphore, repr=False, compare=False)
    sem_result: threading.Semaphore = field(
        default_factory=_semaphore, repr=False, compare=False
    )


class ProcessManager:
    """A fixed-size table of worker processes started with their slot id in the environment."""

    def __init__(self, count: int) -> None:
        if count < 0:
            raise ValueError("process count must not be negative")
        self._lock = threading.Lock()
        self._started = 0
        self._table = [ProcessInfo() for _ in range(count)]
        self._children: dict[int, subprocess.Popen] = {}

    @property
    def capacity(self) -> int:
        """Number of slots in the table."""
        return len(self._table)

    @property
    def started(self) -> int:
        """Number of slots handed out so far."""
        return self._started

    def __getitem__(self, ident: int) -> ProcessInfo:
        return self._table[ident]

    def start(self, argv: Sequence[str]) -> int:
        """Start ``argv`` as a child process and return its slot id."""
        argv = [str(arg) for arg in argv]
        if not argv:
            raise ValueError("argv must name a program")
        with self._lock:
            if self._started >= len(self._table):
                print("[process_mngr]: no more process allowed", file=sys.stderr, flush=True)
                raise RuntimeError("no more process allowed")
            ident = self._started
            self._started += 1

        env = dict(os.environ)
        env[PROCESS_ID_ENV] = str(ident)
        try:
            child = subprocess.Popen(argv, env=env, close_fds=True)
        except OSError as exc:
            print(
                f"[process_mngr]: can't exec child process {argv[0]}: "
                f"errno={exc.errno}, {exc.strerror}",
                file=sys.stderr,
                flush=True,
            )
            raise RuntimeError(f"can't exec child process {argv[0]}") from exc

        info = self._table[ident]
        info.pid = child.pid
        info.process_name = argv[0][: _NAME_LENGTH - 1]
        self._children[ident] = child
        return ident

    def kill_all(self) -> None:
        """Send STOP to every started process, then wait for each to acknowledge."""
        started = self._table[: self._started]
        for info in started:
            info.cmd = ProcessCommand.STOP
            info.sem_job.release()
        for info in started:
            info.sem_result.acquire()

    def cleanup(self) -> dict[int, int]:
        """Reap finished children without blocking; map slot id to exit status."""
        finished: dict[int, int] = {}
        for ident, child in list(self._children.items()):
            status = child.poll()
            if status is not None:
                finished[ident] = status
                del self._children[ident]
        return finished

    def close(self) -> None:
        """Reset every slot and release the table."""
        for index in range(len(self._table)):
            self._table[index] = ProcessInfo()
        self._table = []

    def __enter__(self) -> ProcessManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _reap_children() -> None:
    while True:
        try:
            pid, _ = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            return
        if pid <= 0:
            return


class SignalWatcher:
    """Reacts to SIGINT/SIGTERM by calling ``on_exit`` and to SIGCHLD by reaping children.

    Where the platform allows it the signals are blocked and consumed by a
    background thread; otherwise ordinary handlers are installed. ``start`` and
    ``stop`` should be called from the same (normally the main) thread.
    """

    _POLL_INTERVAL = 0.1

    def __init__(self, on_exit: Callable[[], object]) -> None:
        self._on_exit = on_exit
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._old_mask: set | None = None
        self._old_handlers: dict[int, object] = {}

    @property
    def running(self) -> bool:
        return self._thread is not None or bool(self._old_handlers)

    def start(self) -> None:
        """Begin watching the signals."""
        if self.running:
            raise RuntimeError("signal watcher is already running")
        if _HAVE_SIGWAIT:
            self._old_mask = signal.pthread_sigmask(signal.SIG_BLOCK, _WATCHED)
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run, name="signal-watcher", daemon=True
            )
            self._thread.start()
        else:
            for signum in _WATCHED:
                self._old_handlers[signum] = signal.signal(signum, self._handle)

    def stop(self) -> None:
        """Stop watching and restore the previous signal disposition."""
        if self._thread is not None:
            self._stop_event.set()
            self._thread.join()
            self._thread = None
        if self._old_mask is not None:
            signal.pthread_sigmask(signal.SIG_SETMASK, self._old_mask)
            self._old_mask = None
        for signum, handler in self._old_handlers.items():
            signal.signal(signum, handler)
        self._old_handlers.clear()

    def __enter__(self) -> SignalWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            info = signal.sigtimedwait(_WATCHED, self._POLL_INTERVAL)
            if info is not None:
                self._dispatch(info.si_signo)

    def _handle(self, signum: int, frame: object) -> None:
        self._dispatch(signum)

    def _dispatch(self, signum: int) -> None:
        if _CHILD_SIGNAL is not None and signum == _CHILD_SIGNAL:
            _reap_children()
            return
        print("[signal_reaction]: exit signal received", flush=True)
        self._on_exit()


def set_signal_reactions() -> set | None:
    """Dump a backtrace on fatal signals and block SIGCHLD, SIGINT and SIGTERM.

    Returns the signal mask that was in force before, or None where signal
    masks are not supported.
    """
    faulthandler.enable(file=sys.stderr, all_threads=True)
    if not hasattr(signal, "pthread_sigmask"):
        return None
    try:
        return signal.pthread_sigmask(signal.SIG_BLOCK, _WATCHED)
    except OSError as exc:
        raise RuntimeError("can't block SIGCHLD | SIGINT | SIGTERM signals") from exc