import os
import shlex
import sys
import threading
import time
from types import SimpleNamespace

import pytest

from python.tgbroker.supervisor import ProcessHandle, ProcessSupervisor, SpawnError

pytestmark = pytest.mark.skipif(os.name != "posix", reason="process groups require POSIX")


def _sleeper(banner="up"):
    # explicit SIGINT handler so the test does not depend on inherited signal dispositions
    script = "import signal, sys, time\nsignal.signal(signal.SIGINT, signal.default_int_handler)\n"
    if banner:
        script += f"print({banner!r}, flush=True)\n"
    script += "time.sleep(30)\n"
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(script)}"


def test_spawn_exposes_output_stream_and_pid():
    supervisor = ProcessSupervisor()
    handle = supervisor.spawn(_sleeper("banner"))
    try:
        assert handle.pid > 0
        assert handle.stdout.readline() == b"banner\n"
        assert handle.returncode is None
    finally:
        supervisor.terminate(handle)
    assert supervisor.wait(handle, timeout=5.0) is not None


def test_terminate_interrupts_process_group_without_failure():
    failures = []
    supervisor = ProcessSupervisor(on_failure=failures.append)
    handle = supervisor.spawn(_sleeper())
    assert handle.stdout.readline() == b"up\n"
    supervisor.terminate(handle)
    supervisor.terminate(handle)
    code = supervisor.wait(handle, timeout=5.0)
    assert code is not None and code != 0
    assert handle.interrupted
    time.sleep(0.1)
    assert failures == []


def test_unexpected_exit_reports_failure_once():
    failures = []
    reported = threading.Event()

    def on_failure(exc):
        failures.append(exc)
        reported.set()

    supervisor = ProcessSupervisor(on_failure=on_failure)
    handle = supervisor.spawn("exit 3")
    assert reported.wait(5.0)
    assert supervisor.wait(handle, timeout=1.0) == 3
    time.sleep(0.1)
    assert len(failures) == 1
    assert isinstance(failures[0], SpawnError)
    assert "3" in str(failures[0])
    supervisor.terminate(handle)


def test_output_stream_closes_after_terminate():
    supervisor = ProcessSupervisor()
    handle = supervisor.spawn(_sleeper())
    assert handle.stdout.readline() == b"up\n"
    supervisor.terminate(handle)
    assert handle.stdout.readline() == b""
    supervisor.release(handle)
    supervisor.release(handle)


def test_spawn_rejects_invalid_command():
    with pytest.raises(SpawnError):
        ProcessSupervisor().spawn("echo \0")


def test_handle_without_output_pipe_raises():
    handle = ProcessHandle(process=SimpleNamespace(stdout=None, stdin=None, pid=1), command="true")
    with pytest.raises(RuntimeError):
        handle.stdout
