"""
Pytest configuration and fixtures for tgbroker tests.
"""
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path

import pytest


FAKE_DAEMON = Path(__file__).resolve().parent / "fake_daemon.py"


@pytest.fixture
def sock_dir():
    """
    Short temporary directory for unix sockets.
    AF_UNIX paths are limited to ~100 bytes, which pytest's tmp_path can exceed.
    """
    path = tempfile.mkdtemp(prefix="tgb-")
    try:
        yield Path(path)
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def fake_daemon(sock_dir):
    """
    Executable wrapper that runs fake_daemon.py with the current interpreter,
    so it can stand in for the telegram-cli binary in SessionConfig.daemon.
    """
    if os.name != "posix":
        pytest.skip("fake daemon requires a POSIX shell and unix sockets")
    wrapper = sock_dir / "telegram-cli"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_DAEMON}" "$@"\n')
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(wrapper)
