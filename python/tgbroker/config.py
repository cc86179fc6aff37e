"""Session configuration and daemon launch-argument rendering."""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple


DEFAULT_DAEMON = "telegram-cli"
DEFAULT_SOCK = "/tmp/tg.sock"
DEFAULT_POOL_SIZE = 5


@dataclass(frozen=True)
class SessionConfig:
    daemon: str = DEFAULT_DAEMON
    sock: str = DEFAULT_SOCK
    size: int = DEFAULT_POOL_SIZE
    key: Optional[str] = None
    profile: Optional[str] = None
    config_file: Optional[str] = None
    logfile: Optional[str] = None
    verbosity: int = 0
    extra_args: Tuple[str, ...] = ()
    logger: Optional[logging.Logger] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "SessionConfig":
        """Build a config from ``TG_BROKER_*`` variables; keyword overrides win."""

        env = os.environ if environ is None else environ
        values = {
            "daemon": env.get("TG_BROKER_DAEMON", DEFAULT_DAEMON),
            "sock": env.get("TG_BROKER_SOCK", DEFAULT_SOCK),
        }
        raw_size = env.get("TG_BROKER_POOL_SIZE")
        if raw_size:
            try:
                values["size"] = int(raw_size)
            except ValueError as exc:
                raise ValueError(f"TG_BROKER_POOL_SIZE must be an integer, got {raw_size!r}") from exc
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self) -> "SessionConfig":
        if not self.daemon:
            raise ValueError("daemon command is empty")
        if not self.sock:
            raise ValueError("socket path is empty")
        if self.size < 1:
            raise ValueError(f"pool size must be at least 1, got {self.size}")
        return self


def render_cli_arguments(config: SessionConfig) -> List[str]:
    # colors and readline off, wait for the dialog list, JSON output on the socket
    args = ["-C", "-R", "-W", "--json", "-S", config.sock]
    if config.key:
        args += ["-k", config.key]
    if config.profile:
        args += ["-p", config.profile]
    if config.config_file:
        args += ["-c", config.config_file]
    if config.logfile:
        args += ["-L", config.logfile]
    args += ["-v"] * max(0, int(config.verbosity))
    args += list(config.extra_args)
    return args


def render_command(config: SessionConfig) -> str:
    """Render the single shell command line used to launch the daemon."""

    parts = [config.daemon] + render_cli_arguments(config)
    return " ".join(shlex.quote(part) for part in parts)
