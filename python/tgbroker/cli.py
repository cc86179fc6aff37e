"""tg-broker CLI entry point."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List

from prompt_toolkit import prompt

from .authorization import AuthProperties
from .client import Client
from .config import SessionConfig
from .events import Event, EventType

LOG = logging.getLogger("tgbroker.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Broker events from a telegram-cli daemon")
    parser.add_argument("--daemon", help="Daemon executable (default $TG_BROKER_DAEMON or telegram-cli)")
    parser.add_argument("--sock", help="Unix socket path (default $TG_BROKER_SOCK or /tmp/tg.sock)")
    parser.add_argument("--size", type=int, help="Number of pooled socket connections (default 5)")
    parser.add_argument("--key", help="Server public key file")
    parser.add_argument("--profile", help="Daemon profile name")
    parser.add_argument("--config-file", help="Daemon config file")
    parser.add_argument("--logfile", help="Daemon log file")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Raise daemon verbosity")
    parser.add_argument("--phone", help="Log in with this phone number (prompts for the code)")
    parser.add_argument("--password", default=os.environ.get("TG_BROKER_PASSWORD"), help="Two-factor password")
    parser.add_argument("--json", action="store_true", help="Emit events as JSON lines")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("TG_BROKER_LOG", "INFO"),
        help="Logging level (default INFO)",
    )
    return parser


def _prompt_code() -> str:
    return prompt("Confirmation code: ")


def format_event(event: Event, json_output: bool = False) -> str:
    if json_output:
        return json.dumps(
            {"type": event.type.value, "action": event.action.value, "payload": event.payload},
            sort_keys=True,
        )
    sender = event.payload.get("from") if isinstance(event.payload.get("from"), dict) else {}
    name = sender.get("print_name") or sender.get("peer_id") or "?"
    line = f"[{event.type.value}] {name}"
    if event.text:
        line += f": {event.text}"
    if event.action.value != "no_action":
        line += f" ({event.action.value})"
    return line


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        config = SessionConfig.from_env(
            daemon=args.daemon,
            sock=args.sock,
            size=args.size,
            key=args.key,
            profile=args.profile,
            config_file=args.config_file,
            logfile=args.logfile,
            verbosity=args.verbose,
        )
        auth = None
        if args.phone:
            auth = AuthProperties(phone_number=args.phone, code_provider=_prompt_code, password=args.password)
        client = Client(config, auth)
    except ValueError as exc:
        print(f"error: {exc}")
        return 2

    failures: List[BaseException] = []
    client.set_on_execution_failure(failures.append)
    client.set_on_disconnect(lambda: LOG.info("daemon connections closed"))

    def show(event: Event) -> None:
        print(format_event(event, args.json), flush=True)

    client.register_handler(EventType.SEND_MESSAGE, show)
    client.register_handler(EventType.RECEIVE_MESSAGE, show)

    def ready() -> None:
        profile = client.profile
        who = profile.name if profile else "unknown user"
        LOG.info("ready as %s (%s contacts, %s chats)", who, len(client.contacts), len(client.chats))

    client.connect(on_ready=ready)
    try:
        while not client.wait_closed(0.5):
            pass
    except KeyboardInterrupt:
        print()
        client.close()
        client.wait_closed(5.0)
    client.join(1.0)
    if failures:
        print(f"error: {failures[0]}")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
