"""Authorization gate run against the daemon's output before ingestion."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import IO, Callable, Optional, Pattern


logger = logging.getLogger(__name__)

CodeProvider = Callable[[], str]

PHONE_PROMPT = re.compile(rb"phone number:\s*$", re.IGNORECASE)
CODE_PROMPT = re.compile(rb"code(?: \([^)]*\))?:\s*$", re.IGNORECASE)
PASSWORD_PROMPT = re.compile(rb"password:\s*$", re.IGNORECASE)
FAILURE_LINE = re.compile(rb"^\s*(?:FAIL|ERROR)\b", re.IGNORECASE)
READY_LINE = re.compile(rb"^\s*(?:ready|authorized|logged in)\b", re.IGNORECASE)


class AuthError(RuntimeError):
    """Raised when the login sequence fails or the daemon stops talking."""


@dataclass
class AuthProperties:
    phone_number: Optional[str] = None
    code_provider: Optional[CodeProvider] = None
    password: Optional[str] = None
    ready_pattern: Pattern[bytes] = READY_LINE

    def present(self) -> bool:
        return bool(self.phone_number)


class AuthorizationGate:
    """Consume the daemon's output until login completes.

    Without credentials the gate only skips the banner line. With credentials
    it answers the phone, code and password prompts on the daemon's stdin
    until a ready line shows up. Any failure raises :class:`AuthError`.
    """

    def __init__(self, auth_properties: Optional[AuthProperties] = None) -> None:
        self.auth_properties = auth_properties

    def gate(self, stream: IO[bytes], reply: Optional[IO[bytes]] = None) -> None:
        props = self.auth_properties
        if props is None or not props.present():
            self._skip_banner(stream)
            return
        if reply is None:
            raise AuthError("credentials configured but daemon stdin is not available")
        self._login(stream, reply, props)

    def _skip_banner(self, stream: IO[bytes]) -> None:
        try:
            banner = stream.readline()
        except (OSError, ValueError) as exc:
            raise AuthError(f"failed to read daemon banner: {exc}") from exc
        if not banner:
            raise AuthError("daemon closed its output before the banner")
        logger.debug("skipped banner: %r", banner.rstrip())

    def _login(self, stream: IO[bytes], reply: IO[bytes], props: AuthProperties) -> None:
        logger.info("authorizing %s", _mask(props.phone_number or ""))
        buffer = b""
        while True:
            try:
                chunk = stream.read(1)
            except (OSError, ValueError) as exc:
                raise AuthError(f"failed to read daemon output: {exc}") from exc
            if not chunk:
                raise AuthError("daemon closed its output during authorization")
            if chunk == b"\n":
                line, buffer = buffer.rstrip(b"\r"), b""
                if FAILURE_LINE.search(line):
                    raise AuthError(line.decode("utf-8", errors="replace").strip())
                if props.ready_pattern.search(line):
                    logger.info("authorization complete")
                    return
                continue
            buffer += chunk
            if PHONE_PROMPT.search(buffer):
                self._answer(reply, props.phone_number or "")
            elif CODE_PROMPT.search(buffer):
                if props.code_provider is None:
                    raise AuthError("daemon asked for a confirmation code but no code provider is set")
                self._answer(reply, props.code_provider())
            elif PASSWORD_PROMPT.search(buffer):
                if not props.password:
                    raise AuthError("daemon asked for a password but none is configured")
                self._answer(reply, props.password)
            else:
                continue
            buffer = b""

    def _answer(self, reply: IO[bytes], value: str) -> None:
        try:
            reply.write(value.strip().encode("utf-8") + b"\n")
            reply.flush()
        except (OSError, ValueError) as exc:
            raise AuthError(f"failed to answer daemon prompt: {exc}") from exc


def _mask(phone: str) -> str:
    if len(phone) <= 4:
        return "****"
    return "*" * (len(phone) - 4) + phone[-4:]
