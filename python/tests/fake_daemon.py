#!/usr/bin/env python3
"""Stand-in for the telegram-cli daemon used by end-to-end tests.

Accepts the real daemon's flags (ignoring the ones it does not need), listens
on the ``-S`` unix socket, answers commands with ``ANSWER <n>`` framing and
prints the lines of ``--events`` on stdout. Runs until SIGINT.
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import socket
import sys
import threading


USER_ID = 7

ANSWERS = {
    "get_self": {
        "peer_id": USER_ID,
        "peer_type": "user",
        "first_name": "Test",
        "last_name": "User",
        "print_name": "Test_User",
        "phone": "15550000",
    },
    "contact_list": [{"peer_id": 9, "peer_type": "user", "first_name": "Nine", "print_name": "Nine"}],
    "dialog_list": [
        {"peer_id": 9, "peer_type": "user", "print_name": "Nine"},
        {"peer_id": 100, "peer_type": "chat", "title": "Team", "print_name": "Team", "members_num": 3},
    ],
}


def parse_args(argv):
    parser = argparse.ArgumentParser(allow_abbrev=False)
    parser.add_argument("-S", dest="sock")
    parser.add_argument("--events", help="file whose lines are printed after startup")
    parser.add_argument("--login", action="store_true", help="run the phone/code login dialogue")
    parser.add_argument("--code", default="12345", help="confirmation code accepted by --login")
    parser.add_argument("--exit-code", type=int, help="exit with this code right after the banner")
    parser.add_argument("--no-socket", action="store_true", help="never listen on the socket")
    args, _unknown = parser.parse_known_args(argv)
    return args


def out(text, newline=True):
    sys.stdout.write(text + ("\n" if newline else ""))
    sys.stdout.flush()


class SocketServer:
    def __init__(self, path):
        self.path = path
        if os.path.exists(path):
            os.unlink(path)
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.sock.bind(path)
        self.sock.listen(16)
        self.clients = []
        self.lock = threading.Lock()
        threading.Thread(target=self._accept_loop, daemon=True).start()

    def _accept_loop(self):
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            with self.lock:
                self.clients.append(conn)
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn):
        buffer = b""
        while True:
            try:
                chunk = conn.recv(4096)
            except OSError:
                return
            if not chunk:
                return
            buffer += chunk
            while b"\n" in buffer:
                line, buffer = buffer.split(b"\n", 1)
                words = line.decode("utf-8", errors="replace").split()
                if not words:
                    continue
                answer = ANSWERS.get(words[0], {"result": "SUCCESS"})
                body = (json.dumps(answer) + "\n").encode("utf-8")
                try:
                    conn.sendall(b"ANSWER %d\n" % len(body) + body + b"\n")
                except OSError:
                    return

    def close(self):
        try:
            self.sock.close()
        except OSError:
            pass
        with self.lock:
            clients = list(self.clients)
        for conn in clients:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()
        if os.path.exists(self.path):
            os.unlink(self.path)


def main(argv=None):
    args = parse_args(sys.argv[1:] if argv is None else argv)
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    server = None
    if args.sock and not args.no_socket:
        server = SocketServer(args.sock)

    out("Telegram-cli version 1.4.1 (fake), Copyright (C) 2013-2015 Vitaly Valtman")
    if args.exit_code is not None:
        if server:
            server.close()
        return args.exit_code

    if args.login:
        out("phone number: ", newline=False)
        sys.stdin.readline()
        out("code ('CALL' for phone code): ", newline=False)
        code = sys.stdin.readline().strip()
        if code != args.code:
            out("FAIL: PHONE_CODE_INVALID")
        else:
            out("ready")

    if args.events:
        with open(args.events, "r", encoding="utf-8") as handle:
            for line in handle:
                out(line.rstrip("\n"))

    while not stop.wait(0.05):
        pass
    if server:
        server.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
