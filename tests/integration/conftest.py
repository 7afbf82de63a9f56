"""Fixtures for integration tests: an in-process scripted Sonic server.

FakeSonicServer speaks the Sonic line protocol over real TCP sockets and
keeps a small in-memory index shared by all its connections:
- handshake: CONNECTED -> START <channel> <password> -> STARTED
- ingest: PUSH / POP / COUNT / FLUSHC / FLUSHB / FLUSHO
- search: QUERY / SUGGEST answered with PENDING <id>, then EVENT lines
- control: TRIGGER consolidate
- PING / HELP / QUIT everywhere

An object-less COUNT reports 0, as Sonic does for that form.
"""

from __future__ import annotations

import itertools
import shlex
import socketserver
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field

import pytest

PASSWORD = "SecretPassword"


@dataclass
class FakeIndex:
    """Terms per (collection, bucket, object), in push order."""

    objects: dict[tuple[str, str, str], list[str]] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def push(self, collection: str, bucket: str, obj: str, text: str) -> None:
        with self.lock:
            terms = self.objects.pop((collection, bucket, obj), [])
            terms.extend(text.lower().split())
            # Re-inserted so the most recently pushed object sorts last
            self.objects[(collection, bucket, obj)] = terms

    def pop(self, collection: str, bucket: str, obj: str, text: str) -> int:
        with self.lock:
            terms = self.objects.get((collection, bucket, obj))
            if terms is None:
                return 0
            removed = [term for term in text.lower().split() if term in terms]
            for term in removed:
                terms.remove(term)
            if not terms:
                del self.objects[(collection, bucket, obj)]
            return len(removed)

    def count(self, collection: str, bucket: str, obj: str | None) -> int:
        with self.lock:
            if obj is None:
                return 0
            return len(self.objects.get((collection, bucket, obj), []))

    def flush(self, collection: str, bucket: str | None = None, obj: str | None = None) -> int:
        with self.lock:
            doomed = [
                key
                for key in self.objects
                if key[0] == collection
                and (bucket is None or key[1] == bucket)
                and (obj is None or key[2] == obj)
            ]
            for key in doomed:
                del self.objects[key]
            return len(doomed)

    def query(self, collection: str, bucket: str, terms: str) -> list[str]:
        wanted = terms.lower().split()
        with self.lock:
            matches = [
                key[2]
                for key, indexed in self.objects.items()
                if key[:2] == (collection, bucket) and all(word in indexed for word in wanted)
            ]
        return list(reversed(matches))

    def suggest(self, collection: str, bucket: str, word: str) -> list[str]:
        prefix = word.lower()
        with self.lock:
            found: list[str] = []
            for key, indexed in self.objects.items():
                if key[:2] != (collection, bucket):
                    continue
                for term in indexed:
                    if term.startswith(prefix) and term != prefix and term not in found:
                        found.append(term)
        return sorted(found)


def _modifier(tokens: list[str], name: str, default: int) -> int:
    for token in tokens:
        if token.upper().startswith(f"{name}(") and token.endswith(")"):
            return int(token[len(name) + 1 : -1])
    return default


class SonicHandler(socketserver.StreamRequestHandler):
    """One Sonic channel connection."""

    server: FakeSonicServer

    def setup(self) -> None:
        super().setup()
        self.channel: str | None = None
        self.deferred_events: list[str] = []

    def send_lines(self, *lines: str) -> None:
        self.wfile.write("".join(f"{line}\r\n" for line in lines).encode("utf-8"))
        self.wfile.flush()

    def handle(self) -> None:
        self.send_lines("CONNECTED <sonic-server v1.4.9>")
        for raw in self.rfile:
            line = raw.decode("utf-8").rstrip("\r\n")
            self.server.record(line)
            try:
                tokens = shlex.split(line)
            except ValueError:
                self.send_lines("ERR invalid_format")
                continue
            if not tokens:
                continue
            if self.channel is None:
                if not self.start(tokens):
                    return
                continue
            if tokens[0].upper() == "QUIT":
                self.send_lines("ENDED quit")
                return
            self.answer(tokens)

    def start(self, tokens: list[str]) -> bool:
        if tokens[0].upper() != "START" or len(tokens) < 2:
            self.send_lines("ENDED not_recognized")
            return False
        password = tokens[2] if len(tokens) > 2 else ""
        if password != self.server.password:
            self.send_lines("ENDED authentication_failed")
            return False
        self.channel = tokens[1]
        self.send_lines(self.server.started_line.format(channel=self.channel))
        return True

    def answer(self, tokens: list[str]) -> None:
        name, args = tokens[0].upper(), tokens[1:]
        # Lines queued for "before the next reply" go out ahead of it
        preamble = self.server.take_injected() + self.deferred_events
        self.deferred_events = []
        index = self.server.index

        if name == "PING":
            replies = ["PONG"]
        elif name == "HELP":
            replies = ["RESULT commands(PUSH, POP, COUNT, FLUSHC, FLUSHB, FLUSHO, PING, QUIT)"]
        elif name == "PUSH" and len(args) >= 4:
            index.push(args[0], args[1], args[2], args[3])
            replies = ["OK"]
        elif name == "POP" and len(args) >= 4:
            replies = [f"RESULT {index.pop(args[0], args[1], args[2], args[3])}"]
        elif name == "COUNT" and len(args) >= 2:
            obj = args[2] if len(args) > 2 else None
            replies = [f"RESULT {index.count(args[0], args[1], obj)}"]
        elif name == "FLUSHC" and len(args) >= 1:
            replies = [f"RESULT {index.flush(args[0])}"]
        elif name == "FLUSHB" and len(args) >= 2:
            replies = [f"RESULT {index.flush(args[0], args[1])}"]
        elif name == "FLUSHO" and len(args) >= 3:
            replies = [f"RESULT {index.flush(args[0], args[1], args[2])}"]
        elif name in ("QUERY", "SUGGEST") and len(args) >= 3:
            replies = self.search(name, args)
        elif name == "TRIGGER":
            replies = ["OK"] if args[:1] == ["consolidate"] else ["ERR invalid_action"]
        else:
            replies = ["ERR unknown_command"]

        if self.server.reply_delay:
            time.sleep(self.server.reply_delay)
        self.send_lines(*preamble, *replies)

    def search(self, name: str, args: list[str]) -> list[str]:
        collection, bucket, text = args[0], args[1], args[2]
        limit = _modifier(args[3:], "LIMIT", 10)
        offset = _modifier(args[3:], "OFFSET", 0)
        if name == "QUERY":
            found = self.server.index.query(collection, bucket, text)
        else:
            found = self.server.index.suggest(collection, bucket, text)
        found = found[offset : offset + limit]

        event_id = self.server.next_event_id()
        event = " ".join(["EVENT", name, event_id, *found])
        if self.server.defer_events:
            self.deferred_events.append(event)
            return [f"PENDING {event_id}"]
        return [f"PENDING {event_id}", event]


class FakeSonicServer(socketserver.ThreadingTCPServer):
    """Threaded Sonic server bound to an ephemeral localhost port."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, password: str = PASSWORD) -> None:
        super().__init__(("127.0.0.1", 0), SonicHandler)
        self.password = password
        self.index = FakeIndex()
        self.started_line = "STARTED {channel} protocol(1) buffer(20000)"

        # When set, EVENT lines are held back and sent just before the
        # reply to the next command on the same connection
        self.defer_events = False

        # Seconds to wait before answering each command
        self.reply_delay = 0.0

        self.received: list[str] = []
        self._injected: list[str] = []
        self._event_ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def port(self) -> int:
        return self.server_address[1]

    def record(self, line: str) -> None:
        with self._lock:
            self.received.append(line)

    def inject_before_next_reply(self, *lines: str) -> None:
        """Queue raw lines to be written ahead of the next command's reply."""
        with self._lock:
            self._injected.extend(lines)

    def take_injected(self) -> list[str]:
        with self._lock:
            lines, self._injected = self._injected, []
        return lines

    def next_event_id(self) -> str:
        with self._lock:
            return f"evt{next(self._event_ids):04d}"


@pytest.fixture
def sonic_server() -> Iterator[FakeSonicServer]:
    """A running fake Sonic server, shut down after the test."""
    server = FakeSonicServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
