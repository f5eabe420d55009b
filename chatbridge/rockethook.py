"""Server for outgoing webhooks of a Rocket.Chat-compatible server."""

from __future__ import annotations

import json
import logging
import queue
import re
import threading
from dataclasses import dataclass, fields
from http.server import ThreadingHTTPServer

from chatbridge.matterhook import make_handler, resolve_port, split_host_port

_log = logging.getLogger("chatbridge.rockethook")

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")


@dataclass
class Message:
    """A message delivered by an outgoing webhook."""

    token: str = ""
    channel_id: str = ""
    channel_name: str = ""
    timestamp: str = ""
    user_id: str = ""
    user_name: str = ""
    text: str = ""


def _parse_message(body: bytes | str) -> Message:
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError("webhook body is not a JSON object")
    values: dict[str, str] = {}
    for f in fields(Message):
        value = data.get(f.name)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"field {f.name} must be a string")
        values[f.name] = value
    return Message(**values)


@dataclass
class HookConfig:
    bind_address: str = ""
    token: str = ""
    insecure_skip_verify: bool = False


class Client:
    """Serves outgoing-webhook POSTs and queues the messages they carry."""

    def __init__(self, url: str, config: HookConfig | None = None, serve: bool = True) -> None:
        self.url = url
        self.config = config or HookConfig()
        self.messages: queue.Queue[Message] = queue.Queue()
        self.ready = threading.Event()
        self.server_address: tuple[str, int] | None = None
        self._server: ThreadingHTTPServer | None = None
        split_host_port(self.config.bind_address)
        if serve:
            threading.Thread(
                target=self.start_server, name="rockethook-server", daemon=True
            ).start()

    def start_server(self) -> None:
        """Listen on the bind address and serve requests until closed."""
        host, port = split_host_port(self.config.bind_address)
        handler = make_handler(self.handle_request, _log)
        self._server = ThreadingHTTPServer((host, resolve_port(port)), handler)
        self.server_address = self._server.server_address[:2]
        _log.info("Listening on http://%s...", self.config.bind_address)
        self.ready.set()
        self._server.serve_forever()

    def close(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None

    def handle_request(self, method: str, body: bytes | str, remote_addr: str = "") -> int:
        """Accept a webhook POST with a JSON body; return the HTTP status to answer with."""
        if method != "POST":
            _log.info("invalid %s connection from %s", method, remote_addr)
            return 404
        try:
            msg = _parse_message(body)
        except ValueError as exc:
            _log.info("%s", exc)
            return 404
        if not msg.token:
            _log.info("no token from %s", remote_addr)
            return 404
        msg.channel_name = "#" + msg.channel_name
        if self.config.token and msg.token != self.config.token:
            if _NON_ALNUM.search(msg.token):
                _log.info("invalid token %s from %s", msg.token, remote_addr)
            else:
                _log.info("invalid token from %s", remote_addr)
            return 404
        self.messages.put(msg)
        return 200

    def receive(self, timeout: float | None = None) -> Message:
        """The next received message; raises TimeoutError if none arrives in time."""
        try:
            return self.messages.get(timeout=timeout)
        except queue.Empty as exc:
            raise TimeoutError("no message received") from exc