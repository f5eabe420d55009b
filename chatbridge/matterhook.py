"""Client for incoming and outgoing webhooks of a Mattermost-compatible server."""

from __future__ import annotations

import json
import logging
import queue
import socket
import ssl
import threading
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field, fields
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Mapping, Sequence

_log = logging.getLogger("chatbridge.matterhook")

_READ_TIMEOUT = 5.0
_NOT_FOUND_BODY = b"404 page not found\n"


def split_host_port(address: str) -> tuple[str, str]:
    """Split 'host:port' or '[v6host]:port'; raise ValueError if it has no port part."""
    if address.startswith("["):
        end = address.find("]")
        if end < 0 or address[end + 1 : end + 2] != ":":
            raise ValueError(f"incorrect bindaddress {address}")
        return address[1:end], address[end + 2 :]
    host, sep, port = address.rpartition(":")
    if not sep or ":" in host:
        raise ValueError(f"incorrect bindaddress {address}")
    return host, port


def resolve_port(port: str) -> int:
    """A numeric port, a service name such as 'http', or 0 when empty."""
    if not port:
        return 0
    if port.isdigit():
        return int(port)
    try:
        return socket.getservbyname(port, "tcp")
    except OSError as exc:
        raise ValueError(f"unknown port {port}") from exc


def make_handler(
    handle: Callable[[str, bytes, str], int], logger: logging.Logger
) -> type[BaseHTTPRequestHandler]:
    """A request handler class that passes every request to ``handle``."""

    class _Handler(BaseHTTPRequestHandler):
        timeout = _READ_TIMEOUT

        def _dispatch(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length > 0 else b""
            host, port = self.client_address[:2]
            status = handle(self.command, body, f"{host}:{port}")
            payload = b"" if status == 200 else _NOT_FOUND_BODY
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            if payload and self.command != "HEAD":
                self.wfile.write(payload)

        do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _dispatch

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.debug(format, *args)

    return _Handler


@dataclass
class OMessage:
    """A message posted to an incoming webhook."""

    text: str = ""
    channel: str = ""
    icon_url: str = ""
    icon_emoji: str = ""
    username: str = ""
    attachments: list[dict[str, Any]] = field(default_factory=list)
    type: str = ""
    props: dict[str, Any] | None = None

    def to_json(self) -> str:
        """The JSON body; empty optional fields are left out, text and props never are."""
        data: dict[str, Any] = {}
        for key, value in (
            ("channel", self.channel),
            ("icon_url", self.icon_url),
            ("icon_emoji", self.icon_emoji),
            ("username", self.username),
        ):
            if value:
                data[key] = value
        data["text"] = self.text
        if self.attachments:
            data["attachments"] = self.attachments
        if self.type:
            data["type"] = self.type
        data["props"] = self.props
        return json.dumps(data, separators=(",", ":"))


@dataclass
class IMessage:
    """A message delivered by an outgoing webhook."""

    bot_id: str = ""
    bot_name: str = ""
    token: str = ""
    team_id: str = ""
    team_domain: str = ""
    channel_id: str = ""
    channel_name: str = ""
    timestamp: str = ""
    user_id: str = ""
    user_name: str = ""
    post_id: str = ""
    raw_text: str = ""
    service_id: str = ""
    text: str = ""
    trigger_word: str = ""
    file_ids: str = ""

    @classmethod
    def from_form(cls, form: Mapping[str, str | Sequence[str]]) -> IMessage:
        """Build from decoded form fields; the last of repeated values wins.

        Raises ValueError for a field the message does not know.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, str] = {}
        for key, raw in form.items():
            if key not in known:
                raise ValueError(f"schema: invalid path {key!r}")
            if isinstance(raw, str):
                values[key] = raw
            elif raw:
                values[key] = str(list(raw)[-1])
        return cls(**values)


@dataclass
class WebhookConfig:
    bind_address: str = ""
    token: str = ""
    insecure_skip_verify: bool = False
    disable_server: bool = False


class Client:
    """Sends to an incoming webhook URL and serves POSTs from outgoing webhooks."""

    def __init__(self, url: str, config: WebhookConfig | None = None) -> None:
        self.url = url
        self.config = config or WebhookConfig()
        self.messages: queue.Queue[IMessage] = queue.Queue()
        self.ready = threading.Event()
        self.server_address: tuple[str, int] | None = None
        self._server: ThreadingHTTPServer | None = None
        if not self.config.disable_server:
            split_host_port(self.config.bind_address)
            threading.Thread(
                target=self.start_server, name="matterhook-server", daemon=True
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
        """Accept an outgoing-webhook POST; return the HTTP status to answer with."""
        if method != "POST":
            _log.info("invalid %s connection from %s", method, remote_addr)
            return 404
        try:
            text = body.decode("utf-8") if isinstance(body, bytes) else body
            form = urllib.parse.parse_qs(text, keep_blank_values=True, errors="strict")
            msg = IMessage.from_form(form)
        except ValueError as exc:
            _log.info("%s", exc)
            return 404
        if not msg.token:
            _log.info("no token from %s", remote_addr)
            return 404
        if self.config.token and msg.token != self.config.token:
            _log.info("invalid token %s from %s", msg.token, remote_addr)
            return 404
        self.messages.put(msg)
        return 200

    def receive(self, timeout: float | None = None) -> IMessage:
        """The next received message; raises TimeoutError if none arrives in time."""
        try:
            return self.messages.get(timeout=timeout)
        except queue.Empty as exc:
            raise TimeoutError("no message received") from exc

    def send(self, msg: OMessage) -> None:
        """POST ``msg`` to the webhook URL; raises OSError unless the answer is 200."""
        context = ssl.create_default_context()
        if self.config.insecure_skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        request = urllib.request.Request(
            self.url,
            data=msg.to_json().encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            with urllib.request.urlopen(request, context=context) as response:
                response.read()
                status = response.status
        except urllib.error.HTTPError as exc:
            status = exc.code
            exc.read()
            exc.close()
        if status != 200:
            raise OSError(f"unexpected status code: {status}")