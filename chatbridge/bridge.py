"""A configured account and the protocol implementation that drives it."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from chatbridge.config import ChannelInfo, Config, Message, as_bool, as_string

_MISSING = object()


class Bridger(ABC):
    """The operations a chat protocol implementation provides."""

    @abstractmethod
    def connect(self) -> None:
        """Open the connection to the chat service."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection to the chat service."""

    @abstractmethod
    def join_channel(self, channel: ChannelInfo) -> None:
        """Join one channel."""

    @abstractmethod
    def send(self, msg: Message) -> str:
        """Send a message; return the remote message ID, or an empty string."""


@dataclass(eq=False)
class Bridge:
    """One account, such as 'irc.freenode', with its channels and settings."""

    account: str = ""
    config: Config | None = None
    protocol: str = ""
    name: str = ""
    bridger: Bridger | None = None
    channels: dict[str, ChannelInfo] = field(default_factory=dict)
    joined: dict[str, bool] = field(default_factory=dict)
    channel_members: Any = None
    log: logging.Logger | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.account:
            protocol, _, name = self.account.partition(".")
            self.protocol = self.protocol or protocol
            self.name = self.name or name
        if self.log is None:
            self.log = logging.getLogger(f"chatbridge.{self.protocol or 'bridge'}")

    def _lookup(self, key: str) -> Any:
        if self.config is None:
            return _MISSING
        key = key.lower()
        for section in (self.account, "general"):
            settings = self.config.account_settings(section) if section else {}
            if key in settings:
                return settings[key]
        return _MISSING

    def get_string(self, key: str) -> str:
        value = self._lookup(key)
        return "" if value is _MISSING else as_string(value)

    def get_bool(self, key: str) -> bool:
        value = self._lookup(key)
        return False if value is _MISSING else as_bool(value)

    def get_string_slice_2d(self, key: str) -> list[list[str]]:
        value = self._lookup(key)
        if not isinstance(value, list):
            return []
        return [[as_string(v) for v in row] for row in value if isinstance(row, list)]

    def _require(self) -> Bridger:
        if self.bridger is None:
            raise RuntimeError(f"bridge {self.account!r} has no protocol implementation")
        return self.bridger

    def connect(self) -> None:
        self._require().connect()

    def disconnect(self) -> None:
        self._require().disconnect()

    def join_channels(self) -> None:
        """Join every channel not joined yet."""
        bridger = self._require()
        for channel_id, channel in list(self.channels.items()):
            if self.joined.get(channel_id):
                continue
            self.log.info("%s: joining %s (ID: %s)", self.account, channel.name, channel_id)
            bridger.join_channel(channel)
            self.joined[channel_id] = True

    def send(self, msg: Message) -> str:
        return self._require().send(msg)

    def set_channel_members(self, members: Any) -> None:
        with self._lock:
            self.channel_members = members