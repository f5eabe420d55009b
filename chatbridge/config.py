"""Configuration model: TOML loading plus the message and channel records."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any

EVENT_JOIN_LEAVE = "join_leave"
EVENT_TOPIC_CHANGE = "topic_change"
EVENT_FAILURE = "failure"
EVENT_FILE_FAILURE_SIZE = "file_failure_size"
EVENT_AVATAR_DOWNLOAD = "avatar_download"
EVENT_REJOIN_CHANNELS = "rejoin_channels"
EVENT_USER_ACTION = "user_action"
EVENT_MSG_DELETE = "msg_delete"
EVENT_FILE_DELETE = "file_delete"
EVENT_API_CONNECTED = "api_connected"
EVENT_USER_TYPING = "user_typing"
EVENT_GET_CHANNEL_MEMBERS = "get_channel_members"
EVENT_NOTICE_IRC = "notice_irc"

PARENT_ID_NOT_FOUND = "msg-parent-not-found"

_TRUE_WORDS = {"1", "t", "true"}


class ConfigError(Exception):
    """Raised when a configuration cannot be read or has the wrong shape."""


def as_bool(value: Any) -> bool:
    """Interpret a configuration value as a boolean; unparsable values are false."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_WORDS
    return False


def as_string(value: Any) -> str:
    """Interpret a configuration value as a string; missing values are empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value if isinstance(value, str) else str(value)


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(v) for v in value]
    return value


def _table_list(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    items = data.get(key, [])
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise ConfigError(f"'{key}' must be an array of tables")
    return items


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    items = data.get(key, [])
    if not isinstance(items, list):
        raise ConfigError(f"'{key}' must be an array")
    return [as_string(i) for i in items]


@dataclass
class FileInfo:
    """A file attached to a message."""

    name: str = ""
    data: bytes | None = None
    comment: str = ""
    url: str = ""
    size: int = 0
    avatar: bool = False
    sha: str = ""
    native_id: str = ""


@dataclass
class ChannelOptions:
    key: str = ""


@dataclass
class ChannelInfo:
    """A channel known to a gateway, keyed by channel name plus account."""

    name: str = ""
    account: str = ""
    direction: str = ""
    id: str = ""
    same_channel: dict[str, bool] = field(default_factory=dict)
    options: ChannelOptions = field(default_factory=ChannelOptions)


@dataclass
class Message:
    """A message travelling between bridges."""

    text: str = ""
    channel: str = ""
    username: str = ""
    user_id: str = ""
    avatar: str = ""
    account: str = ""
    event: str = ""
    protocol: str = ""
    gateway: str = ""
    parent_id: str = ""
    timestamp: datetime | None = None
    id: str = ""
    extra: dict[str, list[Any]] = field(default_factory=dict)


@dataclass
class BridgeEntry:
    """One account/channel pair inside a gateway definition."""

    account: str = ""
    channel: str = ""
    options: ChannelOptions = field(default_factory=ChannelOptions)
    same_channel: bool = False

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> BridgeEntry:
        options = data.get("options", {})
        if not isinstance(options, dict):
            raise ConfigError("gateway entry 'options' must be a table")
        return cls(
            account=as_string(data.get("account")),
            channel=as_string(data.get("channel")),
            options=ChannelOptions(key=as_string(options.get("key"))),
            same_channel=as_bool(data.get("samechannel", False)),
        )


@dataclass
class GatewayConfig:
    name: str = ""
    enable: bool = False
    inbound: list[BridgeEntry] = field(default_factory=list)
    outbound: list[BridgeEntry] = field(default_factory=list)
    inout: list[BridgeEntry] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> GatewayConfig:
        def entries(key: str) -> list[BridgeEntry]:
            return [BridgeEntry.from_mapping(e) for e in _table_list(data, key)]

        return cls(
            name=as_string(data.get("name")),
            enable=as_bool(data.get("enable", False)),
            inbound=entries("in"),
            outbound=entries("out"),
            inout=entries("inout"),
        )


@dataclass
class SameChannelGatewayConfig:
    name: str = ""
    enable: bool = False
    accounts: list[str] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> SameChannelGatewayConfig:
        return cls(
            name=as_string(data.get("name")),
            enable=as_bool(data.get("enable", False)),
            accounts=_string_list(data, "accounts"),
            channels=_string_list(data, "channels"),
        )


@dataclass
class GeneralSettings:
    """Typed view of the [general] section; keys match field names without underscores."""

    debug: bool = False
    ignore_failure_on_start: bool = False
    media_server_upload: str = ""
    media_server_download: str = ""
    media_download_path: str = ""
    media_download_size: int = 0
    tengo_modify_message: str = ""

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> GeneralSettings:
        values: dict[str, Any] = {}
        for f in fields(cls):
            key = f.name.replace("_", "")
            if key not in data:
                continue
            raw = data[key]
            if f.type == "bool":
                values[f.name] = as_bool(raw)
            elif f.type == "int":
                try:
                    values[f.name] = int(raw)
                except (TypeError, ValueError) as exc:
                    raise ConfigError(f"general.{key} must be an integer") from exc
            else:
                values[f.name] = as_string(raw)
        return cls(**values)


class Config:
    """Parsed configuration. Keys are case-insensitive and stored lower-cased."""

    def __init__(self, data: dict[str, Any]) -> None:
        self._data = _lower_keys(data)
        general = self._data.get("general", {})
        tengo = self._data.get("tengo", {})
        if not isinstance(general, dict) or not isinstance(tengo, dict):
            raise ConfigError("'general' and 'tengo' must be tables")
        self.general = GeneralSettings.from_mapping(general)
        self.tengo = {k: as_string(v) for k, v in tengo.items()}
        self.gateways = [
            GatewayConfig.from_mapping(g) for g in _table_list(self._data, "gateway")
        ]
        self.same_channel_gateways = [
            SameChannelGatewayConfig.from_mapping(g)
            for g in _table_list(self._data, "samechannelgateway")
        ]

    @classmethod
    def from_string(cls, text: str | bytes) -> Config:
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc
        return cls(data)

    @classmethod
    def from_file(cls, path: str | Path) -> Config:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"cannot read configuration {path}: {exc}") from exc
        return cls.from_string(text)

    def all_keys(self) -> list[str]:
        """Every leaf key as a dotted, lower-cased path."""
        keys: list[str] = []

        def walk(node: dict[str, Any], prefix: str) -> None:
            for key, value in node.items():
                path = f"{prefix}{key}"
                if isinstance(value, dict) and value:
                    walk(value, path + ".")
                elif not isinstance(value, dict):
                    keys.append(path)

        walk(self._data, "")
        return keys

    def account_settings(self, account: str) -> dict[str, Any]:
        """The settings table of an account such as 'irc.freenode', or of 'general'."""
        lowered = account.lower()
        for parts in (lowered.split("."), lowered.split(".", 1)):
            node: Any = self._data
            for part in parts:
                if not isinstance(node, dict) or part not in node:
                    node = None
                    break
                node = node[part]
            if isinstance(node, dict):
                return dict(node)
        return {}