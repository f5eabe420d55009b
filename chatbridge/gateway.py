"""A gateway: a named set of channels on several bridges that relay to each other."""

from __future__ import annotations

import copy
import logging
import re
import time
from dataclasses import dataclass, replace
from typing import Any, Iterable

from cachetools import Cache, LRUCache

from chatbridge.bridge import Bridge
from chatbridge.bridgemap import supports_user_typing
from chatbridge.config import (
    EVENT_AVATAR_DOWNLOAD,
    EVENT_FILE_DELETE,
    EVENT_FILE_FAILURE_SIZE,
    EVENT_JOIN_LEAVE,
    EVENT_NOTICE_IRC,
    EVENT_USER_TYPING,
    PARENT_ID_NOT_FOUND,
    BridgeEntry,
    ChannelInfo,
    ConfigError,
    GatewayConfig,
    Message,
)
from chatbridge.rules import (
    extract_nick,
    get_channel_id,
    get_protocol,
    ignore_event,
    ignore_files_comment,
    ignore_text,
    ignore_text_empty,
    is_api,
)

API_PROTOCOL = "api"
MESSAGE_CACHE_SIZE = 5000

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")
_TEMPLATE_REF = re.compile(r"\$(?:\$|\{(\w+)\}|(\w+))")


def _expand(template: str, match: re.Match[str]) -> str:
    """Expand ``$1``, ``${name}`` and ``$$`` references; unknown groups become empty."""

    def ref(m: re.Match[str]) -> str:
        if m.group(0) == "$$":
            return "$"
        name = m.group(1) or m.group(2)
        try:
            value = match.group(int(name)) if name.isdigit() else match.group(name)
        except IndexError:
            value = None
        return value or ""

    return _TEMPLATE_REF.sub(ref, template)


def _replace_all(pattern: re.Pattern[str], template: str, text: str) -> str:
    return pattern.sub(lambda m: _expand(template, m), text)


@dataclass(eq=False)
class BrMsgID:
    """The ID a destination bridge gave to a relayed message, and the channel it went to."""

    br: Bridge
    id: str
    channel_id: str


class Gateway:
    """Routes messages between the channels of one gateway definition."""

    reconnect_delay = 5.0
    retry_delay = 60.0

    def __init__(self, cfg: GatewayConfig, router: Any) -> None:
        self.router = router
        self.config = router.config
        self.message = router.message
        self.bridges: dict[str, Bridge] = {}
        self.channels: dict[str, ChannelInfo] = {}
        self.messages: LRUCache = LRUCache(maxsize=MESSAGE_CACHE_SIZE)
        self.my_config: GatewayConfig | None = None
        self.name = ""
        self.logger = logging.getLogger("chatbridge.gateway")
        self.add_config(cfg)

    def find_canonical_msg_id(self, protocol: str, msg_id: str) -> str:
        """The cache key under which a message was stored, searching downstream IDs too."""
        key = f"{protocol} {msg_id}"
        if key in self.messages:
            return key
        for canonical in list(self.messages.keys()):
            ids = Cache.__getitem__(self.messages, canonical)
            if any(downstream.id == key for downstream in ids):
                return canonical
        return ""

    def add_bridge(self, entry: BridgeEntry) -> None:
        br = self.router.get_bridge(entry.account)
        if br is None:
            self._check_config(entry)
            br = Bridge(account=entry.account, config=self.config)
            br.log = logging.getLogger(f"chatbridge.{br.protocol}")
            factory = self.router.bridge_map.get(br.protocol)
            if factory is None:
                raise ConfigError(
                    f"Incorrect protocol {br.protocol} specified in gateway "
                    f"configuration {entry.account}, exiting."
                )
            br.bridger = factory(br, self.message)
        self._map_channels_to_bridge(br)
        self.bridges[entry.account] = br

    def _check_config(self, entry: BridgeEntry) -> None:
        prefix = entry.account.lower()
        if not any(key.startswith(prefix) for key in self.config.all_keys()):
            raise ConfigError(
                f"Account {entry.account} defined in gateway {self.name} "
                "but no configuration found, exiting."
            )

    def add_config(self, cfg: GatewayConfig) -> None:
        self.name = cfg.name
        self.my_config = cfg
        self._map_channel_config(cfg.inbound, "in")
        self._map_channel_config(cfg.outbound, "out")
        self._map_channel_config(cfg.inout, "inout")
        for entry in [*cfg.inbound, *cfg.inout, *cfg.outbound]:
            self.add_bridge(entry)

    def _map_channels_to_bridge(self, br: Bridge) -> None:
        for channel_id, channel in self.channels.items():
            if channel.account == br.account:
                br.channels[channel_id] = copy.copy(channel)

    def _map_channel_config(self, entries: Iterable[BridgeEntry], direction: str) -> None:
        for entry in entries:
            name = entry.channel
            if is_api(entry.account):
                name = API_PROTOCOL
            if entry.account.startswith("irc."):
                name = name.lower()
            if entry.account.startswith("mattermost.") and name.startswith("#"):
                raise ConfigError(
                    f"Mattermost channels do not start with a #: remove the # in {name}"
                )
            if entry.account.startswith("zulip.") and "/topic:" not in name:
                raise ConfigError(
                    "zulip channels need to specify the topic with channel/topic:mytopic "
                    f"in {name} of {entry.account}"
                )
            channel_id = name + entry.account
            channel = self.channels.get(channel_id)
            if channel is None:
                channel = ChannelInfo(
                    name=name,
                    account=entry.account,
                    direction=direction,
                    id=channel_id,
                    options=replace(entry.options),
                )
                self.channels[channel_id] = channel
            elif channel.direction != direction:
                channel.direction = "inout"
            channel.same_channel[self.name] = entry.same_channel

    def reconnect_bridge(self, br: Bridge) -> None:
        """Disconnect, then keep trying to connect until it works, and rejoin channels."""
        try:
            br.disconnect()
        except Exception as exc:  # noqa: BLE001 - any protocol failure is only logged
            self.logger.error("Disconnect() %s failed: %s", br.account, exc)
        time.sleep(self.reconnect_delay)
        while True:
            self.logger.info("Reconnecting %s", br.account)
            try:
                br.connect()
                break
            except Exception as exc:  # noqa: BLE001
                self.logger.error(
                    "Reconnection failed: %s. Trying again in %s seconds", exc, self.retry_delay
                )
                time.sleep(self.retry_delay)
        br.joined = {}
        try:
            br.join_channels()
        except Exception as exc:  # noqa: BLE001
            self.logger.error("JoinChannels() %s failed: %s", br.account, exc)

    def get_dest_channel(self, msg: Message, dest: Bridge) -> list[ChannelInfo]:
        """The channels on ``dest`` that ``msg`` should be relayed to."""
        if msg.protocol == API_PROTOCOL and self.name != msg.gateway:
            return []

        if msg.event == EVENT_JOIN_LEAVE and get_protocol(msg) == "discord" and not msg.channel:
            return [
                copy.copy(channel)
                for channel in self.channels.values()
                if channel.account == dest.account
                and "out" in channel.direction
                and self.valid_gateway_dest(msg)
            ]

        source_id = get_channel_id(msg)
        source = self.channels.get(source_id)
        if source is None:
            return []
        if "in" not in source.direction:
            return []

        result: list[ChannelInfo] = []
        for channel in self.channels.values():
            if channel.same_channel.get(msg.gateway, False):
                if msg.channel == channel.name and msg.account != dest.account:
                    result.append(copy.copy(channel))
                continue
            if (
                "out" in channel.direction
                and channel.account == dest.account
                and self.valid_gateway_dest(msg)
            ):
                result.append(copy.copy(channel))
        return result

    def get_dest_msg_id(self, msg_id: str, dest: Bridge, channel: ChannelInfo) -> str:
        ids = self.messages.get(msg_id)
        if ids is None:
            return ""
        for entry in ids:
            if (
                dest.protocol == entry.br.protocol
                and dest.name == entry.br.name
                and channel.id == entry.channel_id
            ):
                return entry.id.replace(dest.protocol + " ", "", 1)
        return ""

    def ignore_message(self, msg: Message) -> bool:
        br = self.bridges.get(msg.account)
        if br is None:
            return True
        nicks = br.get_string("IgnoreNicks").split()
        texts = br.get_string("IgnoreMessages").split()
        return (
            ignore_text_empty(msg)
            or ignore_text(msg.username, nicks)
            or ignore_text(msg.text, texts)
            or ignore_files_comment(msg.extra, texts)
        )

    def _apply_replacements(self, br: Bridge, key: str, msg: Message, value: str) -> str:
        for row in br.get_string_slice_2d(key):
            if len(row) < 2:
                continue
            search, template = row[0], row[1]
            try:
                pattern = re.compile(search)
            except re.error as exc:
                self.logger.error("regexp in %s failed: %s", msg.account, exc)
                break
            value = _replace_all(pattern, template, value)
        return value

    def modify_username(self, msg: Message, dest: Bridge) -> str:
        """Rewrite the sender's name on ``msg`` and return the nick formatted for ``dest``."""
        if dest.get_bool("StripNick"):
            msg.username = _NON_ALNUM.sub("", msg.username)
        nick = dest.get_string("RemoteNickFormat")

        br = self.bridges[msg.account]
        msg.username = self._apply_replacements(br, "ReplaceNicks", msg, msg.username)

        if msg.username:
            nick = nick.replace("{NOPINGNICK}", msg.username[:1] + "\u200b" + msg.username[1:])

        for placeholder, value in (
            ("{BRIDGE}", br.name),
            ("{PROTOCOL}", br.protocol),
            ("{GATEWAY}", self.name),
            ("{LABEL}", br.get_string("Label")),
            ("{NICK}", msg.username),
            ("{USERID}", msg.user_id),
            ("{CHANNEL}", msg.channel),
            ("{TENGO}", ""),
        ):
            nick = nick.replace(placeholder, value)
        return nick

    def modify_avatar(self, msg: Message, dest: Bridge) -> str:
        icon_url = dest.get_string("IconURL").replace("{NICK}", msg.username)
        if not msg.avatar:
            msg.avatar = icon_url
        return msg.avatar

    def modify_message(self, msg: Message) -> None:
        br = self.bridges[msg.account]
        msg.text = self._apply_replacements(br, "ReplaceMessages", msg, msg.text)
        self.handle_extract_nicks(msg)
        if msg.protocol != API_PROTOCOL:
            msg.gateway = self.name

    def send_message(
        self,
        rmsg: Message,
        dest: Bridge,
        channel: ChannelInfo,
        canonical_parent_msg_id: str,
    ) -> str:
        """Send ``rmsg`` to one channel of ``dest``; return the ID it got there, or ''."""
        msg = copy.copy(rmsg)
        if msg.event == EVENT_AVATAR_DOWNLOAD:
            if channel.id != get_channel_id(rmsg):
                return ""
        elif channel.id == get_channel_id(rmsg):
            return ""

        if msg.event == EVENT_NOTICE_IRC and dest.protocol != "irc":
            return ""

        msg.channel = channel.name
        msg.avatar = self.modify_avatar(rmsg, dest)
        msg.username = self.modify_username(rmsg, dest)

        if msg.event != EVENT_FILE_DELETE:
            msg.id = self.get_dest_msg_id(f"{rmsg.protocol} {rmsg.id}", dest, channel)

        if dest.protocol == API_PROTOCOL:
            msg.channel = rmsg.channel

        msg.parent_id = self.get_dest_msg_id(canonical_parent_msg_id, dest, channel)
        if not msg.parent_id:
            msg.parent_id = canonical_parent_msg_id.replace(dest.protocol + " ", "", 1)
        if not msg.parent_id and rmsg.parent_id:
            msg.parent_id = PARENT_ID_NOT_FOUND

        if msg.event != EVENT_USER_TYPING:
            self.logger.debug(
                "=> Sending %r from %s (%s) to %s (%s)",
                msg, msg.account, rmsg.channel, dest.account, channel.name,
            )

        if dest.account == "mattermost.plugin":
            self.router.mattermost_plugin.put(msg)

        started = time.monotonic()
        try:
            msg_id = dest.send(msg)
        finally:
            self.logger.debug(
                "=> Send from %s (%s) to %s (%s) took %.3fs",
                msg.account, rmsg.channel, dest.account, channel.name,
                time.monotonic() - started,
            )
        if msg_id:
            self.logger.debug("mID %s: %s", dest.account, msg_id)
            return msg_id
        return ""

    def handle_message(self, rmsg: Message, dest: Bridge) -> list[BrMsgID]:
        """Relay ``rmsg`` to every matching channel of ``dest``; return the resulting IDs."""
        if rmsg.event == EVENT_USER_TYPING and not supports_user_typing(dest.protocol):
            return []
        if rmsg.extra and rmsg.extra.get(EVENT_FILE_FAILURE_SIZE) and not rmsg.text:
            return []
        if ignore_event(rmsg.event, dest):
            return []
        if not rmsg.channel and rmsg.event != EVENT_JOIN_LEAVE:
            self.logger.debug("empty channel")
            return []

        canonical_parent = ""
        if rmsg.parent_id and dest.get_bool("PreserveThreading"):
            canonical_parent = self.find_canonical_msg_id(rmsg.protocol, rmsg.parent_id)

        result: list[BrMsgID] = []
        for channel in self.get_dest_channel(rmsg, dest):
            try:
                msg_id = self.send_message(rmsg, dest, channel, canonical_parent)
            except Exception as exc:  # noqa: BLE001 - one failing channel must not stop others
                self.logger.error("SendMessage failed: %s", exc)
                continue
            if msg_id:
                result.append(BrMsgID(dest, f"{dest.protocol} {msg_id}", channel.id))
        return result

    def handle_extract_nicks(self, msg: Message) -> None:
        br = self.bridges[msg.account]
        for row in br.get_string_slice_2d("ExtractNicks"):
            if len(row) < 2:
                continue
            try:
                msg.username, msg.text = extract_nick(row[0], row[1], msg.username, msg.text)
            except re.error as exc:
                self.logger.error("regexp in %s failed: %s", msg.account, exc)
                break

    def valid_gateway_dest(self, msg: Message) -> bool:
        return msg.gateway == self.name