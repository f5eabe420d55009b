"""The router: owns every gateway and moves incoming messages through them."""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime
from typing import Mapping

from chatbridge.bridge import Bridge
from chatbridge.bridgemap import FULL_MAP, Factory
from chatbridge.config import (
    EVENT_FAILURE,
    EVENT_GET_CHANNEL_MEMBERS,
    EVENT_REJOIN_CHANNELS,
    Config,
    ConfigError,
    Message,
)
from chatbridge.gateway import Gateway
from chatbridge.media import store_files
from chatbridge.samechannel import gateway_configs


class Router:
    """Sets up the configured gateways and routes messages between their bridges.

    Protocol implementations put incoming messages on ``message``; putting
    ``None`` there makes the receiving loop return.
    """

    def __init__(self, config: Config, bridge_map: Mapping[str, Factory] | None = None) -> None:
        self.config = config
        self.bridge_map = FULL_MAP if bridge_map is None else bridge_map
        self.gateways: dict[str, Gateway] = {}
        self.message: queue.Queue[Message | None] = queue.Queue()
        self.mattermost_plugin: queue.Queue[Message] = queue.Queue()
        self.logger = logging.getLogger("chatbridge.router")
        self._receiver: threading.Thread | None = None

        for entry in [*gateway_configs(config), *config.gateways]:
            if not entry.enable:
                continue
            if not entry.name:
                raise ConfigError("Gateway without name found")
            if entry.name in self.gateways:
                raise ConfigError(f"Gateway with name {entry.name} already exists")
            self.gateways[entry.name] = Gateway(entry, self)

    def start(self) -> None:
        """Connect every bridge, join its channels and start relaying in the background."""
        if not self.gateways:
            raise ConfigError("no [[gateway]] configured")
        bridges: dict[str, Bridge] = {}
        for gw in self.gateways.values():
            self.logger.info("Parsing gateway %s", gw.name)
            if not gw.bridges:
                raise ConfigError(f"no bridges configured for gateway {gw.name}")
            for br in gw.bridges.values():
                bridges[br.account] = br

        for br in bridges.values():
            self.logger.info("Starting bridge: %s ", br.account)
            try:
                br.connect()
            except Exception as exc:  # noqa: BLE001 - protocols may fail in any way
                err = RuntimeError(f"Bridge {br.account} failed to start: {exc}")
                if self.disable_bridge(br, err):
                    continue
                raise err from exc
            try:
                br.join_channels()
            except Exception as exc:  # noqa: BLE001
                err = RuntimeError(f"Bridge {br.account} failed to join channel: {exc}")
                if self.disable_bridge(br, err):
                    continue
                raise err from exc

        for gw in self.gateways.values():
            for account, br in list(gw.bridges.items()):
                if br.bridger is None:
                    self.logger.error("removing failed bridge %s", account)
                    del gw.bridges[account]

        self._receiver = threading.Thread(
            target=self.handle_receive, name="router-receive", daemon=True
        )
        self._receiver.start()

    def disable_bridge(self, br: Bridge, err: Exception) -> bool:
        """Empty the bridge and return True if failures on start are to be ignored."""
        if not self.config.general.ignore_failure_on_start:
            return False
        self.logger.error("%s", err)
        br.account = ""
        br.config = None
        br.protocol = ""
        br.name = ""
        br.bridger = None
        br.channels = {}
        br.joined = {}
        br.channel_members = None
        return True

    def get_bridge(self, account: str) -> Bridge | None:
        for gw in self.gateways.values():
            br = gw.bridges.get(account)
            if br is not None:
                return br
        return None

    def process(self, msg: Message) -> None:
        """Handle control events, then relay ``msg`` through every gateway that accepts it."""
        self.handle_event_get_channel_members(msg)
        self.handle_event_failure(msg)
        self.handle_event_rejoin_channels(msg)

        source = self.get_bridge(msg.account)
        if source is None:
            self.logger.error("dropping message from unknown account %s", msg.account)
            return
        msg.protocol = source.protocol

        files_handled = False
        for gw in list(self.gateways.values()):
            if gw.ignore_message(msg):
                continue
            msg.timestamp = datetime.now()
            gw.modify_message(msg)
            if not files_handled:
                store_files(msg, self.config.general)
                files_handled = True
            msg_ids = [
                entry
                for br in list(gw.bridges.values())
                for entry in gw.handle_message(msg, br)
            ]
            if msg.id:
                key = f"{msg.protocol} {msg.id}"
                if gw.messages.get(key) is None:
                    gw.messages[key] = msg_ids

    def handle_receive(self) -> None:
        """Process messages from the queue until ``None`` arrives."""
        while True:
            msg = self.message.get()
            if msg is None:
                return
            try:
                self.process(msg)
            except Exception:  # noqa: BLE001 - keep relaying after a bad message
                self.logger.exception("processing message from %s failed", msg.account)

    def handle_event_failure(self, msg: Message) -> threading.Thread | None:
        """Reconnect the failed bridge in the background; return the thread doing it."""
        if msg.event != EVENT_FAILURE:
            return None
        for gw in self.gateways.values():
            for br in gw.bridges.values():
                if msg.account == br.account:
                    thread = threading.Thread(
                        target=gw.reconnect_bridge, args=(br,), daemon=True
                    )
                    thread.start()
                    return thread
        return None

    def handle_event_get_channel_members(self, msg: Message) -> None:
        if msg.event != EVENT_GET_CHANNEL_MEMBERS:
            return
        for gw in self.gateways.values():
            for br in gw.bridges.values():
                if msg.account == br.account:
                    members = (msg.extra or {}).get(EVENT_GET_CHANNEL_MEMBERS) or []
                    if not members:
                        self.logger.error("channel members event from %s has no members", msg.account)
                        return
                    self.logger.debug("Syncing channelmembers from %s", msg.account)
                    br.set_channel_members(members[0])
                    return

    def handle_event_rejoin_channels(self, msg: Message) -> None:
        if msg.event != EVENT_REJOIN_CHANNELS:
            return
        for gw in self.gateways.values():
            for br in gw.bridges.values():
                if msg.account == br.account:
                    br.joined = {}
                    try:
                        br.join_channels()
                    except Exception as exc:  # noqa: BLE001
                        self.logger.error("channel join failed for %s: %s", msg.account, exc)