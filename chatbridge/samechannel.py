"""Expansion of same-channel gateways into ordinary gateway definitions."""

from __future__ import annotations

from chatbridge.config import BridgeEntry, Config, GatewayConfig


def gateway_configs(config: Config) -> list[GatewayConfig]:
    """One inout gateway per same-channel gateway, pairing every account with every channel."""
    return [
        GatewayConfig(
            name=gw.name,
            enable=gw.enable,
            inout=[
                BridgeEntry(account=account, channel=channel, same_channel=True)
                for account in gw.accounts
                for channel in gw.channels
            ],
        )
        for gw in config.same_channel_gateways
    ]