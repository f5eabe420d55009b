"""Registry of protocol implementations and of protocols that relay typing events."""

from __future__ import annotations

from typing import Any, Callable

from chatbridge.bridge import Bridge, Bridger

# A factory receives the Bridge it serves and the queue incoming messages are put on.
Factory = Callable[[Bridge, Any], Bridger]

FULL_MAP: dict[str, Factory] = {}
USER_TYPING_SUPPORT: set[str] = {"discord", "slack"}


def register(protocol: str, factory: Factory, user_typing: bool = False) -> None:
    """Make a protocol available to gateways."""
    FULL_MAP[protocol] = factory
    if user_typing:
        USER_TYPING_SUPPORT.add(protocol)


def supports_user_typing(protocol: str) -> bool:
    return protocol in USER_TYPING_SUPPORT