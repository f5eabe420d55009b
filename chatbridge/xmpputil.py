"""Helpers for XMPP addresses, /me actions and cached avatar URLs."""

from __future__ import annotations

import re
from typing import Mapping

_PATH_UNSAFE = re.compile(r"[^a-zA-Z0-9]+")


def parse_nick(remote: str) -> str:
    """The resource part (nick) of 'room@server/nick', or '' if there is none."""
    parts = remote.split("@")
    if len(parts) > 1:
        resource = parts[1].split("/")
        if len(resource) == 2:
            return resource[1]
    return ""


def parse_channel(remote: str) -> str:
    """The local part (room) of 'room@server/nick', or '' if there is no '@'."""
    parts = remote.split("@")
    if len(parts) >= 2:
        return parts[0]
    return ""


def replace_action(text: str) -> tuple[str, bool]:
    """Strip '/me ' from an action message; the flag tells whether it was one."""
    if text.startswith("/me "):
        return text.replace("/me ", ""), True
    return text, False


def get_avatar(avatars: Mapping[str, str], user_id: str, download_url: str) -> str:
    """The media-server URL of a cached avatar, or '' if the user has none cached."""
    sha = avatars.get(user_id)
    if sha is None:
        return ""
    name = _PATH_UNSAFE.sub("_", user_id)
    return f"{download_url}/{sha}/{name}.png"