"""Filtering and rewriting rules applied to messages as they pass through a gateway."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from chatbridge.bridge import Bridge
from chatbridge.config import (
    EVENT_AVATAR_DOWNLOAD,
    EVENT_FILE_FAILURE_SIZE,
    EVENT_JOIN_LEAVE,
    EVENT_TOPIC_CHANGE,
    EVENT_USER_TYPING,
    FileInfo,
    Message,
)

_log = logging.getLogger("chatbridge.gateway")

_AVATAR_PROTOCOLS = frozenset({"mattermost", "telegram", "xmpp"})


def extract_nick(search: str, extract: str, username: str, text: str) -> tuple[str, str]:
    """Take the real author's nick out of a relayed text.

    If ``username`` matches ``search``, the first match of ``extract`` in
    ``text`` supplies the new username (its single capture group) and is
    removed from the text. Raises ``re.error`` if a pattern does not compile.
    """
    if not re.search(search, username):
        return username, text
    pattern = re.compile(extract)
    match = pattern.search(text)
    if match is not None and pattern.groups == 1:
        username = match.group(1) or ""
        text = text.replace(match.group(0), "", 1)
    return username, text


def ignore_text(text: str, patterns: Iterable[str]) -> bool:
    """True if ``text`` matches any of the regular expressions; invalid ones are skipped."""
    for entry in patterns:
        if not entry:
            continue
        try:
            pattern = re.compile(entry)
        except re.error:
            _log.error("incorrect regexp %s", entry)
            continue
        if pattern.search(text):
            _log.debug("matching %s. ignoring %s", entry, text)
            return True
    return False


def ignore_text_empty(msg: Message) -> bool:
    """True if a message has no text and nothing else worth relaying."""
    if msg.text:
        return False
    if msg.event == EVENT_USER_TYPING:
        return False
    extra = msg.extra
    if extra and (
        extra.get("attachments") is not None
        or extra.get("file")
        or extra.get(EVENT_FILE_FAILURE_SIZE)
    ):
        return False
    _log.debug("ignoring empty message %r from %s", msg, msg.account)
    return True


def ignore_files_comment(extra: dict[str, list[Any]] | None, patterns: Iterable[str]) -> bool:
    """True if the comment of any attached file matches one of the patterns."""
    if not extra:
        return False
    patterns = list(patterns)
    return any(
        isinstance(f, FileInfo) and ignore_text(f.comment, patterns)
        for f in extra.get("file") or []
    )


def ignore_event(event: str, dest: Bridge) -> bool:
    """True if ``event`` should not be relayed to the destination bridge."""
    if event == EVENT_AVATAR_DOWNLOAD:
        return dest.protocol not in _AVATAR_PROTOCOLS
    if event == EVENT_JOIN_LEAVE:
        return not dest.get_bool("ShowJoinPart")
    if event == EVENT_TOPIC_CHANGE:
        return not dest.get_bool("ShowTopicChange") and not dest.get_bool("SyncTopic")
    return False


def get_channel_id(msg: Message) -> str:
    return msg.channel + msg.account


def get_protocol(msg: Message) -> str:
    return msg.account.split(".", 1)[0]


def is_api(account: str) -> bool:
    return account.startswith("api.")