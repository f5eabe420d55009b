import re

from chatbridge.xmpputil import get_avatar, parse_channel, parse_nick, replace_action

REMOTE = "room@conference.example.com/alice"


def test_parse_nick():
    assert parse_nick(REMOTE) == "alice"


def test_parse_nick_without_resource_or_at():
    assert parse_nick("room@conference.example.com") == ""
    assert parse_nick("room") == ""


def test_parse_channel():
    assert parse_channel(REMOTE) == "room"
    assert parse_channel("nobody") == ""


def test_parse_round_trip():
    channel, server, nick = "lobby", "muc.example.com", "bob"
    remote = f"{channel}@{server}/{nick}"
    assert (parse_channel(remote), parse_nick(remote)) == (channel, nick)


def test_replace_action_strips_prefix():
    assert replace_action("/me waves") == ("waves", True)


def test_replace_action_removes_every_occurrence():
    text, is_action = replace_action("/me says /me again")
    assert is_action
    assert "/me " not in text


def test_replace_action_leaves_plain_text():
    assert replace_action("hello /me there") == ("hello /me there", False)
    assert replace_action("/mewaves") == ("/mewaves", False)


def test_get_avatar_builds_url():
    url = get_avatar({"room@conf/alice": "abc123"}, "room@conf/alice", "https://media.example.com")
    assert url == "https://media.example.com/abc123/room_conf_alice.png"


def test_get_avatar_unknown_user():
    assert get_avatar({"a@b/c": "abc123"}, "x@y/z", "https://media.example.com") == ""


def test_get_avatar_path_is_safe():
    url = get_avatar({REMOTE: "ffff0000"}, REMOTE, "https://media.example.com")
    prefix = "https://media.example.com/ffff0000/"
    assert url.startswith(prefix)
    assert url.endswith(".png")
    assert re.fullmatch(r"[A-Za-z0-9_]+", url[len(prefix) : -len(".png")])