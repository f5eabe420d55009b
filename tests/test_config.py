import pytest

from chatbridge.config import (
    BridgeEntry,
    ChannelOptions,
    Config,
    ConfigError,
    GatewayConfig,
    Message,
    as_bool,
    as_string,
)

TESTCONFIG2 = """
[irc.freenode]
server=""
[mattermost.test]
server=""
[gitter.42wim]
server=""
[discord.test]
server=""
[slack.test]
server=""

[[gateway]]
    name = "bridge1"
    enable=true

    [[gateway.in]]
    account = "irc.freenode"
    channel = "#wimtesting"

    [[gateway.in]]
    account="gitter.42wim"
    channel="42wim/testroom"

    [[gateway.inout]]
    account = "discord.test"
    channel = "general"

    [[gateway.out]]
    account="slack.test"
    channel="testing"
[[gateway]]
    name = "bridge2"
    enable=true

    [[gateway.in]]
    account = "irc.freenode"
    channel = "#wimtesting2"

    [[gateway.out]]
    account="gitter.42wim"
    channel="42wim/testroom"

    [[gateway.out]]
    account = "discord.test"
    channel = "general2"
"""


def test_gateways_parsed_in_order():
    cfg = Config.from_string(TESTCONFIG2)
    assert [g.name for g in cfg.gateways] == ["bridge1", "bridge2"]
    first = cfg.gateways[0]
    assert first.enable is True
    assert [e.account for e in first.inbound] == ["irc.freenode", "gitter.42wim"]
    assert first.inout == [BridgeEntry(account="discord.test", channel="general")]
    assert [e.channel for e in first.outbound] == ["testing"]
    assert len(cfg.gateways[1].outbound) == 2


def test_all_keys_are_dotted_and_lowercase():
    cfg = Config.from_string(TESTCONFIG2)
    keys = cfg.all_keys()
    assert "irc.freenode.server" in keys
    assert "gitter.42wim.server" in keys
    assert "gateway" in keys
    assert all(k == k.lower() for k in keys)


def test_keys_are_case_insensitive():
    cfg = Config.from_string("[IRC.Freenode]\nServer = 'irc.example.com'\n")
    assert cfg.account_settings("irc.freenode") == {"server": "irc.example.com"}
    assert cfg.account_settings("IRC.FREENODE")["server"] == "irc.example.com"


def test_account_with_dotted_name():
    cfg = Config.from_string('[irc."libera.chat"]\nnick = "bot"\n')
    assert cfg.account_settings("irc.libera.chat") == {"nick": "bot"}


def test_missing_account_is_empty():
    cfg = Config.from_string(TESTCONFIG2)
    assert cfg.account_settings("telegram.none") == {}


def test_general_and_tengo_sections():
    text = (
        "[general]\n"
        "MediaServerUpload = 'http://localhost/upload'\n"
        "IgnoreFailureOnStart = true\n"
        "MediaDownloadSize = 2000\n"
        "[tengo]\n"
        "InMessage = 'in.tengo'\n"
    )
    cfg = Config.from_string(text)
    assert cfg.general.media_server_upload == "http://localhost/upload"
    assert cfg.general.ignore_failure_on_start is True
    assert cfg.general.media_download_size == 2000
    assert cfg.general.debug is False
    assert cfg.tengo == {"inmessage": "in.tengo"}


def test_options_and_samechannel_flag():
    text = (
        "[[gateway]]\nname='g'\nenable=true\n"
        "[[gateway.inout]]\naccount='irc.a'\nchannel='#c'\nsamechannel=true\n"
        "options={key='placeholder'}\n"
    )
    cfg = Config.from_string(text)
    entry = cfg.gateways[0].inout[0]
    assert entry.same_channel is True
    assert entry.options == ChannelOptions(key="placeholder")


def test_invalid_toml_raises():
    with pytest.raises(ConfigError):
        Config.from_string("[unterminated")


def test_wrong_gateway_type_raises():
    with pytest.raises(ConfigError):
        Config.from_string("gateway = 5\n")


def test_from_file_round_trip(tmp_path):
    path = tmp_path / "bridge.toml"
    path.write_text(TESTCONFIG2, encoding="utf-8")
    cfg = Config.from_file(path)
    assert [g.name for g in cfg.gateways] == ["bridge1", "bridge2"]


def test_from_file_missing_raises(tmp_path):
    with pytest.raises(ConfigError):
        Config.from_file(tmp_path / "absent.toml")


def test_value_helpers():
    assert as_bool("true") is True
    assert as_bool("0") is False
    assert as_bool("nonsense") is False
    assert as_string(True) == "true"
    assert as_string(None) == ""


def test_message_defaults_are_independent():
    a, b = Message(), Message()
    a.extra["file"] = [1]
    assert b.extra == {}
    assert GatewayConfig().inbound == []