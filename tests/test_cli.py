import logging

import pytest

from chatbridge.cli import RELEASE, main, setup_logger


@pytest.fixture(autouse=True)
def reset_logger(monkeypatch):
    monkeypatch.delenv("DEBUG", raising=False)
    yield
    logger = logging.getLogger("chatbridge")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def test_version_flag(capsys):
    assert main(["-version"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("version: 1.25.3-dev")
    assert RELEASE in out


def test_version_double_dash(capsys):
    assert main(["--version"]) == 0
    assert capsys.readouterr().out.startswith("version: ")


def test_setup_logger_info_level():
    logger = setup_logger(False)
    assert logger.level == logging.INFO
    assert logger.propagate is False


def test_setup_logger_debug_flag(capsys):
    logger = setup_logger(True)
    assert logger.level == logging.DEBUG
    assert "Enabling debug logging." in capsys.readouterr().out


def test_setup_logger_debug_env(monkeypatch):
    monkeypatch.setenv("DEBUG", "1")
    assert setup_logger(False).level == logging.DEBUG


def test_setup_logger_does_not_stack_handlers():
    setup_logger(False)
    logger = setup_logger(False)
    assert len(logger.handlers) == 1


def test_missing_config_file(tmp_path, capsys):
    assert main(["-conf", str(tmp_path / "missing.toml")]) == 1
    assert "cannot read configuration" in capsys.readouterr().out


def test_config_without_gateways_fails(tmp_path, capsys):
    path = tmp_path / "conf.toml"
    path.write_text('[irc.a]\nserver=""\n', encoding="utf-8")
    assert main(["-conf", str(path)]) == 1
    out = capsys.readouterr().out
    assert "Starting gateway failed" in out
    assert "Running version" in out


def test_unknown_protocol_fails(tmp_path, capsys):
    path = tmp_path / "conf.toml"
    path.write_text(
        '[nowhere.a]\nserver=""\n[[gateway]]\nname="g"\nenable=true\n'
        '[[gateway.inout]]\naccount="nowhere.a"\nchannel="c"\n',
        encoding="utf-8",
    )
    assert main(["-conf", str(path), "-debug"]) == 1
    assert "Incorrect protocol nowhere" in capsys.readouterr().out