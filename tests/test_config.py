from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from echo_proxy import config
from echo_proxy.models import DEFAULT_MAX_ATTEMPTS, PIPED_INSTANCES


def missing_config(tmp_path):
    return ["--config", str(tmp_path / "missing.json")]


def test_defaults_without_environment(tmp_path):
    settings = config.load_settings(missing_config(tmp_path), environ={})

    assert settings.port == 3000
    assert settings.host == "0.0.0.0"
    assert settings.hosted is False
    assert settings.max_attempts == DEFAULT_MAX_ATTEMPTS
    assert settings.piped_instances == PIPED_INSTANCES


def test_environment_populates_unset_options(tmp_path):
    environ = {
        "PORT": "8080",
        "VERCEL": "1",
        "ECHO_PROXY_LOG_LEVEL": "debug",
        "ECHO_PROXY_PROXY": " socks5://127.0.0.1:1080 ",
        "ECHO_PROXY_MAX_ATTEMPTS": "3",
    }

    settings = config.load_settings(missing_config(tmp_path), environ=environ)

    assert settings.port == 8080
    assert settings.hosted is True
    assert settings.log_level == "debug"
    assert settings.proxy == "socks5://127.0.0.1:1080"
    assert settings.max_attempts == 3


def test_command_line_wins_over_environment(tmp_path):
    argv = missing_config(tmp_path) + ["--port", "9000", "--max-attempts", "2"]

    settings = config.load_settings(argv, environ={"PORT": "8080", "ECHO_PROXY_MAX_ATTEMPTS": "4"})

    assert settings.port == 9000
    assert settings.max_attempts == 2


def test_invalid_environment_values_are_ignored(tmp_path):
    settings = config.load_settings(missing_config(tmp_path), environ={"PORT": "abc", "ECHO_PROXY_MAX_ATTEMPTS": "-1"})

    assert settings.port == 3000
    assert settings.max_attempts == DEFAULT_MAX_ATTEMPTS


def test_config_file_supplies_remaining_settings(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "port": 4000,
        "rate_limit_requests": 10,
        "piped_instances": ["https://piped.example/"],
        "bogus": True,
    }), encoding="utf-8")

    settings = config.load_settings(["--config", str(path)], environ={"PORT": "5000"})

    assert settings.port == 5000
    assert settings.rate_limit_requests == 10
    assert settings.piped_instances == ("https://piped.example",)


def test_broken_config_file_is_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    assert config.load_config_file(str(path)) == {}


@pytest.mark.parametrize("value", ["0", "-3", "abc"])
def test_positive_int_rejects_invalid_values(value):
    with pytest.raises(argparse.ArgumentTypeError):
        config.positive_int(value)
