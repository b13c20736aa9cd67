"""Tests for startup validation."""

import asyncio

import pytest

from proxmox_dns import config, main


@pytest.fixture
def env(monkeypatch):
    values = {
        "DNS_DOMAIN": "lab.example",
        "PVE_URL": "https://pve.lab.example:8006",
        "PVE_USERNAME": "root@pam!dns",
        "PVE_TOKENID": "secret",
        "PVE_NODE": "pve",
        "ROS_URL": "https://router.lab.example",
        "ROS_USERNAME": "api",
        "ROS_PASSWORD": "pw",
    }
    for key, value in values.items():
        monkeypatch.setattr(config, key, value)
    monkeypatch.setattr(config, "INVALID", [])
    return monkeypatch


def test_missing_env_lists_unset_variables(env):
    assert config.missing_env() == []
    env.setattr(config, "PVE_NODE", "")
    env.setattr(config, "ROS_PASSWORD", "")
    assert config.missing_env() == ["PDNS_PVE_NODE", "PDNS_ROS_PASSWORD"]


def test_main_aborts_on_missing_env(env, caplog):
    env.setattr(config, "DNS_DOMAIN", "")
    assert asyncio.run(main.main()) == 1
    assert "PDNS_DOMAIN" in caplog.text


def test_main_aborts_on_invalid_url(env, caplog):
    env.setattr(config, "ROS_URL", "router.lab.example")
    assert asyncio.run(main.main()) == 1
    assert "Invalid configuration" in caplog.text


@pytest.mark.parametrize("value, kind, maximum", [
    ("fifty-three", int, None),
    ("-1", int, None),
    ("70000", int, 65535),
    ("30s", float, None),
])
def test_env_number_records_unusable_values(env, value, kind, maximum):
    env.setenv("PDNS_TEST_NUMBER", value)

    assert config._env_number("PDNS_TEST_NUMBER", "7", kind, maximum) == kind("7")
    assert config.invalid_env() == ["PDNS_TEST_NUMBER"]


def test_env_number_reads_valid_values(env):
    env.setenv("PDNS_TEST_NUMBER", "2.5")
    env.delenv("PDNS_TEST_DEFAULT", raising=False)

    assert config._env_number("PDNS_TEST_NUMBER", "7", float) == 2.5
    assert config._env_number("PDNS_TEST_DEFAULT", "53", int, 65535) == 53
    assert config.invalid_env() == []


def test_env_log_level(env):
    env.setenv("LOG_LEVEL", "chatty")
    assert config._env_log_level("LOG_LEVEL", "INFO") == "INFO"
    assert config.invalid_env() == ["LOG_LEVEL"]

    env.setenv("LOG_LEVEL", "debug")
    assert config._env_log_level("LOG_LEVEL", "INFO") == "DEBUG"


def test_main_aborts_on_invalid_number(env, caplog):
    env.setattr(config, "INVALID", ["PDNS_PORT"])
    assert asyncio.run(main.main()) == 1
    assert "Invalid values in environment variables: PDNS_PORT" in caplog.text
