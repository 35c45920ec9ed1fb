# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for loading the email_smtp record from config.ini and the environment."""

import logging

import pytest

from smtp_gateway.config_loader import CONFIG_KEYS, load_smtp_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop SMTPGW_* variables inherited from the test runner."""
    for key in CONFIG_KEYS:
        monkeypatch.delenv(f"SMTPGW_{key.upper()}", raising=False)


def test_no_sources_gives_empty_record():
    assert load_smtp_config() == {}


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("SMTPGW_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTPGW_AUTH", "1")

    assert load_smtp_config() == {"host": "smtp.example.com", "auth": "1"}


def test_reads_config_file(tmp_path):
    config_file = tmp_path / "config.ini"
    config_file.write_text(
        """
[email_smtp]
helo_hostname = www.example.com
host = ssl://smtp.example.com
port = 465
username = mailer
password = p%ss
"""
    )

    record = load_smtp_config(str(config_file))

    assert record == {
        "helo_hostname": "www.example.com",
        "host": "ssl://smtp.example.com",
        "port": "465",
        "username": "mailer",
        "password": "p%ss",
    }


def test_file_overrides_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("SMTPGW_HOST", "env.example.com")
    monkeypatch.setenv("SMTPGW_PORT", "2525")
    config_file = tmp_path / "config.ini"
    config_file.write_text("[email_smtp]\nhost = file.example.com\n")

    record = load_smtp_config(str(config_file))

    assert record["host"] == "file.example.com"
    assert record["port"] == "2525"


def test_missing_file_falls_back_to_environment(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("SMTPGW_HOST", "env.example.com")

    with caplog.at_level(logging.WARNING, logger="config_loader"):
        record = load_smtp_config(str(tmp_path / "missing.ini"))

    assert record == {"host": "env.example.com"}
    assert "not found" in caplog.text


def test_missing_section(tmp_path):
    config_file = tmp_path / "config.ini"
    config_file.write_text("[server]\nport = 8000\n")

    assert load_smtp_config(str(config_file)) == {}


def test_custom_section(tmp_path):
    config_file = tmp_path / "config.ini"
    config_file.write_text("[smtp_marketing]\nhost = bulk.example.com\n")

    assert load_smtp_config(str(config_file), section="smtp_marketing") == {"host": "bulk.example.com"}


def test_unknown_keys_are_ignored(tmp_path, caplog):
    config_file = tmp_path / "config.ini"
    config_file.write_text("[email_smtp]\nhost = smtp.example.com\nhots = typo.example.com\n")

    with caplog.at_level(logging.WARNING, logger="config_loader"):
        record = load_smtp_config(str(config_file))

    assert record == {"host": "smtp.example.com"}
    assert "hots" in caplog.text
