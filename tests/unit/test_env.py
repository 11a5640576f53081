"""Tests for environment helpers."""

import os

from chsources.lib.env import get_env_value, load_env_file, process_environment


def test_get_env_value_from_mapping():
    assert get_env_value("TOKEN", {"TOKEN": "abc123"}) == "abc123"


def test_get_env_value_empty_is_unset():
    assert get_env_value("TOKEN", {"TOKEN": ""}) is None
    assert get_env_value("TOKEN", {}) is None


def test_get_env_value_reads_live_environment(monkeypatch):
    monkeypatch.setenv("CHS_ROTATING", "first")
    assert get_env_value("CHS_ROTATING") == "first"
    monkeypatch.setenv("CHS_ROTATING", "second")
    assert get_env_value("CHS_ROTATING") == "second"


def test_process_environment_is_live():
    assert process_environment() is os.environ


def test_load_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("CHS_FROM_DOTENV", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("CHS_FROM_DOTENV=loaded\n", encoding="utf-8")

    assert load_env_file(env_file) is True
    assert os.environ["CHS_FROM_DOTENV"] == "loaded"
    monkeypatch.delenv("CHS_FROM_DOTENV")


def test_load_env_file_does_not_override(tmp_path, monkeypatch):
    monkeypatch.setenv("CHS_EXISTING", "original")
    env_file = tmp_path / ".env"
    env_file.write_text("CHS_EXISTING=replaced\n", encoding="utf-8")

    load_env_file(env_file)
    assert os.environ["CHS_EXISTING"] == "original"

    load_env_file(env_file, override=True)
    assert os.environ["CHS_EXISTING"] == "replaced"
