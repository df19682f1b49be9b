"""Unit tests for the INI key/value store."""

from __future__ import annotations

from pathlib import Path

import pytest

from pulse_agent.config.store import (
    ConfigReadError,
    ConfigWriteError,
    IniStore,
    config_file_path,
    home_dir,
    resources_dir,
)


@pytest.mark.unit
def test_write_merges_into_existing_sections(tmp_path: Path) -> None:
    path = tmp_path / "pulse.cfg"
    path.write_text("[settings]\napi_key = abc\n\n[other]\nkeep = yes\n", encoding="utf-8")
    store = IniStore(path)

    store.write("settings", {"plugin": "vim", "api_key": "def"})

    assert store.read("settings", "api_key") == "def"
    assert store.read("settings", "plugin") == "vim"
    assert store.read("other", "keep") == "yes"


@pytest.mark.unit
def test_write_creates_missing_file_and_parents(tmp_path: Path) -> None:
    store = IniStore(tmp_path / "deep" / "dir" / "internal.cfg")

    store.write("internal", {"backoff_retries": "2"})

    assert store.read("internal", "backoff_retries") == "2"
    leftovers = [item.name for item in store.path.parent.iterdir() if item.suffix == ".tmp"]
    assert leftovers == []


@pytest.mark.unit
def test_read_missing_and_empty_values(tmp_path: Path) -> None:
    store = IniStore(tmp_path / "absent.cfg")
    assert store.read("settings", "api_key") is None

    store.write("settings", {"hostname": ""})
    assert store.read("settings", "hostname") is None
    assert store.read("nosection", "hostname") is None


@pytest.mark.unit
def test_remove_deletes_keys(tmp_path: Path) -> None:
    store = IniStore(tmp_path / "pulse.cfg")
    store.write("settings", {"a": "1", "b": "2"})

    store.remove("settings", "a", "missing")
    store.remove("nosection", "a")

    assert store.read("settings", "a") is None
    assert store.read("settings", "b") == "2"


@pytest.mark.unit
def test_unparseable_file_raises_read_and_write_errors(tmp_path: Path) -> None:
    path = tmp_path / "pulse.cfg"
    path.write_text("not an ini file\n", encoding="utf-8")
    store = IniStore(path)

    with pytest.raises(ConfigReadError):
        store.read("settings", "api_key")
    with pytest.raises(ConfigWriteError):
        store.write("settings", {"api_key": "x"})


@pytest.mark.unit
def test_unwritable_target_raises_write_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(ConfigWriteError):
        IniStore(blocker / "pulse.cfg").write("settings", {"a": "b"})


@pytest.mark.unit
def test_home_override_drives_default_paths(tmp_path: Path) -> None:
    environ = {"PULSE_HOME": str(tmp_path)}

    assert home_dir(environ) == tmp_path
    assert config_file_path(None, environ) == tmp_path / ".pulse.cfg"
    assert config_file_path("/etc/pulse.cfg", environ) == Path("/etc/pulse.cfg")
    assert resources_dir(environ) == tmp_path / ".pulse"
