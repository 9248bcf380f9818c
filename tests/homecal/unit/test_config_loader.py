"""Tests for homecal.core.config_loader."""

from pathlib import Path

import pytest

from homecal.core.config_loader import Config, config_from_env, env_overrides, load_config

pytestmark = pytest.mark.unit


def test_defaults() -> None:
    cfg = Config()

    assert cfg.reminder_check_interval_minutes == 5
    assert cfg.reminder_lock_ttl_minutes == 10
    assert cfg.external_sync_interval_minutes == 15
    assert cfg.external_sync_lock_ttl_minutes == 30
    assert cfg.dedupe_lookback_hours == 24
    assert cfg.feed_include_overrides is False
    assert cfg.data_file is None


def test_from_dict_none_gives_defaults() -> None:
    assert Config.from_dict(None) == Config()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(0, 1), (-5, 1), (1, 1), (30, 30), (60, 60), (61, 60), ("12", 12)],
)
def test_reminder_interval_clamped(raw, expected) -> None:
    assert Config.from_dict({"reminder_check_interval_minutes": raw}).reminder_check_interval_minutes == expected


@pytest.mark.parametrize(("raw", "expected"), [(0, 1), (2000, 1440), (90, 90)])
def test_sync_interval_clamped(raw, expected) -> None:
    assert Config.from_dict({"external_sync_interval_minutes": raw}).external_sync_interval_minutes == expected


def test_non_numeric_falls_back_to_default(caplog) -> None:
    cfg = Config.from_dict({"dedupe_lookback_hours": "a day", "server_port": None})

    assert cfg.dedupe_lookback_hours == 24
    assert cfg.server_port == 8080
    assert "dedupe_lookback_hours" in caplog.text


def test_negative_plain_int_falls_back_to_default() -> None:
    assert Config.from_dict({"feed_past_days": -1}).feed_past_days == 30


@pytest.mark.parametrize("raw", ["yes", "TRUE", "1", "on", True])
def test_truthy_booleans(raw) -> None:
    assert Config.from_dict({"feed_include_overrides": raw}).feed_include_overrides is True


@pytest.mark.parametrize("raw", ["no", "0", "off", False])
def test_falsy_booleans(raw) -> None:
    assert Config.from_dict({"debug_logging": raw}).debug_logging is False


def test_log_level_uppercased_and_unknown_keys_ignored() -> None:
    cfg = Config.from_dict({"log_level": "debug", "no_such_option": 1})

    assert cfg.log_level == "DEBUG"
    assert not hasattr(cfg, "no_such_option")


def test_load_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    assert load_config(str(tmp_path / "absent.yaml")) == Config()


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    path = tmp_path / "homecal.yaml"
    path.write_text(
        "reminder_check_interval_minutes: 2\n"
        "feed_calendar_name: Smith family\n"
        "feed_include_overrides: true\n"
        "data_file: household.yaml\n"
    )

    cfg = load_config(str(path))

    assert cfg.reminder_check_interval_minutes == 2
    assert cfg.feed_calendar_name == "Smith family"
    assert cfg.feed_include_overrides is True
    assert cfg.data_file == "household.yaml"


def test_load_config_empty_file_returns_defaults(tmp_path: Path) -> None:
    path = tmp_path / "homecal.yaml"
    path.write_text("")

    assert load_config(str(path)) == Config()


def test_load_config_non_mapping_raises(tmp_path: Path) -> None:
    path = tmp_path / "homecal.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError, match="mapping"):
        load_config(str(path))


def test_env_overrides_only_known_fields() -> None:
    environ = {
        "HOMECAL_SERVER_PORT": "9090",
        "HOMECAL_NOT_A_FIELD": "x",
        "PATH": "/usr/bin",
    }

    assert env_overrides(environ) == {"server_port": "9090"}


def test_config_from_env_layers_env_over_file(tmp_path: Path) -> None:
    path = tmp_path / "homecal.yaml"
    path.write_text("server_port: 7000\nfeed_future_days: 60\n")
    environ = {"HOMECAL_CONFIG": str(path), "HOMECAL_SERVER_PORT": "9090"}

    cfg = config_from_env(environ=environ)

    assert cfg.server_port == 9090
    assert cfg.feed_future_days == 60


def test_to_dict_round_trips_through_from_dict() -> None:
    cfg = Config(reminder_check_interval_minutes=7, feed_calendar_name="Cabin")

    assert Config.from_dict(cfg.to_dict()) == cfg
