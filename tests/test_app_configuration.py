from pathlib import Path

import pytest

from voicewarden.configuration.app_configuration import (
    DEFAULTS,
    AppConfig,
    RequiredRoleMode,
    as_id_list,
)


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_path.write_text(
        "\n".join([
            "local_user_id: '100000000000000001'",
            "ban_limit: 3",
            "ban_command: '!room ban {user}'",
            "required_role_mode: ALL",
            "required_role_ids:",
            "  - 11111",
            "  - '22222'",
            "channel_name_rotation_names: |",
            "  Alpha",
            "",
            "  Beta",
        ]),
        encoding="utf-8",
    )

    config = AppConfig(config_path)

    assert config.local_user_id == "100000000000000001"
    assert config.ban_limit == 3
    assert config.command_template("ban") == "!room ban {user}"
    assert config.required_role_mode is RequiredRoleMode.ALL
    assert config.required_role_ids == ["11111", "22222"]
    assert config.channel_name_rotation_names == ["Alpha", "Beta"]
    # Untouched keys fall back to defaults
    assert config.permit_limit == DEFAULTS["permit_limit"]


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == DEFAULTS
    assert config.queue_enabled is True
    assert config.local_user_id == ""
    assert config.command_template("claim") == "!v claim"


def test_app_config_non_mapping_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.data == DEFAULTS


def test_invalid_numbers_fall_back_to_defaults() -> None:
    config = AppConfig.from_mapping({"ban_limit": "lots", "queue_interval_seconds": None})

    assert config.ban_limit == DEFAULTS["ban_limit"]
    assert config.queue_interval_seconds == DEFAULTS["queue_interval_seconds"]


def test_negative_spacing_is_clamped() -> None:
    config = AppConfig.from_mapping({"queue_interval_seconds": -5})

    assert config.queue_interval_seconds == 0.0


def test_unknown_role_mode_falls_back_to_any() -> None:
    config = AppConfig.from_mapping({"required_role_mode": "most"})

    assert config.required_role_mode is RequiredRoleMode.ANY


def test_set_and_update_are_visible_immediately() -> None:
    config = AppConfig.from_mapping()

    config.set("ban_limit", 9)
    config.update({"auto_claim_disbanded": True, "local_user_whitelist": "1, 2\n2"})

    assert config.ban_limit == 9
    assert config.auto_claim_disbanded is True
    assert config.local_user_whitelist == ["1", "2"]


def test_unknown_key_uses_caller_default() -> None:
    assert AppConfig.from_mapping().get("no_such_option", "fallback") == "fallback"


@pytest.mark.parametrize("value, expected", [
    (None, []),
    ("", []),
    ("1,2\n3", ["1", "2", "3"]),
    ([1, "1", " 2 ", ""], ["1", "2"]),
    (42, ["42"]),
])
def test_as_id_list(value, expected) -> None:
    assert as_id_list(value) == expected
