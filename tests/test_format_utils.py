import voicewarden.util.format_utils as format_utils


def test_format_command_fills_placeholders():
    result = format_utils.format_command("!v ban {user_id}", user_id="123456789012345678")

    assert result == "!v ban 123456789012345678"


def test_format_command_builds_mentions():
    result = format_utils.format_command(
        "{user} now owns {channel}", user_id="111111", channel_id="222222",
    )

    assert result == "<@111111> now owns <#222222>"


def test_format_command_blanks_known_and_keeps_unknown_placeholders():
    result = format_utils.format_command("!v limit {size} {typo}")

    assert result == "!v limit  {typo}"


def test_format_command_strips_and_handles_empty_template():
    assert format_utils.format_command("  !v lock {reason} ") == "!v lock"
    assert format_utils.format_command("", user_id="1") == ""


def test_extract_id_accepts_mentions_and_snowflakes():
    assert format_utils.extract_id("<@123456789>") == "123456789"
    assert format_utils.extract_id("<@!123456789>") == "123456789"
    assert format_utils.extract_id(" 123456789012345678 ") == "123456789012345678"


def test_extract_id_rejects_other_text():
    assert format_utils.extract_id(None) is None
    assert format_utils.extract_id("1234") is None
    assert format_utils.extract_id("@someone") is None


def test_first_mention():
    assert format_utils.first_mention("ping <@42> and <@43>") == "42"
    assert format_utils.first_mention("nobody") is None


def test_list_helpers_return_copies():
    original = ["1", "2"]

    assert format_utils.append_unique(original, "2") == ["1", "2"]
    assert format_utils.append_unique(original, "3") == ["1", "2", "3"]
    assert format_utils.remove_value(original, "1") == ["2"]
    assert original == ["1", "2"]
