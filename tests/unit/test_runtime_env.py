import pytest

from pushwire.config import ConfigurationError, env_bool, env_float, env_int, env_seconds, env_str, runtime
from pushwire.config.runtime_helpers import DotenvLoader


def test_env_str_strips_and_falls_back(monkeypatch):
    monkeypatch.setenv("PUSHWIRE_TEST_NAME", "  value  ")

    assert env_str("PUSHWIRE_TEST_NAME") == "value"
    assert env_str("PUSHWIRE_TEST_MISSING", or_value="fallback") == "fallback"


def test_env_str_required_raises_when_missing():
    with pytest.raises(ConfigurationError, match="PUSHWIRE_TEST_MISSING"):
        env_str("PUSHWIRE_TEST_MISSING", required=True)


@pytest.mark.parametrize("raw,expected", [("1", True), ("On", True), ("no", False), ("F", False)])
def test_env_bool_accepts_common_spellings(monkeypatch, raw, expected):
    monkeypatch.setenv("PUSHWIRE_TEST_FLAG", raw)

    assert env_bool("PUSHWIRE_TEST_FLAG") is expected


def test_env_bool_rejects_other_values(monkeypatch):
    monkeypatch.setenv("PUSHWIRE_TEST_FLAG", "maybe")

    with pytest.raises(ConfigurationError, match="must be a boolean"):
        env_bool("PUSHWIRE_TEST_FLAG")


def test_numeric_coercion(monkeypatch):
    monkeypatch.setenv("PUSHWIRE_TEST_INT", "12")
    monkeypatch.setenv("PUSHWIRE_TEST_FLOAT", "2.5")

    assert env_int("PUSHWIRE_TEST_INT") == 12
    assert env_float("PUSHWIRE_TEST_FLOAT") == 2.5
    assert env_int("PUSHWIRE_TEST_MISSING", or_value=7) == 7


def test_env_seconds_rejects_negative(monkeypatch):
    monkeypatch.setenv("PUSHWIRE_TEST_SECONDS", "-3")

    with pytest.raises(ConfigurationError, match="non-negative"):
        env_seconds("PUSHWIRE_TEST_SECONDS")


def test_dotenv_file_supplies_defaults(monkeypatch, tmp_path):
    dotenv = tmp_path / ".env"
    dotenv.write_text("# comment\nexport PUSHWIRE_WS_HOST='ws.dotenv.test'\nPUSHWIRE_WS_PORT=8080\n")
    monkeypatch.setattr(runtime, "_DOTENV_CANDIDATES", (dotenv,))
    runtime.reset_default_values()

    assert env_str("PUSHWIRE_WS_HOST") == "ws.dotenv.test"
    assert env_int("PUSHWIRE_WS_PORT") == 8080


def test_environment_wins_over_dotenv(monkeypatch, tmp_path):
    dotenv = tmp_path / ".env"
    dotenv.write_text("PUSHWIRE_WS_HOST=ws.dotenv.test\n")
    monkeypatch.setattr(runtime, "_DOTENV_CANDIDATES", (dotenv,))
    runtime.reset_default_values()
    monkeypatch.setenv("PUSHWIRE_WS_HOST", "ws.env.test")

    assert env_str("PUSHWIRE_WS_HOST") == "ws.env.test"


def test_dotenv_loader_ignores_missing_file(tmp_path):
    assert DotenvLoader.load_from_file(tmp_path / "absent.env") == {}
