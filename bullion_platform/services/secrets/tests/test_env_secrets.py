from pathlib import Path

import pytest

from bullion_platform.services.secrets.env_secrets import EnvSecrets


def test_get_returns_value():
    secrets = EnvSecrets(overrides={"RATES_LOCALITY": "India"})
    assert secrets.get("RATES_LOCALITY") == "India"


def test_get_returns_none_for_missing():
    secrets = EnvSecrets(overrides={})
    assert secrets.get("NONEXISTENT_KEY_12345") is None


def test_get_or_default_returns_default_for_missing():
    secrets = EnvSecrets(overrides={})
    assert secrets.get_or_default("NONEXISTENT_KEY_12345", "fallback") == "fallback"


def test_require_raises_for_missing():
    secrets = EnvSecrets(overrides={})
    with pytest.raises(KeyError, match="Required secret 'NONEXISTENT_KEY_12345' is not set"):
        secrets.require("NONEXISTENT_KEY_12345")


def test_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RATES_MAX_RETRIES", "5")
    secrets = EnvSecrets(overrides={"RATES_MAX_RETRIES": "2"})
    assert secrets.get("RATES_MAX_RETRIES") == "2"


def test_get_int_and_float():
    secrets = EnvSecrets(overrides={"RATES_MAX_RETRIES": "4", "RATES_TIMEOUT": "2.5", "BLANK": " "})
    assert secrets.get_int("RATES_MAX_RETRIES", 3) == 4
    assert secrets.get_float("RATES_TIMEOUT", 10.0) == 2.5
    assert secrets.get_int("BLANK", 7) == 7
    assert secrets.get_float("NONEXISTENT_KEY_12345", 1.5) == 1.5


def test_get_int_rejects_garbage():
    secrets = EnvSecrets(overrides={"RATES_MAX_RETRIES": "three"})
    with pytest.raises(ValueError, match="RATES_MAX_RETRIES"):
        secrets.get_int("RATES_MAX_RETRIES", 3)


def test_with_env_file_layers_overrides_on_top(tmp_path: Path):
    env_dir = tmp_path / ".env"
    env_dir.mkdir()
    (env_dir / "local.env").write_text("RATES_LOCALITY=Mumbai\nRATES_MAX_RETRIES=1\n")
    secrets = EnvSecrets.with_env_file(
        "local", overrides={"RATES_MAX_RETRIES": "6"}, project_root=tmp_path
    )
    assert secrets.get("RATES_LOCALITY") == "Mumbai"
    assert secrets.get("RATES_MAX_RETRIES") == "6"
