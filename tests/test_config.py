"""
tests/test_config.py

MarketConfig presets, YAML loading and environment selection.
"""

import pytest

from editionledger.core.config import CONFIG_ENV_VAR, MODE_ENV_VAR, MarketConfig, MarketMode
from editionledger.core.exceptions import ConfigError


class TestPresets:

    def test_lenient_is_default(self):
        config = MarketConfig()
        assert config.mode is MarketMode.LENIENT
        assert not config.require_owned_edition_for_listing
        assert not config.require_funded_bids

    def test_strict_enables_checks(self):
        config = MarketConfig.strict()
        assert config.mode is MarketMode.STRICT
        assert config.require_owned_edition_for_listing
        assert config.require_funded_bids

    def test_strict_accepts_overrides(self):
        assert not MarketConfig.strict(require_funded_bids=False).require_funded_bids

    def test_validate(self):
        with pytest.raises(ConfigError):
            MarketConfig(lock_timeout=0).validate()
        with pytest.raises(ConfigError):
            MarketConfig(mint_fee=-1).validate()


class TestLoading:

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "market.yaml"
        path.write_text(
            "mode: strict\n"
            "starting_credits: 100\n"
            "lock_timeout: 0.5\n",
            encoding="utf-8",
        )
        config = MarketConfig.from_yaml(path)
        assert config.mode is MarketMode.STRICT
        assert config.require_funded_bids
        assert config.starting_credits == 100
        assert config.lock_timeout == 0.5

    def test_unknown_key(self):
        with pytest.raises(ConfigError):
            MarketConfig.from_dict({"mode": "strict", "colour": "red"})

    def test_unknown_mode(self):
        with pytest.raises(ConfigError):
            MarketConfig.from_dict({"mode": "chaotic"})

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "market.yaml"
        path.write_text("mode: [unterminated\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            MarketConfig.from_yaml(path)

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "market.yaml"
        path.write_text("- strict\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            MarketConfig.from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            MarketConfig.from_yaml(tmp_path / "absent.yaml")

    def test_empty_file_is_lenient(self, tmp_path):
        path = tmp_path / "market.yaml"
        path.write_text("", encoding="utf-8")
        assert MarketConfig.from_yaml(path) == MarketConfig.lenient()


class TestEnvironment:

    def test_mode_from_env(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.setenv(MODE_ENV_VAR, "STRICT")
        assert MarketConfig.from_env().mode is MarketMode.STRICT

    def test_default_without_env(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.delenv(MODE_ENV_VAR, raising=False)
        assert MarketConfig.from_env() == MarketConfig.lenient()

    def test_config_file_wins(self, monkeypatch, tmp_path):
        path = tmp_path / "market.yaml"
        path.write_text("mode: lenient\nmint_fee: 2\n", encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        monkeypatch.setenv(MODE_ENV_VAR, "strict")
        config = MarketConfig.from_env()
        assert config.mode is MarketMode.LENIENT
        assert config.mint_fee == 2
