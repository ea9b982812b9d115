"""
Tests for variance_config -- YAML loading, get_active_config() resolution
and request threshold overrides.
"""

from datetime import date
from decimal import Decimal

import pytest

from variance_config import CONFIG_PATH_ENV, get_active_config
from variance_config.loader import load_config, parse_config
from variance_config.schema import ReconciliationConfig


class TestShippedDefault:

    def test_default_set_matches_schema_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        config = get_active_config()

        assert config.config_id == "default"
        assert config.min_variance == Decimal("0.01")
        assert config.thresholds.service == Decimal("2")
        assert config.service_location_id == "113"
        assert config.kitchen_location_id == "17"
        assert config.bill_date_floor == date(2025, 8, 1)
        assert config.rate_correction_batch_size == 5
        assert config.review_batch_size == 10
        assert config.governance_margin == 100
        assert config.adjustment.accrued_purchases_account == "112"
        assert config.adjustment.cogs_account == "353"
        assert config.adjustment.map_department("10") == "10"
        assert config.adjustment.map_department(None) == "107"
        assert config.operation_costs["save"] == 20
        assert len(config.checksum) == 64

    def test_config_trace_logged(self, captured_logs):
        get_active_config()
        assert any(r["message"] == "VARIANCE_CONFIG_TRACE" for r in captured_logs())


class TestResolution:

    def test_environment_variable_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("config_id: custom\nbatch:\n  rate_correction_size: 3\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        config = get_active_config()

        assert config.config_id == "custom"
        assert config.rate_correction_batch_size == 3
        assert config.review_batch_size == 10

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        env_path = tmp_path / "env.yaml"
        env_path.write_text("config_id: from_env\n")
        explicit = tmp_path / "explicit.yaml"
        explicit.write_text("config_id: explicit\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(env_path))

        assert get_active_config(explicit).config_id == "explicit"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_zero_batch_size_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("batch:\n  review_size: 0\n")
        with pytest.raises(ValueError, match="review_size"):
            load_config(path)


class TestParseConfig:

    def test_checksum_is_stable(self):
        data = {"config_id": "a", "thresholds": {"kitchen": "3"}}
        assert parse_config(data).checksum == parse_config(dict(data)).checksum

    def test_pairing_policy_carries_thresholds(self):
        policy = parse_config({"thresholds": {"kitchen": "3.5"}}).pairing_policy()
        assert policy.kitchen_threshold == Decimal("3.5")
        assert policy.kitchen_location_id == "17"


class TestThresholdOverrides:

    def test_given_values_replace_configured(self):
        config = ReconciliationConfig().with_threshold_overrides({
            "service_threshold": "5",
            "kitchen_threshold": "",
        })

        assert config.thresholds.service == Decimal("5")
        assert config.thresholds.kitchen == Decimal("2")

    def test_no_overrides_returns_same_config(self):
        config = ReconciliationConfig()
        assert config.with_threshold_overrides({}) is config

    @pytest.mark.parametrize("value", ["abc", "-1"])
    def test_invalid_value(self, value):
        with pytest.raises(ValueError, match="Invalid appliances_threshold"):
            ReconciliationConfig().with_threshold_overrides({"appliances_threshold": value})
