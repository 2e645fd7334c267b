"""Tests for configuration loading and validation."""

import pytest

from treasury_config import (
    CONFIG_ENV_VAR,
    DEFAULT_ROLE_PERMISSIONS,
    TreasuryConfig,
    get_active_config,
)
from treasury_config.loader import compute_checksum


class TestDefaultSet:

    def test_default_file_matches_built_in_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        config = get_active_config()
        defaults = TreasuryConfig.with_defaults()

        assert config.config_id == "default"
        assert config.checksum is not None
        assert config.reason_min_length == defaults.reason_min_length == 10
        assert config.default_float_amount == defaults.default_float_amount == 2_000_000
        assert config.discrepancy_alert_threshold == 50_000
        assert config.safe_threshold_min == 5_000_000
        assert config.safe_threshold_max == 20_000_000
        assert config.receipt_prefix == "CAISSE"
        assert config.role_permissions == DEFAULT_ROLE_PERMISSIONS

    def test_loading_is_logged(self, monkeypatch, captured_logs):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        config = get_active_config()

        (record,) = [r for r in captured_logs() if r["message"] == "treasury_config_loaded"]
        assert record["config_id"] == "default"
        assert record["checksum"] == config.checksum
        assert record["roles"] == ["accountant", "director", "secretary"]


class TestCustomSets:

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "lycee.yaml"
        path.write_text("receipt_prefix: LYCEE\nmax_retries: 2\n")

        config = get_active_config(path)

        assert config.config_id == "lycee"
        assert config.receipt_prefix == "LYCEE"
        assert config.max_retries == 2
        assert config.reason_min_length == 10

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "annexe.yaml"
        path.write_text("config_id: annexe-2024\nrequire_discrepancy_approval: true\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        config = get_active_config()

        assert config.config_id == "annexe-2024"
        assert config.require_discrepancy_approval is True

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert get_active_config(path).default_float_amount == 2_000_000

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            get_active_config(path)

    def test_role_lists_become_tuples(self, tmp_path):
        path = tmp_path / "roles.yaml"
        path.write_text("role_permissions:\n  cashier:\n    - record_transaction\n")

        config = get_active_config(path)

        assert config.role_permissions == {"cashier": ("record_transaction",)}


class TestValidation:

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="unknown_setting"):
            TreasuryConfig.from_dict({"unknown_setting": 1})

    @pytest.mark.parametrize(
        "values",
        [
            {"reason_min_length": -1},
            {"default_float_amount": 0},
            {"max_retries": 0},
            {"retry_backoff_seconds": -0.5},
            {"receipt_prefix": "  "},
            {"safe_threshold_min": 10, "safe_threshold_max": 5},
            {"discrepancy_alert_threshold": True},
            {"role_permissions": {"cashier": ("steal",)}},
        ],
    )
    def test_invalid_values(self, values):
        with pytest.raises(ValueError):
            TreasuryConfig(**values)

    def test_invalid_config_logged(self, captured_logs):
        with pytest.raises(ValueError):
            TreasuryConfig(max_retries=0)
        assert any(r["message"] == "treasury_config_invalid" for r in captured_logs())


class TestChecksum:

    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_values_matter(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
