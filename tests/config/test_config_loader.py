"""
Configuration loading and validation.

Covers the packaged defaults, the BIZBOOKS_CONFIG override and every
ConfigurationError path a malformed document can hit.
"""

from __future__ import annotations

import copy

import pytest
import yaml

from bizbooks_config import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    get_active_config,
    resolve_config_path,
)
from bizbooks_config.bridges import account_seeds, document_series, to_tax_profile
from bizbooks_config.loader import compute_checksum, load_yaml_file, parse_configuration
from bizbooks_engines.tax import TaxScheme
from bizbooks_kernel.domain.numbering import SeriesBucket
from bizbooks_kernel.exceptions import ConfigurationError


@pytest.fixture
def default_data():
    return load_yaml_file(DEFAULT_CONFIG_PATH)


def _write(tmp_path, data, name="bizbooks.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_defaults_load(self, config):
        assert config.posting_account("receivable") == "1300"
        assert config.control_account_for("SUPPLIER") == "2100"
        assert config.account("5100").account_type == "EXPENSE"
        assert len(config.checksum) == 64

    def test_series_bridge(self, config):
        series = document_series(config)
        assert series["INVOICE"].prefix == "INV"
        assert series["POS_SESSION"].bucket == SeriesBucket.DAILY

    def test_account_seeds_keep_parent_order(self, config):
        seeds = account_seeds(config)
        seen = set()
        for seed in seeds:
            assert seed.parent_code is None or seed.parent_code in seen
            seen.add(seed.code)

    def test_tax_profile_bridge(self, config):
        profile = to_tax_profile(config.tax_profile("india_maharashtra"))
        assert profile.scheme == TaxScheme.GST
        assert profile.is_active
        assert not to_tax_profile(config.tax_profile("untaxed")).is_active

    def test_unknown_lookups_raise(self, config):
        with pytest.raises(ConfigurationError):
            config.tax_profile("atlantis")
        with pytest.raises(ConfigurationError):
            config.posting_account("bonus")

    def test_checksum_is_deterministic(self, default_data):
        assert compute_checksum(default_data) == compute_checksum(copy.deepcopy(default_data))


class TestResolution:
    def test_env_var_overrides_default(self, tmp_path, monkeypatch, default_data):
        default_data["series"]["INVOICE"]["prefix"] = "SI"
        path = _write(tmp_path, default_data)
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert resolve_config_path() == path
        assert get_active_config().series_def("INVOICE").prefix == "SI"

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "ignored.yaml"))
        assert resolve_config_path(DEFAULT_CONFIG_PATH) == DEFAULT_CONFIG_PATH

    def test_load_is_logged(self, captured_logs):
        get_active_config(DEFAULT_CONFIG_PATH)
        record = next(r for r in captured_logs() if r["message"] == "config_loaded")
        assert record["source"] == str(DEFAULT_CONFIG_PATH)


class TestInvalidDocuments:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            get_active_config(tmp_path / "nope.yaml")
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("chart_of_accounts: [unclosed\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path)

    def test_duplicate_account_code(self, default_data):
        default_data["chart_of_accounts"].append({"code": "1100", "name": "Petty Cash", "type": "ASSET"})
        with pytest.raises(ConfigurationError, match="Duplicate account code 1100"):
            parse_configuration(default_data)

    def test_undefined_parent(self, default_data):
        default_data["chart_of_accounts"].append(
            {"code": "1600", "name": "Deposits", "type": "ASSET", "parent": "1999"}
        )
        with pytest.raises(ConfigurationError, match="parent 1999"):
            parse_configuration(default_data)

    def test_parent_of_other_type(self, default_data):
        default_data["chart_of_accounts"].append(
            {"code": "4300", "name": "Odd", "type": "REVENUE", "parent": "5000"}
        )
        with pytest.raises(ConfigurationError):
            parse_configuration(default_data)

    def test_missing_posting_role(self, default_data):
        del default_data["posting_accounts"]["cogs"]
        with pytest.raises(ConfigurationError, match="cogs"):
            parse_configuration(default_data)

    def test_posting_role_to_unknown_account(self, default_data):
        default_data["posting_accounts"]["sales"] = "4999"
        with pytest.raises(ConfigurationError):
            parse_configuration(default_data)

    def test_unknown_control_kind(self, default_data):
        default_data["control_accounts"]["EMPLOYEE"] = "2100"
        with pytest.raises(ConfigurationError):
            parse_configuration(default_data)

    def test_bad_series_bucket(self, default_data):
        default_data["series"]["INVOICE"]["bucket"] = "monthly"
        with pytest.raises(ConfigurationError):
            parse_configuration(default_data)

    def test_enabled_tax_profile_needs_region(self, default_data):
        default_data["tax_profiles"]["broken"] = {"scheme": "GST", "enabled": True}
        with pytest.raises(ConfigurationError):
            parse_configuration(default_data)

    def test_unknown_account_type(self, default_data):
        default_data["chart_of_accounts"].append({"code": "9000", "name": "Misc", "type": "OTHER"})
        with pytest.raises(ConfigurationError):
            parse_configuration(default_data)
