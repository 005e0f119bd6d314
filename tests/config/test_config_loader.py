"""Tests for recon_config -- YAML loading, typing and defaults."""

from decimal import Decimal

import pytest

from recon_config import CONFIG_PATH_ENV, get_active_config, parse_config
from recon_config.loader import load_config_file
from recon_config.schema import BatchSettings, ReconConfig


def _write(tmp_path, text):
    path = tmp_path / "recon.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestPackagedDefaults:
    def test_defaults_file_matches_schema_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        config = get_active_config()

        assert config.batch.page_size == 500
        assert config.batch.max_pages == 20
        assert config.batch.excluded_transaction_types == ("point",)
        assert config.erp.request_timeout_seconds == 30.0
        assert config.erp.heuristic_not_found is True
        assert config.jobs.visibility_grace_seconds == 300
        assert config.treasury.drift_epsilon == Decimal("0.001")
        assert config.source.endswith("defaults.yaml")

    def test_logs_config_trace(self, monkeypatch, captured_logs):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        get_active_config()
        trace = [r for r in captured_logs() if r["message"] == "RECON_CONFIG_TRACE"]
        assert trace[-1]["page_size"] == 500


class TestLoading:
    def test_environment_variable_selects_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "batch:\n  page_size: 50\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        config = get_active_config()

        assert config.batch.page_size == 50
        assert config.batch.max_pages == 20
        assert config.source == str(path)

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "missing.yaml"))
        path = _write(tmp_path, "jobs:\n  visibility_grace_seconds: 60\n")
        assert get_active_config(path).jobs.visibility_grace_seconds == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "nope.yaml")

    def test_empty_file_is_all_defaults(self, tmp_path):
        config = load_config_file(_write(tmp_path, ""))
        assert config.batch == BatchSettings()

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ValueError):
            load_config_file(_write(tmp_path, "- batch\n"))


class TestParsing:
    def test_numeric_epsilon_becomes_decimal(self):
        config = parse_config({"treasury": {"drift_epsilon": 0.01}})
        assert config.treasury.drift_epsilon == Decimal("0.01")

    def test_lists_become_tuples(self):
        config = parse_config({"batch": {"excluded_transaction_types": ["point", "gift"]}})
        assert config.batch.excluded_transaction_types == ("point", "gift")

    def test_unknown_section(self):
        with pytest.raises(ValueError):
            parse_config({"metrics": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            parse_config({"batch": {"page_sise": 10}})

    @pytest.mark.parametrize("section,values", [
        ("batch", {"page_size": "500"}),
        ("batch", {"page_size": True}),
        ("erp", {"heuristic_not_found": "yes"}),
        ("erp", {"not_found_markers": "not found"}),
        ("treasury", {"drift_epsilon": "tiny"}),
        ("database", {"url": 5}),
    ])
    def test_wrong_types(self, section, values):
        with pytest.raises(ValueError):
            parse_config({section: values})

    def test_schema_validates_limits(self):
        with pytest.raises(ValueError):
            parse_config({"batch": {"page_size": 0}})

    def test_parsed_config_is_frozen(self):
        config = parse_config({})
        assert config == ReconConfig()
        with pytest.raises(AttributeError):
            config.batch.page_size = 1
