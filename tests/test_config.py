"""
tests/test_config.py — YAML Configuration Loader Tests
=======================================================
"""

from __future__ import annotations

import pytest

from nssportal.config import PortalConfig, load_config


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == PortalConfig()

    def test_values_and_trailing_slash(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "portal_name: Campus NSS\n"
            "frontend_url: https://nss.example.edu/\n"
            "email_batch_size: 25\n"
            "email_send_delay: 0.5\n"
            "default_event_lead_days: 10\n"
        )
        cfg = load_config(path)
        assert cfg.portal_name == "Campus NSS"
        assert cfg.frontend_url == "https://nss.example.edu"
        assert cfg.email_batch_size == 25
        assert cfg.email_send_delay == 0.5
        assert cfg.default_event_lead_days == 10
        assert cfg.sender_name == "NSS Portal"

    @pytest.mark.parametrize(
        "yaml_text", ["email_batch_size: 0\n", "email_send_delay: -1\n"]
    )
    def test_invalid_tuning_rejected(self, tmp_path, yaml_text):
        path = tmp_path / "config.yaml"
        path.write_text(yaml_text)
        with pytest.raises(ValueError):
            load_config(path)

    def test_config_is_frozen(self):
        cfg = PortalConfig()
        with pytest.raises(AttributeError):
            cfg.portal_name = "x"  # type: ignore[misc]
