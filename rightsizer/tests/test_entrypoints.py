"""
CLI argument handling and HTTP API guards. Nothing here reaches vCenter
or vROps.
"""

import pytest
from fastapi.testclient import TestClient

from rightsizer.api.server import app
from rightsizer.cli import build_parser, config_from_args, main
from rightsizer.core.config import RightsizeConfig
from rightsizer.core.errors import ConfigurationError


class TestCli:
    def test_read_only_by_default(self):
        args = build_parser().parse_args(["--tolerance", "0.2", "--max-jobs", "8"])
        cfg = config_from_args(args, base=RightsizeConfig())
        assert cfg.read_only is True
        assert cfg.tolerance_fraction == 0.2
        assert cfg.max_concurrent_jobs == 8
        assert cfg.buffer_fraction == 0.15

    def test_apply_and_flags(self):
        args = build_parser().parse_args(["--apply", "--no-verify-ssl", "--report-excluded", "--format", "json"])
        cfg = config_from_args(args, base=RightsizeConfig())
        assert cfg.read_only is False
        assert cfg.verify_ssl is False
        assert cfg.report_excluded is True
        assert cfg.report_format == "json"

    def test_unset_flags_keep_base(self):
        base = RightsizeConfig(verify_ssl=False, lookback_days=7)
        cfg = config_from_args(build_parser().parse_args([]), base=base)
        assert cfg.verify_ssl is False
        assert cfg.lookback_days == 7

    def test_invalid_value(self):
        args = build_parser().parse_args(["--max-jobs", "0"])
        with pytest.raises(ConfigurationError):
            config_from_args(args, base=RightsizeConfig())

    def test_misspelled_read_only_is_fatal(self, monkeypatch):
        monkeypatch.setenv("RIGHTSIZER_READ_ONLY", "ture")
        with pytest.raises(ConfigurationError, match="RIGHTSIZER_READ_ONLY"):
            config_from_args(build_parser().parse_args([]))
        assert main([]) == 2

    def test_missing_connection_settings_exit_code(self, monkeypatch):
        for name in ("VCENTER_HOST", "VROPS_HOST", "USERNAME", "PASSWORD"):
            monkeypatch.delenv(f"RIGHTSIZER_{name}", raising=False)
        assert main([]) == 2


class TestApi:
    def test_health(self):
        response = TestClient(app).get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_rightsize_requires_confirm(self):
        response = TestClient(app).post("/api/rightsize")
        assert response.status_code == 400
        assert "confirm=true" in response.json()["detail"]

    def test_report_without_connections(self, monkeypatch):
        monkeypatch.delenv("RIGHTSIZER_VCENTER_HOST", raising=False)
        response = TestClient(app).get("/api/report")
        assert response.status_code == 400
