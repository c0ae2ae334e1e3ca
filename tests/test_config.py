"""Tests for environment-driven settings."""

from mcp_server_vibsim.config import Settings, load_settings


class TestLoadSettings:
    def test_defaults(self):
        assert load_settings({}) == Settings()

    def test_overrides(self):
        settings = load_settings({
            "VIBSIM_LOG_LEVEL": "debug",
            "VIBSIM_OFFLOAD": "0",
            "VIBSIM_JOB_TIMEOUT_S": "5.5",
        })
        assert settings.log_level == "DEBUG"
        assert settings.offload is False
        assert settings.job_timeout_s == 5.5

    def test_truthy_offload(self):
        assert load_settings({"VIBSIM_OFFLOAD": "yes"}).offload is True
        assert load_settings({"VIBSIM_OFFLOAD": " "}).offload is True

    def test_bad_timeout_falls_back(self):
        assert load_settings({"VIBSIM_JOB_TIMEOUT_S": "soon"}).job_timeout_s == 30.0
        assert load_settings({"VIBSIM_JOB_TIMEOUT_S": "-3"}).job_timeout_s == 0.0
