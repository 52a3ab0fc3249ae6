"""Unit tests for Settings validators and the pool table.

Tests that our Settings class validates configuration values correctly.
"""

import pytest
from pydantic import ValidationError

from vmworker.config import Settings


class TestRampWindowValidator:
    """Tests for ramp window validation."""

    def test_accepts_hour_pair(self):
        """Test that a start,end pair is accepted."""
        settings = Settings(vm_pool_ramp_down_hours="5, 9")
        assert settings.vm_pool_ramp_down_hours == "5, 9"

    def test_accepts_empty(self):
        """Test that an empty window disables ramping."""
        assert Settings(vm_pool_ramp_up_hours="").vm_pool_ramp_up_hours == ""

    @pytest.mark.parametrize("value", ["5", "5,24", "a,b", "3,3", "1,2,3"])
    def test_rejects_malformed(self, value):
        """Test that malformed windows fail at startup."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(vm_pool_ramp_down_hours=value)

        errors = exc_info.value.errors()
        assert any("vm_pool_ramp_down_hours" in str(e) for e in errors)


class TestLogFormatValidator:
    """Tests for log format validation."""

    def test_normalizes_case(self):
        assert Settings(log_format="JSON").log_format == "json"

    def test_rejects_unknown(self):
        with pytest.raises(ValidationError):
            Settings(log_format="xml")


class TestBounds:
    """Tests for numeric bounds."""

    def test_min_uptime_within_hour(self):
        with pytest.raises(ValidationError):
            Settings(vm_min_uptime_minutes=60)

    def test_pool_limit_non_negative(self):
        with pytest.raises(ValidationError):
            Settings(vm_pool_limit=-1)


class TestPoolTable:
    """Tests for get_pool_configs."""

    @pytest.fixture
    def settings(self):
        return Settings(
            vm_pool_limit=20,
            vm_pool_min_size=4,
            vm_pool_min_buffer=2,
            vm_pool_limit_large=5,
            vm_pool_min_size_large=1,
            vm_pool_ramp_down_hours="5,9",
            vm_pool_ramp_up_hours="9,13",
            vm_min_uptime_minutes=45,
        )

    def test_nine_pools(self, settings):
        keys = [c.key for c in settings.get_pool_configs()]

        assert keys == [
            "HetznerLargeUS",
            "HetznerUS",
            "HetznerLargeEU",
            "HetznerEU",
            "ScalewayLargeUS",
            "ScalewayUS",
            "DOLargeUS",
            "DOUS",
            "DockerLargeUS",
        ]

    def test_sized_pools_take_knobs(self, settings):
        configs = {c.key: c for c in settings.get_pool_configs()}

        standard = configs["HetznerUS"]
        assert (standard.limit_size, standard.min_size, standard.min_buffer) == (20, 4, 2)
        assert standard.ramp_down_hours == (5, 9)
        assert standard.ramp_up_hours == (9, 13)

        large = configs["HetznerLargeUS"]
        assert (large.limit_size, large.min_size) == (5, 1)
        assert large.session_limit_seconds == settings.vbrowser_session_seconds_large

    def test_other_pools_scale_from_zero(self, settings):
        configs = {c.key: c for c in settings.get_pool_configs()}

        for key in ("HetznerEU", "ScalewayUS", "DOLargeUS", "DockerLargeUS"):
            assert configs[key].scale_from_zero
            assert configs[key].limit_size == 0
            assert configs[key].min_uptime_minutes == 45


class TestHelpers:
    """Tests for helper methods."""

    def test_split_csv(self):
        assert Settings.split_csv(" 1, 2,,3 ") == ["1", "2", "3"]
        assert Settings.split_csv(None) == []

    def test_resolution_by_size(self):
        settings = Settings()
        assert settings.get_resolution(True) == settings.vbrowser_resolution_large
        assert settings.get_resolution(False) == settings.vbrowser_resolution

    def test_provider_credentials(self):
        settings = Settings(hetzner_token="tok", scw_secret_key="key")

        assert settings.providers.has_credentials("Hetzner")
        assert not settings.providers.has_credentials("DO")
        # Scaleway needs the organization as well
        assert not settings.providers.has_credentials("Scaleway")
        assert not settings.providers.has_credentials("Linode")

    def test_ssl_files_required_for_https(self):
        assert Settings(enable_https=True).validate_ssl_files() is False
        assert Settings(enable_https=False).validate_ssl_files() is True
