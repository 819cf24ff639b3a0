"""
Configuration Tests

Tests for ConfigManager loading and the hub settings derived from
dispatch.yaml.
"""

import pytest

from signal_hub.config import ConfigManager
from signal_hub.models import Coordinate


DISPATCH_YAML = """
hub:
  vehicleId: AMB-7
  depot:
    lat: 12.9
    lng: 80.1
proximity:
  radiusMeters: 150
simulation:
  enabled: false
  minSteps: 5
"""


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "dispatch.yaml").write_text(DISPATCH_YAML, encoding="utf-8")
    (tmp_path / "extra.json").write_text('{"flag": true}', encoding="utf-8")
    return tmp_path


class TestConfigManager:
    """Test file loading and dot-notation access"""

    def test_loads_yaml_and_json(self, config_dir):
        cfg = ConfigManager(str(config_dir))

        assert cfg.get('dispatch.hub.vehicleId') == "AMB-7"
        assert cfg.get('extra.flag') is True
        assert cfg.get('dispatch.proximity.radiusMeters') == 150

    def test_missing_key_returns_default(self, config_dir):
        cfg = ConfigManager(str(config_dir))

        assert cfg.get('dispatch.route.corridorMeters', 50) == 50
        assert cfg.get('dispatch.hub.vehicleId.nested') is None

    def test_missing_directory(self, tmp_path):
        cfg = ConfigManager(str(tmp_path / "nope"))

        assert cfg.configs == {}
        assert cfg.get_hub_settings()["radius_meters"] == 200.0

    def test_broken_yaml_is_skipped(self, tmp_path):
        (tmp_path / "broken.yaml").write_text("hub: [unclosed", encoding="utf-8")
        cfg = ConfigManager(str(tmp_path))
        assert 'broken' not in cfg.configs


class TestHubSettings:
    """Test dispatch config flattening"""

    def test_hub_settings(self, config_dir):
        settings = ConfigManager(str(config_dir)).get_hub_settings()

        assert settings["vehicle_id"] == "AMB-7"
        assert settings["radius_meters"] == 150.0
        assert settings["simulation_enabled"] is False
        assert settings["min_steps"] == 5
        assert settings["corridor_meters"] == 50.0
        assert settings["send_timeout"] == 5.0
        assert settings["depot"] == Coordinate(12.9, 80.1)

    def test_depot_omitted_when_absent(self, tmp_path):
        (tmp_path / "dispatch.yaml").write_text("proximity:\n  radiusMeters: 100\n", encoding="utf-8")
        settings = ConfigManager(str(tmp_path)).get_hub_settings()
        assert "depot" not in settings

    def test_bundled_config(self):
        settings = ConfigManager().get_hub_settings()

        assert settings["radius_meters"] == 200.0
        assert settings["step_interval_ms"] == 30.0
        assert settings["send_timeout"] == 5.0
        assert settings["depot"] == Coordinate(13.104828921878372, 80.27684466155233)
