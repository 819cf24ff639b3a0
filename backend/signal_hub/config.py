"""
Configuration Management System

Centralized configuration from the YAML and JSON files in backend/config.
Each file is keyed by its stem, so dispatch.yaml is read with
config.get('dispatch.proximity.radiusMeters'). Secrets never live here;
they come from environment variables (see .env.example).
"""

import yaml
import json
from pathlib import Path
from typing import Dict, Any

from signal_hub.models import Coordinate


class ConfigManager:
    """
    Manage application configuration from YAML and JSON files

    Provides:
    - Load all config files on startup
    - Dot notation access: config.get('dispatch.route.corridorMeters')
    - Default values for missing keys
    """

    def __init__(self, config_dir: str = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to config directory (default: backend/config)
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            # Find config dir relative to this file
            self.config_dir = Path(__file__).parent.parent / "config"

        self.configs: Dict[str, Any] = {}
        self._load_all_configs()

    def _load_all_configs(self):
        """Load all configuration files from config directory"""
        if not self.config_dir.exists():
            print(f"   [WARN] Config directory not found: {self.config_dir} (using defaults)")
            return

        # Load YAML configs
        for yaml_file in sorted(self.config_dir.glob("*.yaml")):
            try:
                with open(yaml_file, 'r') as f:
                    self.configs[yaml_file.stem] = yaml.safe_load(f) or {}
                    print(f"   [CONFIG] Loaded: {yaml_file.name}")
            except (OSError, yaml.YAMLError) as e:
                print(f"   [WARN] Failed to load {yaml_file.name}: {e}")

        # Load JSON configs
        for json_file in sorted(self.config_dir.glob("*.json")):
            try:
                with open(json_file, 'r') as f:
                    self.configs[json_file.stem] = json.load(f)
                    print(f"   [CONFIG] Loaded: {json_file.name}")
            except (OSError, ValueError) as e:
                print(f"   [WARN] Failed to load {json_file.name}: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot notation key

        Examples:
            config.get('dispatch.proximity.radiusMeters', 200)
            config.get('dispatch.simulation.enabled', True)

        Args:
            key: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.configs

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_hub_settings(self) -> Dict[str, Any]:
        """
        Flatten the dispatch config into CoordinationHub keyword arguments

        Missing keys fall back to the hub defaults.
        """
        settings = {
            "vehicle_id": self.get('dispatch.hub.vehicleId', "AMB-1"),
            "radius_meters": float(self.get('dispatch.proximity.radiusMeters', 200)),
            "corridor_meters": float(self.get('dispatch.route.corridorMeters', 50)),
            "use_degree_heuristic": bool(self.get('dispatch.route.useDegreeHeuristic', False)),
            "simulation_enabled": bool(self.get('dispatch.simulation.enabled', True)),
            "step_interval_ms": float(self.get('dispatch.simulation.stepIntervalMs', 30)),
            "step_factor": float(self.get('dispatch.simulation.stepFactor', 0.0001)),
            "min_steps": int(self.get('dispatch.simulation.minSteps', 10)),
            "send_timeout": float(self.get('dispatch.observers.sendTimeoutSeconds', 5)),
        }

        depot = self.get('dispatch.hub.depot')
        if isinstance(depot, dict) and 'lat' in depot and 'lng' in depot:
            settings["depot"] = Coordinate(float(depot["lat"]), float(depot["lng"]))

        return settings


# Global configuration instance
config = None


def get_config() -> ConfigManager:
    """Get the global configuration instance"""
    global config
    if config is None:
        config = ConfigManager()
    return config
