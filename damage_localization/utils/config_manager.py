"""
Configuration Management System

Handles loading, validation, and management of engine parameters.
"""

import yaml
from typing import Dict, Any, Optional
from pathlib import Path


class ConfigManager:
    """Manages configuration parameters for the damage localization engine."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, uses default config.
        """
        self.config_path = config_path or self._get_default_config_path()
        self.config = self._load_config()
        self._validate_config()

    def _get_default_config_path(self) -> str:
        """Get path to default configuration file."""
        package_dir = Path(__file__).parent.parent
        return str(package_dir / "config" / "default_config.yaml")

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as file:
                config = yaml.safe_load(file)
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing configuration file: {e}")
        return config or {}

    def _validate_config(self) -> None:
        """Validate configuration parameters for consistency and feasibility."""
        depth = self.config.get('depth', {})
        min_depth = float(depth.get('min_depth', 0.1))
        max_depth = float(depth.get('max_depth', 5.0))
        if min_depth >= max_depth:
            raise ValueError("min_depth must be less than max_depth")
        window_size = int(depth.get('window_size', 3))
        if window_size <= 0 or window_size % 2 == 0:
            raise ValueError("depth window_size must be a positive odd number")

        placement = self.config.get('placement', {})
        t_min = float(placement.get('ray_t_min', 0.1))
        t_max = float(placement.get('ray_t_max', 10.0))
        if t_min >= t_max:
            raise ValueError("ray_t_min must be less than ray_t_max")
        if float(placement.get('default_ceiling_height', 2.4)) <= 0:
            raise ValueError("default_ceiling_height must be positive")

        dedup = self.config.get('dedup', {})
        iou = float(dedup.get('iou_threshold', 0.3))
        if not 0.0 <= iou <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        ratio = float(dedup.get('closer_distance_ratio', 0.8))
        if ratio <= 0:
            raise ValueError("closer_distance_ratio must be positive")

        analysis = self.config.get('analysis', {})
        if float(analysis.get('request_delay', 0.5)) < 0:
            raise ValueError("request_delay must be non-negative")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'depth.min_depth')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'dedup.iou_threshold')
            value: Value to set
        """
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref:
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value
        self._validate_config()

    def save(self, output_path: Optional[str] = None) -> None:
        """
        Save current configuration to file.

        Args:
            output_path: Path to save configuration. If None, overwrites current file.
        """
        save_path = output_path or self.config_path

        with open(save_path, 'w') as file:
            yaml.dump(self.config, file, default_flow_style=False, indent=2)

    def get_depth_params(self) -> Dict[str, Any]:
        """Get depth sampling parameters as a dictionary."""
        return self.config.get('depth', {})

    def get_measurement_params(self) -> Dict[str, Any]:
        """Get measurement confidence parameters as a dictionary."""
        return self.config.get('measurement', {})

    def get_placement_params(self) -> Dict[str, Any]:
        """Get surface placement parameters as a dictionary."""
        return self.config.get('placement', {})

    def get_dedup_params(self) -> Dict[str, Any]:
        """Get deduplication parameters as a dictionary."""
        return self.config.get('dedup', {})

    def get_analysis_params(self) -> Dict[str, Any]:
        """Get analysis run parameters as a dictionary."""
        return self.config.get('analysis', {})
