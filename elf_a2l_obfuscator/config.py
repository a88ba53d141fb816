"""
Configuration system for obfuscation runs.
"""

import os
import json
import copy
import logging

import numpy as np

logger = logging.getLogger(__name__)

class ObfuscatorConfig:
    """Configuration for an obfuscation run."""

    # Default configuration
    DEFAULT_CONFIG = {
        "random": {
            "seed": None  # None draws fresh entropy on every run
        },
        "dwarf": {
            "address_mask_keep_bits": 8,
            "expression_max_iterations": 100
        },
        "a2l": {
            "strip_comments": True,
            "label_words": [1, 4],
            "encoding": "utf-8"
        },
        "logging": {
            "level": "INFO",
            "file": None
        },
        "show_progress": False
    }

    def __init__(self, config_path=None):
        """
        Initialize the configuration.

        Args:
            config_path: Path to JSON configuration file (or None for default)
        """
        # Start with default configuration
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        # Load from file if provided
        if config_path:
            self.load(config_path)

    def load(self, config_path):
        """
        Load configuration from JSON file.

        Args:
            config_path: Path to JSON configuration file

        Raises:
            OSError: if the file cannot be read
            ValueError: if the file is not valid JSON
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            loaded_config = json.load(f)

        # Update configuration recursively
        self._update_dict_recursive(self.config, loaded_config)

        logger.info(f"Loaded configuration from {config_path}")

    def _update_dict_recursive(self, target, source):
        """
        Update dictionary recursively.

        Args:
            target: Target dictionary to update
            source: Source dictionary with new values
        """
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._update_dict_recursive(target[key], value)
            else:
                target[key] = value

    def save(self, output_path):
        """
        Save configuration to JSON file.

        Args:
            output_path: Path to save configuration
        """
        with open(output_path, 'w') as f:
            json.dump(self.config, f, indent=2)

        logger.info(f"Saved configuration to {output_path}")

    def get(self, *keys, default=None):
        """
        Get configuration value using nested keys.

        Args:
            *keys: Sequence of keys to traverse
            default: Default value if key not found

        Returns:
            Value at the specified key path
        """
        result = self.config
        try:
            for key in keys:
                result = result[key]
            return result
        except (KeyError, TypeError):
            return default

    def set(self, value, *keys):
        """
        Set configuration value using nested keys.

        Args:
            value: Value to set
            *keys: Sequence of keys to traverse
        """
        if not keys:
            return

        target = self.config
        for key in keys[:-1]:
            if key not in target or not isinstance(target[key], dict):
                target[key] = {}
            target = target[key]

        target[keys[-1]] = value

    def create_rng(self):
        """
        Create the random generator used for pseudonyms and masked addresses.

        Returns:
            numpy.random.Generator: seeded only when "random.seed" is set
        """
        return np.random.default_rng(self.get("random", "seed"))

    def get_label_words(self):
        """
        Get the (min, max) word count for generated labels.

        Returns:
            tuple: Minimum and maximum number of words
        """
        low, high = self.get("a2l", "label_words", default=[1, 4])
        return int(low), int(high)

    def __str__(self):
        """String representation of the configuration."""
        return json.dumps(self.config, indent=2)
