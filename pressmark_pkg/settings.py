#!/usr/bin/env python3
"""
Settings loader for the Pressmark build pipeline.
Supports configuration from pressmark.yml, pressmark.yaml, or pressmark.json files.
"""

import os
import json
import logging
import yaml
from typing import Dict, Any, Optional


class PressmarkSettings:
    """Load and manage Pressmark configuration settings."""

    DEFAULT_SETTINGS = {
        'output': 'dist',
        'source': '.',
        'content': 'content.yml',
        'templates': None,
        'images_source': None,
        'images_output': 'images',
        'css_files': ['normalize.css', 'main.css'],
        'js_files': ['main.js'],
        'minify': False,
        'generate_webp': True,
        'optimize_images': True,
        'sri': True,
        'sri_algorithm': 'sha384',
        'sri_workers': 1,
        'sri_files': ['index.html', '404.html'],
        'request_timeout': 10,
    }

    # Settings that accept a comma-separated string on the command line
    LIST_SETTINGS = ('css_files', 'js_files', 'sri_files')

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['pressmark.yml', 'pressmark.yaml', 'pressmark.json']

    def __init__(self, config_dir: str = None):
        self.config_dir = config_dir or os.getcwd()
        self.settings = {k: (list(v) if isinstance(v, list) else v) for k, v in self.DEFAULT_SETTINGS.items()}
        self.config_file_path = None
        self.logger = logging.getLogger('Pressmark')

    def load_settings(self) -> Dict[str, Any]:
        """Apply the first config file found over the defaults and return a copy."""
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            try:
                loaded_settings = self._load_config_file(config_file)
                if loaded_settings:
                    self.settings.update(loaded_settings)
                    self.logger.info(f"Loaded configuration from: {os.path.relpath(config_file)}")
            except (ValueError, IOError, OSError) as e:
                self.logger.warning(f"Failed to load config file {config_file}: {e}")

        return self.settings.copy()

    def _find_config_file(self) -> Optional[str]:
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Parse a YAML or JSON config file. Raises ValueError on bad content."""
        file_ext = os.path.splitext(config_path)[1].lower()
        if file_ext not in ('.yml', '.yaml', '.json'):
            raise ValueError(f"Unsupported config file format: {file_ext}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext == '.json':
                    data = json.load(f) or {}
                else:
                    data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        return data

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        if file_format not in ('yml', 'yaml', 'json'):
            raise ValueError(f"Unsupported config file format: {file_format}")

        config_path = os.path.join(self.config_dir, f'pressmark.{file_format}')

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                if file_format == 'json':
                    json.dump(self.DEFAULT_SETTINGS, f, indent=2)
                    f.write("\n")
                else:
                    f.write("# Pressmark Configuration File\n\n")
                    f.write("# Paths\n")
                    f.write("source: .\n")
                    f.write("output: dist\n")
                    f.write("content: content.yml\n")
                    f.write("# templates: templates\n")
                    f.write("# images_source: /path/to/original/images\n\n")
                    f.write("# Assets (relative to source/css and source/js)\n")
                    f.write("css_files:\n")
                    f.write("  - normalize.css\n")
                    f.write("  - main.css\n")
                    f.write("js_files:\n")
                    f.write("  - main.js\n")
                    f.write("minify: false\n\n")
                    f.write("# Images\n")
                    f.write("generate_webp: true\n")
                    f.write("optimize_images: true\n\n")
                    f.write("# Subresource Integrity\n")
                    f.write("sri: true\n")
                    f.write("sri_algorithm: sha384  # sha256, sha384 or sha512\n")
                    f.write("sri_workers: 1\n")
                    f.write("request_timeout: 10\n")
                    f.write("sri_files:\n")
                    f.write("  - index.html\n")
                    f.write("  - 404.html\n")
        except PermissionError:
            raise PermissionError(f"Permission denied creating configuration file: {config_path}")

        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Overlay command-line values on the loaded settings. ``None`` means the
        flag was not given; list settings also accept comma-separated strings.
        """
        merged = self.settings.copy()

        for key, value in args_dict.items():
            if value is None:
                continue
            if key in self.LIST_SETTINGS and isinstance(value, str):
                merged[key] = [item.strip() for item in value.split(',') if item.strip()]
            else:
                merged[key] = value

        return merged
