#!/usr/bin/env python3
"""
Settings loader for Inkwell.
Supports configuration from inkwell.yml, inkwell.yaml, or inkwell.json files.
"""

import os
import copy
import json
import yaml
from typing import Dict, Any, Optional


class InkwellSettings:
    """Load and manage Inkwell configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'data_dir': 'data',
        'cache_dir': 'cache',
        'base_url': '',
        'assets_url': None,
        'debug': False,
        'available_languages': ['en'],
        'rss': {
            'versions': ['en', 'all'],
            'amount': 50,
            'blog_base_url': None,
            'generator': 'inkwell',
            'copyright': '',
            'image_relpath': '',
        },
        'blog': {
            'per_page': 12,
            'base_keywords': '',
        },
        'comments': {
            'admin_email': None,
            'max_attempts': 20,
            'min_length': 6,
            'max_length': 5000,
            'honeypot_field': 'website_url',
        },
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['inkwell.yml', 'inkwell.yaml', 'inkwell.json']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
        self.config_file_path = None

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'InkwellSettings':
        """Build settings from a plain dictionary layered over the defaults."""
        instance = cls()
        instance.settings = cls._merge(instance.settings, values or {})
        return instance

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from configuration file if it exists.

        Returns:
            Dictionary of configuration settings
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            loaded_settings = self._load_config_file(config_file)
            if loaded_settings:
                # Merge with defaults, giving preference to loaded settings
                self.settings = self._merge(self.settings, loaded_settings)

        return copy.deepcopy(self.settings)

    @staticmethod
    def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge override into base; nested sections are merged key by key."""
        merged = copy.deepcopy(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = InkwellSettings._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    data = yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    data = json.load(f) or {}
                else:
                    raise ValueError(f"Unsupported config file format: {file_ext}")
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        except PermissionError:
            raise PermissionError(f"Permission denied reading configuration file: {config_path}")
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")
        except (IOError, OSError) as e:
            raise IOError(f"Error reading configuration file {config_path}: {e}")

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        return data

    def get(self, path: str, default: Any = None) -> Any:
        """
        Look up a setting by dotted path, e.g. ``rss.title_en``.

        Returns default when any segment is missing or None.
        """
        node = self.settings
        for part in path.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return default if node is None else node

    @property
    def debug(self) -> bool:
        return bool(self.settings.get('debug'))

    @property
    def base_url(self) -> str:
        return (self.settings.get('base_url') or '').rstrip('/')

    @property
    def assets_url(self) -> str:
        return (self.settings.get('assets_url') or f"{self.base_url}/data/blog/assets").rstrip('/')

    @property
    def available_languages(self):
        return list(self.settings.get('available_languages') or [])

    def blog_path(self, *parts: str) -> str:
        """Path below ``<data_dir>/blog``."""
        return os.path.join(self.settings['data_dir'], 'blog', *parts)

    @property
    def posts_dir(self) -> str:
        return self.blog_path('posts')

    @property
    def thumbnails_dir(self) -> str:
        return self.blog_path('thumbnails')

    @property
    def thumbnails_url(self) -> str:
        return f"{self.base_url}/data/blog/thumbnails"

    @property
    def comments_dir(self) -> str:
        return self.blog_path('comments')

    @property
    def feeds_dir(self) -> str:
        return self.blog_path()

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        sample_config = {
            'base_url': 'https://example.com',
            'data_dir': 'data',
            'cache_dir': 'cache',
            'debug': False,
            'available_languages': ['en', 'de'],
            'rss': {
                'versions': ['en', 'de', 'all'],
                'amount': 50,
                'blog_base_url': 'https://example.com/blog',
                'title_en': 'My Blog',
                'title_de': 'Mein Blog',
                'title_all': 'My Blog',
                'description_en': 'Latest posts',
                'description_de': 'Neueste Beiträge',
                'description_all': 'Latest posts',
                'image_relpath': 'img/logo.png',
            },
            'blog': {
                'per_page': 12,
                'base_keywords': 'blog',
            },
            'comments': {
                'admin_email': 'admin@example.com',
                'max_attempts': 20,
            },
        }

        filename = f'inkwell.{file_format}'
        config_path = os.path.join(self.config_dir, filename)

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                if file_format in ['yml', 'yaml']:
                    f.write("# Inkwell Configuration File\n")
                    f.write("# Configure your blog settings here\n\n")
                    yaml.safe_dump(sample_config, f, sort_keys=False, allow_unicode=True)
                elif file_format == 'json':
                    json.dump(sample_config, f, indent=2, ensure_ascii=False)
                else:
                    raise ValueError(f"Unsupported config file format: {file_format}")
        except PermissionError:
            raise PermissionError(f"Permission denied creating configuration file: {config_path}")
        except (IOError, OSError) as e:
            raise IOError(f"Error writing configuration file {config_path}: {e}")

        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of command-line arguments

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(self.settings)

        # Override with non-None command line arguments
        for key, value in args_dict.items():
            if value is None:
                continue
            if key == 'available_languages' and isinstance(value, str):
                # Convert comma-separated string to list
                merged[key] = [lang.strip() for lang in value.split(',') if lang.strip()]
            else:
                merged[key] = value

        self.settings = merged
        return copy.deepcopy(merged)
