#!/usr/bin/env python3
"""
Deployment utilities - shared helper functions.
"""

import os
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = Path("config") / "deployment-config.yaml"


def load_yaml(file_path):
    with open(file_path, 'r') as f:
        return yaml.safe_load(f)


def dump_yaml(data):
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def deep_merge(base, override):
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config(config_path=None):
    """
    Load configuration with optional local overrides.
    - Default: config/deployment-config.yaml
    - DEPLOYMENT_ENV=local: merges deployment-config.local.yaml overrides
    - Missing base file: empty config, every setting falls back to its default
    """
    base_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    base_config = load_yaml(base_path) if base_path.exists() else {}
    base_config = base_config or {}

    env = os.environ.get('DEPLOYMENT_ENV', '').strip()
    if env == 'local':
        override_path = base_path.with_name(f"{base_path.stem}.local{base_path.suffix}")
        if override_path.exists():
            override_config = load_yaml(override_path) or {}
            return deep_merge(base_config, override_config)

    return base_config


def get_bucket_key(path_or_url, bucket):
    """Return the key inside the bucket for a template given as key or https URL."""
    if path_or_url.startswith('https://') and bucket in path_or_url:
        return path_or_url[path_or_url.index(bucket) + len(bucket) + 1:]
    return path_or_url


def get_http_url(path_or_url, bucket):
    if path_or_url.startswith('https://'):
        return path_or_url
    return f"https://s3.amazonaws.com/{bucket}/{path_or_url.lstrip('/')}"


def prefixed_token(token, prefix):
    return f"{prefix}-{token}" if token else None
