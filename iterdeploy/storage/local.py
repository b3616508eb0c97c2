#!/usr/bin/env python3
"""
Local storage backend for development mode.
"""

from pathlib import Path

from .base import StorageBackend


class LocalStorage(StorageBackend):
    """Stores objects as files below a root directory."""

    def __init__(self, config):
        self.root = Path(config.get('local_dir', './deployment-state'))

    def _path(self, storage_key):
        return self.root / storage_key.lstrip('/')

    def exists(self, storage_key):
        return self._path(storage_key).is_file()

    def read_text(self, storage_key):
        path = self._path(storage_key)
        if not path.is_file():
            return None
        return path.read_text()

    def write_text(self, storage_key, text):
        path = self._path(storage_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + '.tmp')
        tmp_path.write_text(text)
        tmp_path.replace(path)
        return str(path)

    def describe(self, storage_key):
        return str(self._path(storage_key))
