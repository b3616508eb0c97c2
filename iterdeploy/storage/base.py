#!/usr/bin/env python3
"""
Base storage backend interface for deployment templates and state.
"""


class StorageBackend:
    """Base interface for storage backends."""

    def exists(self, storage_key):
        """True if an object is stored under storage_key."""
        raise NotImplementedError

    def read_text(self, storage_key):
        """Return the stored text, or None if nothing is stored under the key."""
        raise NotImplementedError

    def write_text(self, storage_key, text):
        raise NotImplementedError

    def describe(self, storage_key):
        """Human readable location, used in messages."""
        return storage_key
