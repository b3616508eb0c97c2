"""
Storage backend abstraction package.

This package provides abstraction for different storage backends
(local filesystem, S3) for deployment templates and persisted state.
"""

from .base import StorageBackend
from .local import LocalStorage
from .s3 import S3Storage


def get_storage_backend(config, client=None):
    """Factory function to get the storage backend for deployment state."""
    deployment = config.get('deployment') or {}
    storage_mode = deployment.get('storage_backend', 'local')

    if storage_mode == 'local':
        return LocalStorage(deployment)
    elif storage_mode == 's3':
        return S3Storage(config.get('s3') or {}, client=client)
    else:
        raise ValueError(f"Unknown storage backend: {storage_mode}")


__all__ = ['StorageBackend', 'LocalStorage', 'S3Storage', 'get_storage_backend']
