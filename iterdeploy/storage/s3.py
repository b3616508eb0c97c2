#!/usr/bin/env python3
"""S3 storage backend for templates and deployment state."""

import boto3
from botocore.exceptions import ClientError

from .base import StorageBackend

MISSING_CODES = ('404', 'NoSuchKey', 'NotFound')


class S3Storage(StorageBackend):
    """S3 storage backend for production mode."""

    def __init__(self, config, client=None):
        self.bucket = config.get('bucket_name')
        self.region = config.get('region')
        self.endpoint_url = config.get('endpoint_url')
        self.prefix = config.get('prefix', '')
        if not self.bucket:
            raise ValueError("S3 storage requires bucket_name")
        self._client = client

    def _get_client(self):
        """Lazy initialization of boto3 client."""
        if self._client is None:
            self._client = boto3.client(
                's3',
                endpoint_url=self.endpoint_url,
                region_name=self.region,
            )
        return self._client

    def _key(self, storage_key):
        return f"{self.prefix}{storage_key}" if self.prefix else storage_key

    def _get_s3_url(self, storage_key):
        return f"s3://{self.bucket}/{self._key(storage_key)}"

    def exists(self, storage_key):
        try:
            self._get_client().head_object(Bucket=self.bucket, Key=self._key(storage_key))
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in MISSING_CODES:
                return False
            raise

    def read_text(self, storage_key):
        try:
            response = self._get_client().get_object(Bucket=self.bucket, Key=self._key(storage_key))
        except ClientError as e:
            if e.response['Error']['Code'] in MISSING_CODES:
                return None
            raise
        return response['Body'].read().decode('utf-8')

    def write_text(self, storage_key, text):
        self._get_client().put_object(
            Bucket=self.bucket,
            Key=self._key(storage_key),
            Body=text.encode('utf-8'),
            ContentType='application/x-yaml',
        )
        return self._get_s3_url(storage_key)

    def describe(self, storage_key):
        return self._get_s3_url(storage_key)
