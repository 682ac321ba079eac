"""S3 connector for object-storage reads and cache writes."""

import os
from typing import Any

import boto3
import pyarrow.fs as pafs
from botocore import UNSIGNED
from botocore.config import Config
from dagster import ConfigurableResource

from cloudnative_workflows.connectors.settings import SettingsResource


class S3Resource(ConfigurableResource[Any]):
    """S3 resource for creating boto3 clients and Arrow filesystems."""

    settings: SettingsResource

    def _credentials(self) -> tuple[str | None, str | None]:
        return os.environ.get("AWS_ACCESS_KEY_ID"), os.environ.get("AWS_SECRET_ACCESS_KEY")

    def _is_anonymous(self) -> bool:
        if not self.settings.aws_s3_anonymous:
            return False
        access_key, secret_key = self._credentials()
        return not (access_key and secret_key)

    def create_filesystem(self) -> pafs.S3FileSystem:
        """Create Arrow S3 filesystem used for columnar reads.

        Public buckets are read anonymously unless credentials are configured.
        With anonymous access disabled and no keys in the environment, Arrow
        resolves credentials through the default AWS provider chain.

        :returns: Configured S3 filesystem
        """
        options: dict[str, Any] = {
            "region": self.settings.aws_region,
            "endpoint_override": self.settings.aws_s3_endpoint,
        }
        if self._is_anonymous():
            return pafs.S3FileSystem(anonymous=True, **options)

        access_key, secret_key = self._credentials()
        if access_key and secret_key:
            options.update(
                access_key=access_key,
                secret_key=secret_key,
                session_token=os.environ.get("AWS_SESSION_TOKEN"),
            )
        return pafs.S3FileSystem(**options)

    def create_client(self, anonymous: bool | None = None) -> Any:
        """Create boto3 S3 client.

        Writes need a signed client; without explicit keys boto3 falls back to
        its default credential chain.

        :param anonymous: Force unsigned requests; defaults to the settings
        :returns: Configured S3 client
        """
        if anonymous is None:
            anonymous = self._is_anonymous()
        if anonymous:
            return boto3.client(
                "s3",
                endpoint_url=self.settings.aws_s3_endpoint,
                region_name=self.settings.aws_region,
                config=Config(signature_version=UNSIGNED),
            )

        access_key, secret_key = self._credentials()
        return boto3.client(
            "s3",
            endpoint_url=self.settings.aws_s3_endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=self.settings.aws_region,
        )

    def get_client(self, anonymous: bool | None = None) -> Any:
        """Get S3 client instance.

        :param anonymous: Force unsigned requests; defaults to the settings
        :returns: Configured S3 client
        """
        return self.create_client(anonymous=anonymous)
