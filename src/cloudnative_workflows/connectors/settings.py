"""Settings resource for managing configuration from environment variables."""

import os
import types
from pathlib import Path
from typing import Any, Union, get_args, get_origin, get_type_hints

from dagster import ConfigurableResource

from cloudnative_workflows.config.constants import SETTINGS_DEFAULTS

MANDATORY_SETTINGS = ("tabular_dataset_uri", "stac_api_url", "stac_collection_id")


class SettingsResource(ConfigurableResource[Any]):
    """Settings resource resolved from upper-cased environment variables."""

    aws_region: str | None = None
    aws_s3_endpoint: str | None = None
    aws_s3_anonymous: bool = True
    cache_bucket_name: str | None = None
    cache_prefix: str | None = None
    tmp_dir: str | None = None
    output_dir: str | None = None
    tabular_dataset_uri: str | None = None
    stac_api_url: str | None = None
    stac_collection_id: str | None = None
    region_source: str | None = None
    request_timeout: int | None = None
    max_items: int | None = None

    @staticmethod
    def create(swallow_errors: bool = False) -> "SettingsResource":
        """Create SettingsResource from environment variables.

        :param swallow_errors: If True, ignore validation errors
        :returns: SettingsResource instance
        """
        env_values: dict[str, Any] = {}
        for attr_name, attr_type in get_type_hints(SettingsResource).items():
            if attr_name not in SettingsResource.__annotations__:
                continue
            raw = os.environ.get(attr_name.upper())
            base_type = _unwrap_optional(attr_type)
            if raw is None or (raw == "" and base_type is not str):
                env_values[attr_name] = SETTINGS_DEFAULTS.get(attr_name)
            elif base_type is bool:
                env_values[attr_name] = raw.strip().lower() in ("true", "1", "yes", "y", "on")
            elif base_type is int:
                env_values[attr_name] = int(raw)
            else:
                env_values[attr_name] = raw

        settings = SettingsResource(**{k: v for k, v in env_values.items() if v is not None})
        try:
            settings._post_init()
        except (TypeError, ValueError, OSError):
            if not swallow_errors:
                raise
        return settings

    def create_output_dirs(self) -> None:
        """Create temporary and output directories if missing."""
        for directory in (self.tmp_dir, self.output_dir):
            if directory:
                Path(directory).mkdir(parents=True, exist_ok=True)

    def get_output_dir(self) -> Path:
        """Get output directory, creating it if needed.

        :returns: Output directory path
        """
        path = Path(self.output_dir or SETTINGS_DEFAULTS["output_dir"])  # type: ignore[arg-type]
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_request_timeout(self) -> int:
        return int(self.request_timeout or SETTINGS_DEFAULTS["request_timeout"])  # type: ignore[call-overload]

    def get_max_items(self) -> int:
        return int(self.max_items or SETTINGS_DEFAULTS["max_items"])  # type: ignore[call-overload]

    def validate_settings(self) -> None:
        """Validate all mandatory settings are present."""
        missing_vars = [name.upper() for name in MANDATORY_SETTINGS if not getattr(self, name, None)]
        if missing_vars:
            raise ValueError(f"Missing mandatory environment variables: {', '.join(missing_vars)}")

    def _post_init(self) -> None:
        self.create_output_dirs()
        self.validate_settings()


def _unwrap_optional(attr_type: Any) -> Any:
    if get_origin(attr_type) in (Union, types.UnionType):
        args = [arg for arg in get_args(attr_type) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return attr_type
