"""Constants for remote locators and configuration defaults."""

DEFAULT_TMP_DIR = "/tmp"
DEFAULT_OUTPUT_DIR = "/tmp/cloudnative-workflows"
DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_MAX_ITEMS = 10

DEFAULT_TABULAR_DATASET_URI = "s3://gbif-open-data-us-east-1/occurrence/2023-02-01/occurrence.parquet"
DEFAULT_CACHE_PREFIX = "cache/tabular"

DEFAULT_STAC_API_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"
DEFAULT_STAC_COLLECTION_ID = "sentinel-2-l2a"

# min_lon, min_lat, max_lon, max_lat
DEFAULT_BOUNDING_REGION: tuple[float, float, float, float] = (-122.55, 37.70, -122.35, 37.85)

# Planetary Computer SAS tokens are valid for roughly an hour; stay below that.
DEFAULT_SIGNED_URL_TTL_SECONDS = 45 * 60

VSI_CURL_PREFIX = "/vsicurl/"

RASTER_ENV_OPTIONS: dict[str, str] = {
    "GDAL_DISABLE_READDIR_ON_OPEN": "EMPTY_DIR",
    "CPL_VSIL_CURL_ALLOWED_EXTENSIONS": ".tif,.tiff,.TIF,.TIFF",
    "GDAL_HTTP_MERGE_CONSECUTIVE_RANGES": "YES",
    "GDAL_HTTP_MULTIPLEX": "YES",
}

PREVIEW_ASSET_PREFERENCES: list[str] = ["visual", "rendered_preview", "B04", "red", "data"]

SETTINGS_DEFAULTS: dict[str, object] = {
    "aws_region": DEFAULT_AWS_REGION,
    "aws_s3_anonymous": True,
    "cache_prefix": DEFAULT_CACHE_PREFIX,
    "tmp_dir": DEFAULT_TMP_DIR,
    "output_dir": DEFAULT_OUTPUT_DIR,
    "tabular_dataset_uri": DEFAULT_TABULAR_DATASET_URI,
    "stac_api_url": DEFAULT_STAC_API_URL,
    "stac_collection_id": DEFAULT_STAC_COLLECTION_ID,
    "request_timeout": DEFAULT_REQUEST_TIMEOUT,
    "max_items": DEFAULT_MAX_ITEMS,
}
