"""Storage operations for cached results and vector geometry sources."""

import io
from typing import Any

import geopandas as gpd
import pandas as pd
from dagster import AssetExecutionContext, OpExecutionContext

from cloudnative_workflows.config.constants import DEFAULT_BOUNDING_REGION, DEFAULT_CACHE_PREFIX
from cloudnative_workflows.connectors.s3_client import S3Resource
from cloudnative_workflows.connectors.settings import SettingsResource
from cloudnative_workflows.models.models import BoundingRegion


def cache_result(
    context: OpExecutionContext | AssetExecutionContext,
    result: pd.DataFrame,
    settings: SettingsResource,
    s3: S3Resource,
    name: str,
    s3_client: Any | None = None,
) -> str:
    """Cache a materialized result as Parquet.

    Writes to the cache bucket when one is configured, otherwise to the
    output directory.

    :param context: Dagster context
    :param result: Materialized result
    :param settings: Settings resource
    :param s3: S3 resource
    :param name: Cache entry name
    :param s3_client: Optional S3 client
    :returns: URI of the cached file
    """
    bucket = settings.cache_bucket_name
    if not bucket:
        path = settings.get_output_dir() / f"{name}.parquet"
        result.to_parquet(path, engine="pyarrow", index=False)
        context.log.info(f"Cached {len(result)} rows to {path}")
        return str(path)

    parquet_buffer = io.BytesIO()
    result.to_parquet(parquet_buffer, engine="pyarrow", index=False)
    parquet_buffer.seek(0)

    s3_key = f"{(settings.cache_prefix or DEFAULT_CACHE_PREFIX).strip('/')}/{name}.parquet"
    owns_client = s3_client is None
    if s3_client is None:
        s3_client = s3.get_client(anonymous=False)
    try:
        s3_client.upload_fileobj(
            parquet_buffer,
            Bucket=bucket,
            Key=s3_key,
            ExtraArgs={"ContentType": "application/parquet"},
        )
    finally:
        if owns_client:
            s3_client.close()

    context.log.info(f"Cached {len(result)} rows to s3://{bucket}/{s3_key}")
    return f"s3://{bucket}/{s3_key}"


def load_bounding_region(
    context: OpExecutionContext | AssetExecutionContext,
    source: str | None = None,
) -> BoundingRegion:
    """Derive a bounding region from a vector geometry source.

    Any path or URL readable by geopandas works. Without a source the default
    region is used.

    :param context: Dagster context
    :param source: Optional vector file path or URL
    :returns: BoundingRegion instance
    """
    if not source:
        context.log.info(f"No region source configured, using default {DEFAULT_BOUNDING_REGION}")
        return BoundingRegion.from_bounds(DEFAULT_BOUNDING_REGION)

    gdf = gpd.read_file(source)
    region = BoundingRegion.from_geodataframe(gdf)
    context.log.info(f"Loaded region {region.bounds} from {source} ({len(gdf)} features)")
    return region
