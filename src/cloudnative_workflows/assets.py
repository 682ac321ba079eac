"""Dagster assets for the tabular and raster workflows."""

from typing import Any, Optional

import pandas as pd
import pyarrow.fs as pafs
from dagster import AssetExecutionContext, Config, Output, asset

from cloudnative_workflows.config.constants import PREVIEW_ASSET_PREFERENCES
from cloudnative_workflows.connectors.s3_client import S3Resource
from cloudnative_workflows.connectors.settings import SettingsResource
from cloudnative_workflows.connectors.stac_client import STACResource
from cloudnative_workflows.exceptions import EmptyResultError
from cloudnative_workflows.geospatial.raster_ops import open_raster
from cloudnative_workflows.geospatial.stac_ops import first_item, search_items, select_asset_href, sign_item
from cloudnative_workflows.models.models import BoundingRegion, CatalogItem, QueryDescriptor
from cloudnative_workflows.render import render_raster, render_table
from cloudnative_workflows.storage import cache_result, load_bounding_region
from cloudnative_workflows.tabular.dataset_ops import open_dataset, query


class OccurrenceQueryConfig(Config):
    """Filter, group and count query over the tabular dataset."""

    filter_column: str = "countrycode"
    filter_values: list[str] = ["US"]
    group_keys: list[str] = ["kingdom", "year"]
    count_alias: str = "n"
    partitioning: Optional[str] = None
    cache: bool = True


class OccurrencePlotConfig(Config):
    """Axes of the occurrence count plot."""

    x: str = "year"
    y: str = "n"
    hue: Optional[str] = "kingdom"


class CatalogSearchConfig(Config):
    """Catalog search filters."""

    datetime_range: Optional[str] = None
    max_cloud_cover: Optional[float] = None


class ScenePreviewConfig(Config):
    """Asset selection and size of the rendered scene preview."""

    asset_preferences: list[str] = PREVIEW_ASSET_PREFERENCES
    max_size: int = 1024


@asset
def occurrence_counts(
    context: AssetExecutionContext,
    s3: S3Resource,
    settings: SettingsResource,
    config: OccurrenceQueryConfig,
) -> Output[pd.DataFrame]:
    """Count records per group in the remote tabular dataset.

    Opening reads Parquet footers only; rows are transferred by the query,
    restricted to the filter and group columns.

    :param context: Dagster context
    :param s3: S3 resource
    :param settings: Settings resource
    :param config: Query configuration
    :returns: Output with the materialized counts
    """
    locator = settings.tabular_dataset_uri or ""
    handle = open_dataset(locator, filesystem=_filesystem_for(locator, s3), partitioning=config.partitioning)
    context.log.info(f"Opened {handle} with {len(handle.files)} file(s)")

    descriptor = _build_occurrence_query(config)
    context.log.debug(f"Reading columns {descriptor.required_columns()} from {locator}")
    result = query(handle, descriptor)
    context.log.info(f"Materialized {len(result)} group(s) from {locator}")

    cache_uri = cache_result(context, result, settings, s3, name="occurrence_counts") if config.cache else None

    return Output(
        result,
        metadata={
            "locator": locator,
            "rows": len(result),
            "columns": ", ".join(result.columns),
            "cache_uri": cache_uri,
        },
    )


@asset
def occurrence_counts_plot(
    context: AssetExecutionContext,
    settings: SettingsResource,
    occurrence_counts: pd.DataFrame,
    config: OccurrencePlotConfig,
) -> Output[str]:
    """Render occurrence counts to a PNG.

    :param context: Dagster context
    :param settings: Settings resource
    :param occurrence_counts: Materialized counts
    :param config: Plot configuration
    :returns: Output with the image path
    """
    path = render_table(
        occurrence_counts,
        x=config.x,
        y=config.y,
        hue=config.hue,
        path=settings.get_output_dir() / "occurrence_counts.png",
        title=f"Occurrences per {config.x}",
    )
    context.log.info(f"Rendered occurrence counts to {path}")
    return Output(str(path), metadata={"path": str(path)})


@asset
def bounding_region(context: AssetExecutionContext, settings: SettingsResource) -> BoundingRegion:
    """Derive the search region from the configured vector source.

    :param context: Dagster context
    :param settings: Settings resource
    :returns: BoundingRegion instance
    """
    return load_bounding_region(context, settings.region_source)


@asset
def catalog_items(
    context: AssetExecutionContext,
    stac: STACResource,
    settings: SettingsResource,
    bounding_region: BoundingRegion,
    config: CatalogSearchConfig,
) -> Output[list[CatalogItem]]:
    """Search the catalog collection for items intersecting the region.

    Items are stored unsigned; signing happens right before pixels are read.

    :param context: Dagster context
    :param stac: STAC resource
    :param settings: Settings resource
    :param bounding_region: Search region
    :param config: Search configuration
    :returns: Output with the matching items
    """
    collection_id = settings.stac_collection_id or ""
    with stac.client_session() as client:
        items = search_items(
            context,
            client,
            collection_id,
            bounding_region,
            datetime_range=config.datetime_range,
            query=_cloud_cover_query(config.max_cloud_cover),
            max_items=settings.get_max_items(),
        )

    return Output(
        items,
        metadata={
            "collection_id": collection_id,
            "item_count": len(items),
            "item_ids": ", ".join(item.id for item in items),
        },
    )


@asset
def scene_preview(
    context: AssetExecutionContext,
    settings: SettingsResource,
    catalog_items: list[CatalogItem],
    config: ScenePreviewConfig,
) -> Output[Optional[str]]:
    """Sign the first catalog item and render its preferred asset.

    An empty search is not a failure: the asset completes with an error output.

    :param context: Dagster context
    :param settings: Settings resource
    :param catalog_items: Catalog search result
    :param config: Preview configuration
    :returns: Output with the image path, or None when there was nothing to render
    """
    try:
        item = first_item(catalog_items, f"{settings.stac_collection_id} items")
    except EmptyResultError as e:
        context.log.warning(f"Skipping scene preview: {e}")
        return _create_error_output(error=str(e))

    signed_item = sign_item(item)
    asset_key, href = select_asset_href(signed_item, config.asset_preferences)
    context.log.info(f"Signed {item.id} until {signed_item.expires_at.isoformat()}, rendering asset {asset_key}")

    path = settings.get_output_dir() / f"{item.id}_{asset_key}.png"
    with open_raster(href) as handle:
        render_raster(handle, path, max_size=config.max_size, title=f"{item.id} ({asset_key})")

    context.log.info(f"Rendered {item.id} to {path}")
    return _create_success_output(path=str(path), item_id=item.id, asset_key=asset_key)


def _filesystem_for(locator: str, s3: S3Resource) -> pafs.FileSystem | None:
    """Pick the filesystem for a locator; S3 goes through the configured resource.

    :param locator: Dataset locator
    :param s3: S3 resource
    :returns: Filesystem or None to let Arrow resolve it
    """
    if locator.startswith("s3://"):
        return s3.create_filesystem()
    return None


def _build_occurrence_query(config: OccurrenceQueryConfig) -> QueryDescriptor:
    """Build the count-by query from asset configuration.

    :param config: Query configuration
    :returns: QueryDescriptor instance
    """
    where: dict[str, Any] = {}
    if config.filter_values:
        values = config.filter_values
        where[config.filter_column] = values[0] if len(values) == 1 else values
    return QueryDescriptor.count_by(config.group_keys, where=where, alias=config.count_alias)


def _cloud_cover_query(max_cloud_cover: float | None) -> dict[str, Any] | None:
    if max_cloud_cover is None:
        return None
    return {"eo:cloud_cover": {"lt": max_cloud_cover}}


def _create_error_output(error: str) -> Output[Optional[str]]:
    """Create error Output for a preview that could not be rendered.

    :param error: Error message
    :returns: Output with error metadata
    """
    return Output(
        None,
        metadata={
            "success": False,
            "error": error,
        },
    )


def _create_success_output(path: str, item_id: str, asset_key: str) -> Output[Optional[str]]:
    """Create success Output for a rendered preview.

    :param path: Image path
    :param item_id: Catalog item ID
    :param asset_key: Rendered asset key
    :returns: Output with success metadata
    """
    return Output(
        path,
        metadata={
            "success": True,
            "error": None,
            "path": path,
            "item_id": item_id,
            "asset_key": asset_key,
        },
    )
