"""Dagster job definitions for asset materialization."""

from dagster import define_asset_job

tabular_job = define_asset_job(name="tabular_job", selection=["occurrence_counts", "occurrence_counts_plot"])
raster_job = define_asset_job(name="raster_job", selection=["bounding_region", "catalog_items", "scene_preview"])
