"""Dagster definitions for the cloud-native data access workflows."""

from dagster import Definitions, load_assets_from_modules

from cloudnative_workflows import assets  # noqa: TID252
from cloudnative_workflows.connectors.s3_client import S3Resource
from cloudnative_workflows.connectors.settings import SettingsResource
from cloudnative_workflows.connectors.stac_client import STACResource
from cloudnative_workflows.triggers.jobs import raster_job, tabular_job

all_assets = load_assets_from_modules([assets])

settings = SettingsResource.create(swallow_errors=True)

defs = Definitions(
    assets=all_assets,
    jobs=[tabular_job, raster_job],
    resources={
        "s3": S3Resource(settings=settings),
        "stac": STACResource(settings=settings),
        "settings": settings,
    },
)
