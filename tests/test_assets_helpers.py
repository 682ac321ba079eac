from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pyarrow.fs as pafs
from dagster import build_asset_context

from cloudnative_workflows import assets
from cloudnative_workflows.connectors.settings import SettingsResource


def _metadata_value(output: Any, key: str) -> Any:
    """Unwrap a metadata entry, which Dagster may wrap in a metadata value type."""
    value = output.metadata[key]
    return value.value if hasattr(value, "value") else value


def test_build_occurrence_query_single_and_multiple_values() -> None:
    """
    Test that the query configuration turns into a count-by descriptor.

    Verifies:
    - A single filter value becomes an equality predicate
    - Several values become a membership predicate
    - Group keys and count alias are carried over
    """
    single = assets._build_occurrence_query(assets.OccurrenceQueryConfig())
    assert [(p.column, p.op, p.value) for p in single.predicates] == [("countrycode", "==", "US")]
    assert single.group_keys == ["kingdom", "year"]
    assert single.aggregations[0].output_name == "n"

    several = assets._build_occurrence_query(
        assets.OccurrenceQueryConfig(filter_values=["US", "CA"], group_keys=["year"], count_alias="records")
    )
    assert several.predicates[0].op == "in"
    assert several.required_columns() == ["countrycode", "year"]
    assert several.aggregations[0].output_name == "records"

    unfiltered = assets._build_occurrence_query(assets.OccurrenceQueryConfig(filter_values=[]))
    assert unfiltered.predicates == []


def test_cloud_cover_query() -> None:
    assert assets._cloud_cover_query(None) is None
    assert assets._cloud_cover_query(20.0) == {"eo:cloud_cover": {"lt": 20.0}}


def test_filesystem_for_uses_s3_resource_only_for_s3() -> None:
    """
    Test that only s3:// locators get the configured Arrow filesystem.
    """
    filesystem = pafs.LocalFileSystem()
    s3 = SimpleNamespace(create_filesystem=lambda: filesystem)

    assert assets._filesystem_for("s3://bucket/dataset", s3) is filesystem
    assert assets._filesystem_for("/data/dataset", s3) is None
    assert assets._filesystem_for("gs://bucket/dataset", s3) is None


def test_error_and_success_outputs() -> None:
    """
    Test the outputs produced for skipped and rendered previews.
    """
    error_output = assets._create_error_output("No sentinel-2-l2a items found")
    assert error_output.value is None
    assert _metadata_value(error_output, "success") is False
    assert "No sentinel-2-l2a items" in str(_metadata_value(error_output, "error"))

    success_output = assets._create_success_output(path="/tmp/a.png", item_id="S2A_tile", asset_key="visual")
    assert success_output.value == "/tmp/a.png"
    assert _metadata_value(success_output, "success") is True
    assert _metadata_value(success_output, "item_id") == "S2A_tile"
    assert _metadata_value(success_output, "asset_key") == "visual"


def test_scene_preview_with_empty_search_returns_error_output(tmp_path: Path) -> None:
    """
    Test that an empty search result completes without raising.
    """
    settings = SettingsResource(stac_collection_id="sentinel-2-l2a", output_dir=str(tmp_path))

    output = assets.scene_preview(
        build_asset_context(), settings=settings, catalog_items=[], config=assets.ScenePreviewConfig()
    )

    assert output.value is None
    assert _metadata_value(output, "success") is False
    assert list(tmp_path.iterdir()) == []
