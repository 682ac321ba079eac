import io
import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pandas as pd
import pytest

from cloudnative_workflows import storage
from cloudnative_workflows.config.constants import DEFAULT_BOUNDING_REGION


class FakeS3Client:
    def __init__(self) -> None:
        self.upload_calls: list[dict[str, Any]] = []
        self.closed = False

    def upload_fileobj(self, fileobj: io.BytesIO, **kwargs: Any) -> None:
        self.upload_calls.append({"Body": fileobj.read(), **kwargs})

    def close(self) -> None:
        self.closed = True


class FakeS3Resource:
    def __init__(self) -> None:
        self.client = FakeS3Client()
        self.anonymous: list[bool | None] = []

    def get_client(self, anonymous: bool | None = None) -> FakeS3Client:
        self.anonymous.append(anonymous)
        return self.client


@pytest.fixture
def result() -> pd.DataFrame:
    return pd.DataFrame({"kingdom": ["Animalia", "Plantae"], "year": [2020, 2020], "n": [2, 1]})


def test_cache_result_writes_local_parquet(tmp_path: Path, fake_context: Any, result: pd.DataFrame) -> None:
    """
    Test that results are cached under the output directory when no bucket is configured.
    """
    settings = SimpleNamespace(cache_bucket_name=None, get_output_dir=lambda: tmp_path)

    uri = storage.cache_result(fake_context, result, settings, FakeS3Resource(), "occurrence_counts")

    assert uri == str(tmp_path / "occurrence_counts.parquet")
    pd.testing.assert_frame_equal(pd.read_parquet(uri), result)


def test_cache_result_uploads_to_bucket(fake_context: Any, result: pd.DataFrame) -> None:
    """
    Test that cache_result correctly writes Parquet to S3.

    Verifies:
    - Correct S3 key format
    - Parquet content is written
    - Correct content type
    - A signed client is requested and closed afterwards
    """
    settings = SimpleNamespace(cache_bucket_name="test-bucket", cache_prefix="/cache/")
    s3_resource = FakeS3Resource()

    uri = storage.cache_result(fake_context, result, settings, s3_resource, "occurrence_counts")

    assert uri == "s3://test-bucket/cache/occurrence_counts.parquet"
    assert s3_resource.anonymous == [False]
    assert s3_resource.client.closed
    call = s3_resource.client.upload_calls[0]
    assert call["Bucket"] == "test-bucket"
    assert call["Key"] == "cache/occurrence_counts.parquet"
    assert call["ExtraArgs"] == {"ContentType": "application/parquet"}
    pd.testing.assert_frame_equal(pd.read_parquet(io.BytesIO(call["Body"])), result)


def test_cache_result_leaves_passed_client_open(fake_context: Any, result: pd.DataFrame) -> None:
    settings = SimpleNamespace(cache_bucket_name="test-bucket", cache_prefix=None)
    client = FakeS3Client()

    storage.cache_result(fake_context, result, settings, FakeS3Resource(), "counts", s3_client=client)

    assert client.upload_calls[0]["Key"] == "cache/counts.parquet"
    assert not client.closed


def test_load_bounding_region_defaults(fake_context: Any) -> None:
    region = storage.load_bounding_region(fake_context)
    assert region.bounds == DEFAULT_BOUNDING_REGION


def test_load_bounding_region_from_geojson(tmp_path: Path, fake_context: Any) -> None:
    """
    Test that a region is derived from the total bounds of a vector file.
    """
    geojson = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"name": "a"},
                "geometry": {"type": "Point", "coordinates": [10.0, 45.0]},
            },
            {
                "type": "Feature",
                "properties": {"name": "b"},
                "geometry": {"type": "Polygon", "coordinates": [[[11, 46], [12, 46], [12, 47], [11, 47], [11, 46]]]},
            },
        ],
    }
    source = tmp_path / "region.geojson"
    source.write_text(json.dumps(geojson))

    region = storage.load_bounding_region(fake_context, str(source))

    assert region.bounds == pytest.approx((10.0, 45.0, 12.0, 47.0))
