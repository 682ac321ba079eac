"""Data models for the tabular and raster workflows."""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import geopandas as gpd
from pydantic import BaseModel, Field as PydanticField, model_validator
from shapely.geometry import box, mapping


class BoundingRegion(BaseModel):
    """Axis-aligned WGS84 rectangle used as a spatial filter.

    :param min_lon: Western edge
    :param min_lat: Southern edge
    :param max_lon: Eastern edge
    :param max_lat: Northern edge
    """

    min_lon: float = PydanticField(..., ge=-180.0, le=180.0, description="Minimum longitude")
    min_lat: float = PydanticField(..., ge=-90.0, le=90.0, description="Minimum latitude")
    max_lon: float = PydanticField(..., ge=-180.0, le=180.0, description="Maximum longitude")
    max_lat: float = PydanticField(..., ge=-90.0, le=90.0, description="Maximum latitude")

    @model_validator(mode="after")
    def _check_ordering(self) -> "BoundingRegion":
        if self.min_lon > self.max_lon:
            raise ValueError(f"min_lon {self.min_lon} is greater than max_lon {self.max_lon}")
        if self.min_lat > self.max_lat:
            raise ValueError(f"min_lat {self.min_lat} is greater than max_lat {self.max_lat}")
        return self

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> "BoundingRegion":
        """Create region from a (min_lon, min_lat, max_lon, max_lat) sequence.

        :param bounds: Four numbers
        :returns: BoundingRegion instance
        """
        if len(bounds) != 4:
            raise ValueError(f"Expected 4 bounds, got {len(bounds)}")
        min_lon, min_lat, max_lon, max_lat = (float(b) for b in bounds)
        return cls(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    @classmethod
    def coerce(cls, region: "BoundingRegion | Mapping[str, Any] | Sequence[float]") -> "BoundingRegion":
        """Validate anything that looks like a region.

        :param region: BoundingRegion, mapping of edges, or bounds sequence
        :returns: BoundingRegion instance
        """
        if isinstance(region, cls):
            return region
        if isinstance(region, Mapping):
            return cls.model_validate(dict(region))
        return cls.from_bounds(region)

    @classmethod
    def from_geodataframe(cls, gdf: gpd.GeoDataFrame) -> "BoundingRegion":
        """Create region enclosing every geometry of a GeoDataFrame.

        Geometries are reprojected to EPSG:4326 first.

        :param gdf: GeoDataFrame
        :returns: BoundingRegion instance
        """
        if gdf.empty:
            raise ValueError("Cannot derive a bounding region from an empty GeoDataFrame")
        if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
            gdf = gdf.to_crs("EPSG:4326")
        return cls.from_bounds(gdf.total_bounds.tolist())

    def to_geometry(self) -> dict[str, Any]:
        """Return the region as a GeoJSON polygon."""
        return dict(mapping(box(*self.bounds)))

    def intersects(self, bbox: Sequence[float]) -> bool:
        min_lon, min_lat, max_lon, max_lat = bbox
        return not (
            max_lon < self.min_lon or min_lon > self.max_lon or max_lat < self.min_lat or min_lat > self.max_lat
        )


class Predicate(BaseModel):
    """Filter condition on a single column.

    :param column: Column name
    :param op: Comparison verb, e.g. "==", "in", "is_null"
    :param value: Comparison value; a list for membership verbs
    """

    column: str = PydanticField(..., description="Column the predicate applies to")
    op: str = PydanticField(default="==", description="Comparison verb")
    value: Any = PydanticField(default=None, description="Right-hand side value")


class Aggregation(BaseModel):
    """Aggregation expression.

    :param func: Aggregation function name
    :param column: Input column, None to count rows
    :param alias: Output column name
    """

    func: str = PydanticField(..., description="Aggregation function, e.g. count, sum, mean")
    column: str | None = PydanticField(default=None, description="Input column; None counts rows")
    alias: str | None = PydanticField(default=None, description="Output column name")

    @property
    def output_name(self) -> str:
        if self.alias:
            return self.alias
        return f"{self.column}_{self.func}" if self.column else self.func


class QueryDescriptor(BaseModel):
    """Declarative query evaluated lazily against a dataset handle.

    Building a descriptor never touches the network; rows are only transferred
    when the descriptor is materialized by ``dataset_ops.query``.

    :param predicates: Conjunction of filter predicates
    :param group_keys: Grouping columns
    :param aggregations: Aggregation expressions
    :param columns: Projection for non-aggregating queries
    :param limit: Maximum number of rows for non-aggregating queries
    """

    predicates: list[Predicate] = PydanticField(default_factory=list)
    group_keys: list[str] = PydanticField(default_factory=list)
    aggregations: list[Aggregation] = PydanticField(default_factory=list)
    columns: list[str] | None = PydanticField(default=None)
    limit: int | None = PydanticField(default=None, ge=0)

    @classmethod
    def count_by(
        cls,
        group_keys: Iterable[str],
        where: Mapping[str, Any] | None = None,
        alias: str = "n",
    ) -> "QueryDescriptor":
        """Build a filter, group and count query.

        List or tuple values in ``where`` become membership predicates.

        :param group_keys: Grouping columns
        :param where: Column to value equality filters
        :param alias: Name of the count column
        :returns: QueryDescriptor instance
        """
        predicates = [
            Predicate(column=column, op="in" if isinstance(value, list | tuple | set) else "==", value=value)
            for column, value in (where or {}).items()
        ]
        return cls(
            predicates=predicates,
            group_keys=list(group_keys),
            aggregations=[Aggregation(func="count", alias=alias)],
        )

    def required_columns(self) -> list[str]:
        """Columns that must be read to evaluate this query, in first-use order."""
        names: list[str] = [p.column for p in self.predicates]
        if self.aggregations or self.group_keys:
            names.extend(self.group_keys)
            names.extend(a.column for a in self.aggregations if a.column)
        elif self.columns is not None:
            names.extend(self.columns)
        return list(dict.fromkeys(names))


class CatalogItem(BaseModel):
    """Record returned by a catalog search, with unsigned asset hrefs.

    :param id: Item ID
    :param collection_id: Collection the item belongs to
    :param acquired_at: Acquisition time
    :param bbox: Item bounds
    :param properties: Item properties
    :param assets: Asset key to unsigned href
    """

    id: str = PydanticField(..., description="ID of the item")
    collection_id: str | None = PydanticField(default=None, description="Collection ID")
    acquired_at: datetime | None = PydanticField(default=None, description="Acquisition time")
    bbox: list[float] | None = PydanticField(default=None, description="Item bounds")
    properties: dict[str, Any] = PydanticField(default_factory=dict, description="Item properties")
    assets: dict[str, str] = PydanticField(default_factory=dict, description="Unsigned asset hrefs")

    @classmethod
    def from_pystac(cls, item: Any) -> "CatalogItem":
        """Create CatalogItem from a pystac Item.

        :param item: pystac Item
        :returns: CatalogItem instance
        """
        return cls(
            id=item.id,
            collection_id=item.collection_id,
            acquired_at=item.datetime,
            bbox=list(item.bbox) if item.bbox is not None else None,
            properties=dict(item.properties),
            assets={key: asset.href for key, asset in item.assets.items()},
        )


class SignedCatalogItem(BaseModel):
    """Catalog item whose asset hrefs carry a time-limited access token.

    Never persist these beyond the run that signed them.

    :param item: Unsigned source item
    :param assets: Asset key to signed href
    :param signed_at: Signing time
    :param expires_at: Token expiry time
    """

    item: CatalogItem
    assets: dict[str, str] = PydanticField(default_factory=dict, description="Signed asset hrefs")
    signed_at: datetime = PydanticField(..., description="When the hrefs were signed")
    expires_at: datetime = PydanticField(..., description="When the signature expires")

    @property
    def id(self) -> str:
        return self.item.id

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at
