"""Lazy remote raster access through GDAL's virtual file system."""

from typing import Any

import numpy as np
import rasterio
import rasterio.warp
from numpy.typing import NDArray
from rasterio.errors import RasterioIOError
from rasterio.mask import geometry_mask
from rasterio.windows import Window, from_bounds
from shapely.geometry import shape

from cloudnative_workflows.config.constants import RASTER_ENV_OPTIONS, VSI_CURL_PREFIX
from cloudnative_workflows.exceptions import TransferError
from cloudnative_workflows.models.models import BoundingRegion


def to_virtual_locator(url: str) -> str:
    """Prefix an HTTP(S) URL with the virtual remote file prefix.

    Local paths and locators that already carry a ``/vsi`` prefix are returned unchanged.

    :param url: Signed URL or local path
    :returns: Locator suitable for rasterio.open
    """
    if url.startswith(("http://", "https://")):
        return f"{VSI_CURL_PREFIX}{url}"
    return url


class RasterHandle:
    """Reference to remote gridded pixel data.

    Opening the handle issues no request. The dataset is opened on the first
    metadata or pixel access, and pixel blocks are fetched with range requests
    as they are read. Transport failures surface as :class:`TransferError`
    at that point.
    """

    def __init__(self, locator: str, env_options: dict[str, Any] | None = None) -> None:
        self.locator = locator
        self.env_options = {**RASTER_ENV_OPTIONS, **(env_options or {})}
        self._dataset: Any = None

    def __enter__(self) -> "RasterHandle":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self._dataset is not None else "lazy"
        return f"RasterHandle({self.locator!r}, {state})"

    @property
    def is_open(self) -> bool:
        return self._dataset is not None

    def _source(self) -> Any:
        if self._dataset is None:
            try:
                with rasterio.Env(**self.env_options):
                    self._dataset = rasterio.open(self.locator)
            except RasterioIOError as e:
                raise TransferError(f"Could not open raster {self.locator}: {e}") from e
        return self._dataset

    @property
    def profile(self) -> dict[str, Any]:
        """Raster metadata: size, band count, dtype, CRS, transform, bounds."""
        src = self._source()
        return {
            "width": src.width,
            "height": src.height,
            "count": src.count,
            "dtype": src.dtypes[0],
            "crs": src.crs.to_string() if src.crs else None,
            "transform": src.transform,
            "bounds": tuple(src.bounds),
            "overviews": src.overviews(1),
        }

    def read(
        self,
        indexes: int | list[int] | None = 1,
        window: Window | None = None,
        out_shape: tuple[int, ...] | None = None,
    ) -> NDArray[Any]:
        """Read pixel blocks.

        :param indexes: Band index or list of band indexes; None reads all bands
        :param window: Optional pixel window
        :param out_shape: Optional output shape, decimated reads use overviews
        :returns: Pixel array
        :raises TransferError: If the remote read fails
        """
        src = self._source()
        try:
            with rasterio.Env(**self.env_options):
                return src.read(indexes, window=window, out_shape=out_shape)
        except RasterioIOError as e:
            raise TransferError(f"Could not read pixels from {self.locator}: {e}") from e

    def read_region(self, region: BoundingRegion, band: int = 1, geom_crs: str = "EPSG:4326") -> NDArray[np.floating]:
        """Read the pixels of one band covered by a region.

        Pixels outside the region geometry are set to NaN.

        :param region: Bounding region
        :param band: Band index
        :param geom_crs: CRS of the region coordinates
        :returns: Masked float32 array
        """
        src = self._source()
        geom_dict = region.to_geometry()
        transformed = rasterio.warp.transform_geom(src_crs=geom_crs, dst_crs=src.crs, geom=geom_dict)
        region_shape = shape(transformed)
        window = from_bounds(*region_shape.bounds, transform=src.transform)
        data = self.read(band, window=window).astype("float32")
        window_transform = src.window_transform(window)
        mask = geometry_mask([region_shape], transform=window_transform, invert=True, out_shape=data.shape)
        data[~mask] = np.nan
        return data

    def overview(self, max_size: int = 1024, indexes: list[int] | None = None) -> NDArray[Any]:
        """Read a decimated copy of the raster no larger than ``max_size`` per side.

        :param max_size: Maximum width or height in pixels
        :param indexes: Band indexes, defaults to the first three bands
        :returns: Array of shape (bands, height, width)
        """
        src = self._source()
        indexes = indexes or list(range(1, min(src.count, 3) + 1))
        scale = max(src.width, src.height) / max_size
        if scale > 1:
            out_shape = (len(indexes), max(1, int(src.height / scale)), max(1, int(src.width / scale)))
        else:
            out_shape = (len(indexes), src.height, src.width)
        return self.read(indexes, out_shape=out_shape)

    def close(self) -> None:
        if self._dataset is not None:
            self._dataset.close()
            self._dataset = None


def open_raster(signed_locator: str, env_options: dict[str, Any] | None = None) -> RasterHandle:
    """Create a lazy handle on a remote raster.

    :param signed_locator: Signed HTTP(S) URL, virtual locator, or local path
    :param env_options: Extra GDAL configuration options
    :returns: RasterHandle; nothing is fetched until pixels or metadata are accessed
    """
    return RasterHandle(to_virtual_locator(signed_locator), env_options=env_options)
