"""Rendering sinks for materialized tables and raster handles."""

from pathlib import Path
from typing import Any

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
from numpy.typing import NDArray  # noqa: E402

from cloudnative_workflows.geospatial.raster_ops import RasterHandle  # noqa: E402


def render_table(
    df: pd.DataFrame,
    x: str,
    y: str,
    path: str | Path,
    hue: str | None = None,
    title: str | None = None,
) -> Path:
    """Plot ``y`` over ``x``, one line per ``hue`` value.

    :param df: Materialized result
    :param x: Column on the horizontal axis
    :param y: Column on the vertical axis
    :param path: Output PNG path
    :param hue: Optional column splitting the data into lines
    :param title: Optional figure title
    :returns: Path of the written image
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(10, 6))
    try:
        if df.empty:
            ax.text(0.5, 0.5, "No data", ha="center", va="center", transform=ax.transAxes)
        elif hue:
            wide = df.pivot_table(index=x, columns=hue, values=y, aggfunc="sum").sort_index()
            wide.plot(ax=ax)
            ax.legend(title=hue)
        else:
            df.sort_values(x).plot(x=x, y=y, ax=ax, legend=False)
        ax.set_xlabel(x)
        ax.set_ylabel(y)
        if title:
            ax.set_title(title)
        fig.tight_layout()
        fig.savefig(path, dpi=100)
    finally:
        plt.close(fig)
    return path


def _stretch(data: NDArray[Any]) -> NDArray[np.floating]:
    """Linear 2-98 percentile stretch to [0, 1], NaN and nodata to 0."""
    values = data.astype("float32")
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return np.zeros_like(values)
    low, high = np.percentile(finite, (2, 98))
    if high <= low:
        high = low + 1.0
    stretched = np.clip((values - low) / (high - low), 0.0, 1.0)
    return np.nan_to_num(stretched, nan=0.0)


def render_raster(
    handle: RasterHandle,
    path: str | Path,
    max_size: int = 1024,
    title: str | None = None,
    cmap: str = "viridis",
) -> Path:
    """Render a raster handle to an image.

    Three or more bands are drawn as an RGB composite, otherwise the first
    band is drawn with a colormap. Only a decimated overview is fetched.

    :param handle: Raster handle
    :param path: Output PNG path
    :param max_size: Maximum width or height of the rendered overview
    :param title: Optional figure title
    :param cmap: Colormap for single-band rasters
    :returns: Path of the written image
    :raises TransferError: If pixel blocks cannot be fetched
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = handle.overview(max_size=max_size)

    fig, ax = plt.subplots(figsize=(8, 8))
    try:
        if data.shape[0] >= 3:
            rgb = np.dstack([_stretch(band) for band in data[:3]])
            ax.imshow(rgb)
        else:
            image = ax.imshow(data[0].astype("float32"), cmap=cmap)
            fig.colorbar(image, ax=ax, shrink=0.7)
        ax.set_axis_off()
        if title:
            ax.set_title(title)
        fig.tight_layout()
        fig.savefig(path, dpi=100)
    finally:
        plt.close(fig)
    return path
