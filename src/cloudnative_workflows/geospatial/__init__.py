"""
Geospatial operations for catalog search and remote raster access.

This module contains:
- STAC operations (search, signing, asset selection)
- Raster operations (lazy virtual-file reads, region masking, overviews)
"""
