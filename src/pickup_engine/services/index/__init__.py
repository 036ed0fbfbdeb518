"""In-memory pickup region index."""

from .location_index import IndexEntry, IndexMetadata, IndexSnapshot, LocationIndex, RegionMatch

__all__ = ["IndexEntry", "IndexMetadata", "IndexSnapshot", "LocationIndex", "RegionMatch"]
