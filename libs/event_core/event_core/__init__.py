# libs/event_core/event_core/__init__.py

from .exif import ExtractedMetadata, extract_metadata
from .cluster import (
    DEFAULT_GAP_SIGMA,
    cluster_into_events,
    generate_event_track,
    split_undated,
)

__all__ = [
    "ExtractedMetadata",
    "extract_metadata",
    "DEFAULT_GAP_SIGMA",
    "cluster_into_events",
    "generate_event_track",
    "split_undated",
]
