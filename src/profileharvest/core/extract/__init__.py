"""Detail extraction from profile pages."""

from .profile import (
    PRELOAD_READY_JS,
    DetailRecord,
    ExtractionError,
    build_detail,
    extract_profile_details,
    find_preload_json,
    parse_preload,
)

__all__ = [
    "PRELOAD_READY_JS",
    "DetailRecord",
    "ExtractionError",
    "build_detail",
    "extract_profile_details",
    "find_preload_json",
    "parse_preload",
]
