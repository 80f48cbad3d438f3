"""Utility modules for strapi-import-export.

This package contains helper utilities including:
- File type allow-lists and URL file data
- UID handling
"""

from .files import (
    UrlFileData,
    get_file_data_from_url,
    get_hash_part,
    is_extension_allowed,
    parse_file_types,
)
from .uid import extract_model_name, uid_to_endpoint

__all__ = [
    # File utilities
    "UrlFileData",
    "get_file_data_from_url",
    "get_hash_part",
    "is_extension_allowed",
    "parse_file_types",
    # UID utilities
    "extract_model_name",
    "uid_to_endpoint",
]
