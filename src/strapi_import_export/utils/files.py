"""File type and remote file URL helpers.

Extension allow-lists mirror Strapi's media ``allowedTypes`` categories.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from slugify import slugify

from ..models.enums import FileType, parse_file_types

ALLOWED_AUDIOS = frozenset({"mp3", "wav", "ogg"})
ALLOWED_IMAGES = frozenset({"png", "gif", "jpg", "jpeg", "svg", "bmp", "tif", "tiff"})
ALLOWED_VIDEOS = frozenset({"mp4", "avi"})

_ALLOW_LISTS: dict[FileType, frozenset[str] | None] = {
    FileType.AUDIOS: ALLOWED_AUDIOS,
    FileType.IMAGES: ALLOWED_IMAGES,
    FileType.VIDEOS: ALLOWED_VIDEOS,
    FileType.FILES: None,  # any extension
}


@dataclass(frozen=True)
class UrlFileData:
    """File information derived from a remote URL.

    Attributes:
        url: The URL as given
        name: Local file name (``/Y/pic.png`` -> ``y-pic.png``)
        extension: Lowercased extension without dot, empty if none
        hash_part: Slug of the path without extension (``/y/pic.png`` -> ``y-pic``)
    """

    url: str
    name: str
    extension: str
    hash_part: str


def is_extension_allowed(extension: str, allowed_types: Iterable[FileType]) -> bool:
    """Check an extension (without dot) against a set of file types.

    Example:
        >>> is_extension_allowed("png", [FileType.IMAGES])
        True
        >>> is_extension_allowed("exe", [FileType.IMAGES, FileType.VIDEOS])
        False
    """
    ext = extension.lower().lstrip(".")
    for file_type in allowed_types:
        allow_list = _ALLOW_LISTS[FileType(file_type)]
        if allow_list is None or ext in allow_list:
            return True
    return False


def get_hash_part(path: str) -> str:
    """Slug a URL path without its extension.

    The media store names uploaded files ``<slug>_<suffix>``, so this prefix
    identifies a file imported earlier from the same path.
    """
    pure = PurePosixPath(path)
    stem_path = str(pure.with_suffix("")) if pure.suffix else path
    return slugify(stem_path)


def get_file_data_from_url(raw_url: str) -> UrlFileData:
    """Derive local file name, extension and hash part from a URL.

    Args:
        raw_url: Absolute http(s) URL, optionally percent-encoded

    Returns:
        UrlFileData for the URL

    Raises:
        ValueError: If the URL is not an absolute http(s) URL with a path

    Example:
        >>> data = get_file_data_from_url("https://x/y/pic.png")
        >>> data.name, data.extension, data.hash_part
        ('y-pic.png', 'png', 'y-pic')
    """
    parsed = urlparse(unquote(raw_url))
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not an absolute http(s) URL: {raw_url}")

    path = parsed.path
    name = path.lower().strip("/").replace("/", "-")
    if not name:
        raise ValueError(f"URL has no file path: {raw_url}")

    return UrlFileData(
        url=raw_url,
        name=name,
        extension=PurePosixPath(path).suffix.lstrip(".").lower(),
        hash_part=get_hash_part(path),
    )
