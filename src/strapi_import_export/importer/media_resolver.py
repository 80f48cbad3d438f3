"""Media reference resolution.

Turns a media reference from an input record into a file of the media store,
fetching and uploading remote files at most once per source path and run.
"""

import logging
import tempfile
from collections.abc import Sequence
from pathlib import Path

import httpx

from ..exceptions import FetchError, MediaError, StrapiError
from ..models.enums import FileType
from ..models.references import (
    MediaById,
    MediaByName,
    MediaByUrl,
    MediaDescriptor,
    MediaReference,
    StoredFile,
    UploadMetadata,
)
from ..protocols import MediaStore
from ..utils.files import UrlFileData, get_file_data_from_url, is_extension_allowed
from .run import KeyedLocks

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = "strapi-upload-"


class MediaResolver:
    """Find or import the file a media reference points to.

    Resolution order for a reference, first match wins:

    1. id: existing file, rejected (None) if its extension is not allowed
    2. url: existing file with the same hash part, else fetched and uploaded;
       URLs with a disallowed extension are never fetched
    3. name: existing file with that exact name, same extension check as ids

    Example:
        >>> resolver = MediaResolver(media_store, http_client)
        >>> file = await resolver.resolve(
        ...     MediaByUrl(url="https://x/y/pic.png"), [FileType.IMAGES]
        ... )
        >>> file.hash
        'y-pic_3f2a9c'
    """

    def __init__(
        self,
        media_store: MediaStore,
        http_client: httpx.AsyncClient,
        fetch_timeout: float = 30.0,
    ) -> None:
        self.media_store = media_store
        self._client = http_client
        self.fetch_timeout = fetch_timeout
        self._default_locks = KeyedLocks()

    async def resolve(
        self,
        ref: MediaReference,
        allowed_types: Sequence[FileType],
        locks: KeyedLocks | None = None,
    ) -> StoredFile | None:
        """Resolve a reference to a stored file.

        Args:
            ref: Media reference
            allowed_types: File types accepted by the target field
            locks: Per-run locks keyed by hash part; resolutions of the same
                URL wait for each other so the second one finds the first
                one's upload

        Returns:
            Stored file, or None when nothing allowed matches

        Raises:
            FetchError: If a remote file cannot be downloaded
            MediaError: If the media store refuses the upload
        """
        if isinstance(ref, MediaDescriptor):
            for candidate in ref.candidates():
                file = await self.resolve(candidate, allowed_types, locks)
                if file is not None:
                    return file
            return None

        if isinstance(ref, MediaById):
            file = await self.media_store.find_file(id=ref.id)
            return self._check_extension(file, allowed_types, f"id {ref.id}")

        if isinstance(ref, MediaByName):
            file = await self.media_store.find_file(name=ref.name)
            return self._check_extension(file, allowed_types, f"name {ref.name!r}")

        if locks is None:
            locks = self._default_locks
        return await self._resolve_url(ref, allowed_types, locks)

    @staticmethod
    def _check_extension(
        file: StoredFile | None,
        allowed_types: Sequence[FileType],
        source: str,
    ) -> StoredFile | None:
        if file is None:
            logger.debug(f"No media file found for {source}")
            return None
        if not is_extension_allowed(file.extension, allowed_types):
            logger.debug(
                f"Ignoring media file #{file.id} ({file.name}) for {source}: "
                f"extension {file.extension!r} not in {[t.value for t in allowed_types]}"
            )
            return None
        return file

    async def _resolve_url(
        self,
        ref: MediaByUrl,
        allowed_types: Sequence[FileType],
        locks: KeyedLocks,
    ) -> StoredFile | None:
        try:
            file_data = get_file_data_from_url(ref.url)
        except ValueError as e:
            logger.error(f"Invalid media URL {ref.url!r}: {e}")
            return None

        if not is_extension_allowed(file_data.extension, allowed_types):
            logger.debug(
                f"Not fetching {ref.url}: extension {file_data.extension!r} "
                f"not in {[t.value for t in allowed_types]}"
            )
            return None

        async with locks(file_data.hash_part):
            existing = await self.media_store.find_file(hash_prefix=file_data.hash_part)
            if existing is not None:
                logger.debug(f"Reusing media file #{existing.id} for {ref.url}")
                return existing

            return await self._import_file(ref, file_data)

    async def _import_file(self, ref: MediaByUrl, file_data: UrlFileData) -> StoredFile:
        """Fetch a remote file into a temporary directory and upload it.

        The temporary directory is removed on every exit path.
        """
        with tempfile.TemporaryDirectory(prefix=TEMP_DIR_PREFIX) as tmp_dir:
            file_path = Path(tmp_dir) / file_data.name
            mime, size = await self._fetch_to_file(file_data.url, file_path)

            metadata = UploadMetadata(
                name=ref.name or file_data.name,
                alternative_text=ref.alternative_text or file_data.name,
                caption=ref.caption or file_data.name,
                mime=mime,
                size=size,
            )

            try:
                uploaded = await self.media_store.upload(file_path, metadata)
            except StrapiError:
                logger.error(f"Upload of {ref.url} failed", exc_info=True)
                raise
            except Exception as e:
                logger.error(f"Upload of {ref.url} failed", exc_info=True)
                raise MediaError(
                    f"Upload of {ref.url} failed: {e}", details={"source": ref.url}
                ) from e

        logger.info(f"Imported media file #{uploaded.id} ({uploaded.name}) from {ref.url}")
        return uploaded

    async def _fetch_to_file(self, url: str, file_path: Path) -> tuple[str | None, int]:
        """Stream a URL to disk.

        Returns:
            (MIME type from Content-Type, size in bytes)

        Raises:
            FetchError: On a non-2xx answer or a transport error
        """
        try:
            async with self._client.stream(
                "GET", url, timeout=self.fetch_timeout, follow_redirects=True
            ) as response:
                if not response.is_success:
                    raise FetchError(
                        f"Tried to fetch file from url {url} but failed with "
                        f"status code {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                        details={"source": url},
                    )

                content_type = response.headers.get("content-type")
                mime = content_type.split(";", 1)[0].strip() if content_type else None

                size = 0
                with open(file_path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                        size += len(chunk)
        except httpx.HTTPError as e:
            raise FetchError(
                f"Tried to fetch file from url {url} but failed: {e}",
                url=url,
                details={"source": url},
            ) from e

        logger.debug(f"Fetched {size} bytes from {url}")
        return mime, size
