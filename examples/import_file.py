#!/usr/bin/env python3
"""Import a JSON or CSV File into a Strapi Collection

Usage:
    python import_file.py articles.csv api::article.article

Environment Variables:
    STRAPI_BASE_URL: Strapi instance URL (e.g. http://localhost:1337)
    STRAPI_API_TOKEN: API token with write access to the collection
    STRAPI_IMPORT_UNIQUE_IDENTIFIER_FIELD: Field matching existing entries (optional)
    STRAPI_IMPORT_MAX_CONCURRENCY: Records imported at once (optional)
"""

import asyncio
import logging
import sys
from pathlib import Path

from strapi_import_export import ConfigFactory, EntryImporter, StrapiError
from strapi_import_export.stores import StrapiStores


async def run_import(path: Path, collection: str) -> bool:
    """Import one file and print a per-record report.

    Returns:
        True if every record was imported
    """
    import_config = ConfigFactory.create_import_config()

    async with StrapiStores.from_env() as stores:
        async with EntryImporter(stores.entities, stores.media, config=import_config) as importer:
            result = await importer.import_data(path.read_bytes(), collection, filename=path.name)

    print(f"  {result.created} created, {result.updated} updated, {result.failed} failed")
    for failure in result.failures():
        print(f"  Record {failure.index}: {failure.error_type}: {failure.reason}")

    return result.success


def main() -> None:
    """Parse arguments and run the import."""
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    path, collection = Path(sys.argv[1]), sys.argv[2]

    print(f"Importing {path} into {collection}")
    print("=" * 60)

    try:
        ok = asyncio.run(run_import(path, collection))
    except StrapiError as e:
        print(f"Import failed: {e}")
        sys.exit(1)

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
