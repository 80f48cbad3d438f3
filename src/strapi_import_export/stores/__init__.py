"""Bundled entity and media store implementations.

- ``InMemoryEntityStore`` / ``InMemoryMediaStore``: dictionaries, for dry
  runs and tests
- ``StrapiEntityStore`` / ``StrapiMediaStore``: the Strapi REST API, usually
  built together through ``StrapiStores``
"""

from .memory import InMemoryEntityStore, InMemoryMediaStore
from .strapi import StrapiEntityStore, StrapiMediaStore, StrapiRestClient, StrapiStores

__all__ = [
    # In-memory
    "InMemoryEntityStore",
    "InMemoryMediaStore",
    # Strapi REST
    "StrapiEntityStore",
    "StrapiMediaStore",
    "StrapiRestClient",
    "StrapiStores",
]
