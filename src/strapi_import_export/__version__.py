"""Version information for strapi-import-export."""

__version__ = "0.1.0"
