"""Service layer - orchestration of search and catalog mutations."""

from meme_search.service_layer.catalog_service import CatalogService
from meme_search.service_layer.search_service import MemeSearchService


__all__ = ["CatalogService", "MemeSearchService"]
