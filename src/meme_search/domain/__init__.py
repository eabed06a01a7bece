"""Domain layer - meme records and their searchable projection."""

from meme_search.domain.model import UPDATABLE_FIELDS, Meme, MemeInput, SearchableRecord, flatten_keywords


__all__ = ["UPDATABLE_FIELDS", "Meme", "MemeInput", "SearchableRecord", "flatten_keywords"]
