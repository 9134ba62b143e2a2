"""
Core services: document cache and value normalization.
"""
from .document_cache import CacheEntry, DocumentCache, cache_key
from .value_normalizer import TargetType, ValueNormalizer, looks_like_reference_path

__all__ = [
    "CacheEntry",
    "DocumentCache",
    "cache_key",
    "TargetType",
    "ValueNormalizer",
    "looks_like_reference_path",
]
