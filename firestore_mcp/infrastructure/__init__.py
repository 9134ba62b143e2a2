"""
Infrastructure layer for external service clients.
"""
from .firestore import FirestoreService, translate_error

__all__ = [
    "FirestoreService",
    "translate_error",
]
