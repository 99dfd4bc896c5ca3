"""
Search Module

Paginated access to the external search API and cross-referencing of the
records it returns
"""

from investigation_search.search.search_client import (
    PaginatedSearchClient,
    PaginationResult,
    SearchAPIError,
    SearchPage
)
from investigation_search.search.cross_reference import (
    CrossReferenceStore,
    StoredRecord
)

__all__ = [
    'PaginatedSearchClient',
    'PaginationResult',
    'SearchAPIError',
    'SearchPage',
    'CrossReferenceStore',
    'StoredRecord'
]
