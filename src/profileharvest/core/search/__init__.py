"""Search - query identity, record summaries, input sanitization.

The paginated client lives in ``profileharvest.core.search.client``.
"""

from .models import Query, RecordId, RecordSummary, SearchPage
from .sanitize import sanitize_input

__all__ = [
    "Query",
    "RecordId",
    "RecordSummary",
    "SearchPage",
    "sanitize_input",
]
