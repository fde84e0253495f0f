"""Index search over stored records."""

from indexsync.search.facade import RecordLoader, SearchFacade

__all__ = ["RecordLoader", "SearchFacade"]
