"""Store port - the remote structured-data collaborator.

The core only talks to the hosted backend through this interface:
record operations over four collections plus a best-effort insert feed.

Interface Contract:
- Documents go in and come out as plain dicts; stored records carry a
  string ``id`` and a ``created_at`` assigned by the store
- Filters use the MongoDB query subset: equality, $ne, $in, $nin,
  $gt, $gte, $lt, $lte and $or
- Sort is a list of (field, 1 | -1) pairs
- Unique-key violations raise ConflictError, any other failure raises
  TransientIOError
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

Document = Dict[str, Any]
Filter = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


class Collections:
    PROFILES = "profiles"
    SWIPES = "swipes"
    MATCHES = "matches"
    MESSAGES = "messages"


class Store(ABC):
    """Abstract base class for store implementations."""

    @abstractmethod
    async def insert_one(self, collection: str, document: Document) -> Document:
        """Insert ``document`` and return the stored record.

        A caller-supplied ``id`` is kept; otherwise one is generated.

        Raises:
            ConflictError: If a unique key already exists
            TransientIOError: If the call fails
        """

    @abstractmethod
    async def find(
        self,
        collection: str,
        filter: Filter,
        *,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return every record matching ``filter``."""

    async def find_one(
        self,
        collection: str,
        filter: Filter,
        *,
        sort: Optional[Sort] = None,
    ) -> Optional[Document]:
        docs = await self.find(collection, filter, sort=sort, limit=1)
        return docs[0] if docs else None

    @abstractmethod
    async def update_one(self, collection: str, filter: Filter, changes: Document) -> Optional[Document]:
        """Set ``changes`` on the first matching record and return it, or None."""

    @abstractmethod
    async def delete_many(self, collection: str, filter: Filter) -> int:
        """Delete every matching record and return how many were removed."""

    @abstractmethod
    def subscribe(self, collection: str, filter: Filter) -> AsyncIterator[Document]:
        """Yield each record inserted into ``collection`` that matches ``filter``.

        Best-effort: implementations may raise TransientIOError when the
        feed cannot be established or breaks. Callers must not depend on it.
        """

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
