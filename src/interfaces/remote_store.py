"""Abstract base class for the remote document store.

The managed backend (document database with live queries) is an external
collaborator.  The data layer only needs two things from it: a one-shot
query and a long-lived subscription that pushes a fresh result set every
time the matching documents change.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from src.models.remote import Document, QueryDescriptor

Unsubscribe = Callable[[], None]
"""Zero-argument function that cancels a remote subscription."""


class IRemoteStore(ABC):
    """Contract for the remote document store client."""

    @abstractmethod
    async def query(self, descriptor: QueryDescriptor) -> list[Document]:
        """Run *descriptor* once and return the matching documents.

        Raises
        ------
        RemoteStoreError
            If the backend rejects or fails the query.
        """

    @abstractmethod
    def subscribe(
        self,
        descriptor: QueryDescriptor,
        on_update: Callable[[list[Document]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Unsubscribe:
        """Start a live query.

        *on_update* receives the full matching result set on every change
        (and once right after subscribing).  Backend SDKs may call it from
        a background thread.  *on_error* receives errors from the live
        channel; the subscription is not cancelled automatically.

        Returns
        -------
        Unsubscribe
            Function that cancels the subscription.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""
