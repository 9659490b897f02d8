"""Store directory port — the marketplace's view of the store catalogue.

Stores, their display names and the sellers who own them are managed by
another part of the platform. The domain only asks the questions below.
"""

from abc import ABC, abstractmethod


class StoreDirectoryPort(ABC):
    """Abstract interface for store directory adapters."""

    @abstractmethod
    def store_name(self, store_id: str) -> str | None:
        """Display name of the store, or None when the store is unknown."""
        ...

    @abstractmethod
    def seller_of(self, store_id: str) -> str | None:
        """Identifier of the seller who owns the store, or None."""
        ...

    def seller_owns_store(self, seller_id: str, store_id: str) -> bool:
        owner = self.seller_of(store_id)
        return owner is not None and str(owner) == str(seller_id)
