"""Fake store directory — in-memory stores for testing and development."""

from marketplace.directory.port import StoreDirectoryPort


class FakeStoreDirectory(StoreDirectoryPort):
    def __init__(self):
        self._stores: dict[str, dict] = {}

    def register_store(self, store_id: str, name: str | None, seller_id: str | None = None) -> None:
        self._stores[str(store_id)] = {"name": name, "seller_id": seller_id}

    def clear(self) -> None:
        self._stores.clear()

    def store_name(self, store_id: str) -> str | None:
        store = self._stores.get(str(store_id))
        return store["name"] if store else None

    def seller_of(self, store_id: str) -> str | None:
        store = self._stores.get(str(store_id))
        return store["seller_id"] if store else None
