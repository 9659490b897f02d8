"""Store directory abstraction: store display names and seller ownership."""

from marketplace.settings import store_directory_adapter

_directory_instance = None


def get_directory():
    """Return the configured store directory adapter (singleton).

    Uses FakeStoreDirectory by default. In production, configure via
    STORE_DIRECTORY_ADAPTER environment variable.
    """
    global _directory_instance
    if _directory_instance is None:
        adapter = store_directory_adapter()
        if adapter == "fake":
            from marketplace.directory.fake_adapter import FakeStoreDirectory

            _directory_instance = FakeStoreDirectory()
        else:
            raise ValueError(f"Unknown store directory adapter: {adapter}")
    return _directory_instance


def reset_directory():
    """Reset the directory singleton (useful for testing)."""
    global _directory_instance
    _directory_instance = None
