class PatrikaError(Exception):
    """Base application exception."""


class FeedFetchError(PatrikaError):
    """Raised when a feed source cannot be retrieved or parsed."""


class StoreUnavailableError(PatrikaError):
    """Raised when the news store cannot be reached or times out."""


class DuplicateItemError(PatrikaError):
    """Raised when an insert collides with an existing (title, origin) pair."""


class ServiceUnavailableError(PatrikaError):
    """Raised when neither the store nor the fallback cache can answer a read."""


class BrokerUnavailableError(PatrikaError):
    """Raised when the job broker cannot be reached."""


class InvalidItemError(PatrikaError):
    """Raised when the store rejects one item's values (too long, wrong type)."""
