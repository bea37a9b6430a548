"""
Search Engine Errors
Exception taxonomy shared by the match engines and the orchestrator.
"""


class SearchEngineError(Exception):
    """Base exception for search engine errors."""

    pass


class EmptyInput(SearchEngineError):
    """Raised when text to embed is empty or whitespace-only."""

    pass


class ProviderError(SearchEngineError):
    """
    Raised when an upstream provider (embeddings or LLM) fails.

    Wraps the original failure so callers can degrade instead of crash.
    """

    def __init__(self, message: str, provider: str = "unknown", cause: Exception = None):
        self.provider = provider
        self.cause = cause
        super().__init__(message)


class SessionExpired(SearchEngineError):
    """Raised when a search session is missing or past its inactivity window."""

    def __init__(self, session_key: str):
        self.session_key = session_key
        super().__init__(f"Search session expired or not found: {session_key}")


class OwnerIsolationViolation(SearchEngineError):
    """Raised when a result belonging to another owner reaches a query."""

    def __init__(self, expected_owner: str, actual_owner: str, item_id: str = None):
        self.expected_owner = expected_owner
        self.actual_owner = actual_owner
        self.item_id = item_id
        super().__init__(
            f"Owner isolation violated: item {item_id} belongs to {actual_owner}, "
            f"query owner is {expected_owner}"
        )


class ItemStoreError(SearchEngineError):
    """Raised when the item store cannot be read."""

    pass
