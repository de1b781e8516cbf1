"""
Error taxonomy for the transcript pipeline.

Only InputError is fatal to a request. Every other error is recovered
locally by the component that raises it.
"""


class TruthTableError(Exception):
    """Base class for all pipeline errors."""


class InputError(TruthTableError):
    """Webhook or request payload cannot be processed. Never retried."""


class ExtractionError(TruthTableError):
    """Language-model extraction failed or returned unusable output."""


class EmbeddingError(TruthTableError):
    """A single embedding vector could not be generated."""


class PersistenceError(TruthTableError):
    """A read or write against one of the stores failed."""

    def __init__(self, message: str, store: str = "", user_id: str = "", call_id: str = ""):
        super().__init__(message)
        self.store = store
        self.user_id = user_id
        self.call_id = call_id


class IdentityLookupError(TruthTableError, LookupError):
    """Identity lookup failed; callers keep the original identifier."""
