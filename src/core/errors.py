"""
Error types for the quote engine.

All errors raised by the core and the services derive from QuoteEngineError,
so the API layer can map them to HTTP status codes in one place
(see src/server/main.py).
"""


class QuoteEngineError(Exception):
    """Base class for all domain errors."""


class ValidationError(QuoteEngineError):
    """Invalid input: missing ids, negative discount, unknown grade, malformed analysis."""


class NotFoundError(QuoteEngineError):
    """Unknown quote id or version id."""


class PersistenceError(QuoteEngineError):
    """The underlying store failed during a transactional step."""
