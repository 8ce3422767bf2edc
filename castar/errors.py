"""Error types raised by CaStar before any write reaches the database."""

from typing import Optional


class ValidationError(ValueError):
    """Input was rejected by validation; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field
