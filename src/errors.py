"""Error taxonomy for the order pipeline.

Validation errors (``PrecisionError``, ``InvalidAddressError``,
``SerializationError``) signal bad input and always propagate.  Collaborator
errors (``SigningError``, ``SubmissionError``) are recorded on the order
record they belong to.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence


class GridSignerError(Exception):
    """Base class for every error raised by this package."""


class PrecisionError(GridSignerError, ValueError):
    """Amount cannot be represented in token base units."""


class InvalidAddressError(GridSignerError, ValueError):
    def __init__(self, field: str, value: object):
        super().__init__(f"Invalid {field} address: {value!r}")
        self.field = field
        self.value = value


class SerializationError(GridSignerError, ValueError):
    def __init__(self, field: str, value: object):
        super().__init__(f"Cannot serialize {field}: {value!r}")
        self.field = field
        self.value = value


class SigningError(GridSignerError):
    def __init__(self, reason: str, *, cause: Optional[BaseException] = None):
        super().__init__(f"Signing failed: {reason}")
        self.reason = reason
        self.cause = cause


class SubmissionError(GridSignerError):
    """Order-matching service refused the order or could not be reached.

    ``network`` is true when no response was received at all.  In that case
    the order may or may not have reached the service.
    """

    def __init__(self, status: Optional[int], message: str, *, network: bool = False):
        label = "network error" if network else f"HTTP {status}"
        super().__init__(f"Submission failed ({label}): {message}")
        self.status = status
        self.message = message
        self.network = network

    @property
    def retryable(self) -> bool:
        if self.network:
            return True
        return self.status is not None and (self.status == 429 or self.status >= 500)


class InsufficientBalanceError(GridSignerError):
    def __init__(self, symbol: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient {symbol} balance. Need {required} but have {available} "
            f"(short {required - available})"
        )
        self.symbol = symbol
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> Decimal:
        return self.required - self.available


class InvalidTransitionError(GridSignerError):
    def __init__(self, record_id: str, current: object, target: object):
        super().__init__(f"Record {record_id} cannot move from {current} to {target}")
        self.record_id = record_id
        self.current = current
        self.target = target


class TokenNotFoundError(GridSignerError, KeyError):
    def __init__(self, symbol: str, suggestions: Sequence[str] = ()):
        hint = f" (did you mean: {', '.join(suggestions)})" if suggestions else ""
        super().__init__(f"Unknown token '{symbol}'{hint}")
        self.symbol = symbol
        self.suggestions = list(suggestions)

    def __str__(self) -> str:
        return self.args[0]


class CollaboratorError(GridSignerError):
    """A fail-fast third-party call (token list, quote, suggestions) failed."""

    def __init__(self, service: str, message: str, status: Optional[int] = None):
        suffix = f" ({status})" if status is not None else ""
        super().__init__(f"{service} request failed{suffix}: {message}")
        self.service = service
        self.status = status
        self.message = message
