"""Error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations


class DinnerPickerError(RuntimeError):
    pass


class ConfigurationError(DinnerPickerError):
    """A required credential or identifier is not configured."""


class ProviderError(DinnerPickerError):
    """An external collaborator was reachable but rejected the call."""


class TransportFailure(DinnerPickerError):
    """An external collaborator could not be reached or answered garbage."""


class QuotaExhausted(DinnerPickerError):
    def __init__(self, user_id: str, message: str = "No spins remaining") -> None:
        super().__init__(message)
        self.user_id = user_id


class NotFound(DinnerPickerError):
    pass


class SignatureInvalid(DinnerPickerError):
    pass


class EnrichmentFailed(DinnerPickerError):
    pass


class StoreError(DinnerPickerError):
    """The document store failed while reading or writing a record."""
