"""Exception types raised inside perftrend.

Public service operations never let these escape; they are raised at the
backend adapter boundary and by the record codec, then converted to the
operation's sentinel value by the service.
"""


class PerftrendError(Exception):
    """Base class for all perftrend errors."""


class BackendError(PerftrendError):
    """A key-value backend call failed (connectivity or operation error)."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class RecordDecodeError(PerftrendError):
    """A stored record could not be decoded into a data point."""
