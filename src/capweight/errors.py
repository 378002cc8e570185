"""Exception hierarchy."""


class CapWeightError(Exception):
    """Base class for all capweight errors."""


class InsufficientSeriesError(CapWeightError, ValueError):
    """A market cap series is too short to smooth."""

    def __init__(self, length: int, required: int) -> None:
        self.length = length
        self.required = required
        super().__init__(
            f"EMA requires at least {required} value(s), got {length}"
        )


class StoreError(CapWeightError):
    """The backing market cap store is unavailable or failed a query."""
