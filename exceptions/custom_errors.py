class InvalidSchedulingInputError(Exception):
    """Raised when the scheduling inputs are rejected before the search starts."""

    pass


class InvalidDateRangeError(InvalidSchedulingInputError):
    """Raised when the end date of the planning horizon falls before its start date."""

    pass


class InvalidPeriodIndexError(InvalidSchedulingInputError):
    """Raised when a slot index lies outside the 12 two-hour periods of a day."""

    pass


class UnknownReferenceError(InvalidSchedulingInputError):
    """Raised when a rule or manual assignment points at a personnel or position id that does not exist."""

    pass


class BacktrackDepthExceededError(Exception):
    """Raised when a backtrack has to pop more decisions than the configured maximum depth."""

    def __init__(self, depth: int, max_depth: int):
        super().__init__(f"Backtrack depth {depth} exceeds the maximum of {max_depth}.")
        self.depth = depth
        self.max_depth = max_depth


class StateRestorationError(Exception):
    """Raised when the feasibility index cannot be rolled back to a requested mark."""

    pass


# Mapping of custom exceptions to HTTP status codes
CUSTOM_ERRORS = {
    InvalidSchedulingInputError: 400,
    InvalidDateRangeError: 400,
    InvalidPeriodIndexError: 400,
    UnknownReferenceError: 400,
    BacktrackDepthExceededError: 422,
    StateRestorationError: 500,
}
