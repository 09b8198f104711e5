class ValidationError(ValueError):
    """Caller input rejected before it reaches the batch layer."""


class NotFoundError(ValueError):
    """A referenced user or report setting does not exist."""


class TransientIOError(RuntimeError):
    """The store, the network or the mail server could not be reached."""


class InsightDataError(ValueError):
    """The insight generator returned output that could not be parsed."""


class NoTransactionsFound(ValueError):
    """The requested window holds no transactions to report on."""
