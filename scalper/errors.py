"""Error types raised across the scalper engine.

Hierarchy:
    ScalperError
    ├── TransientFetchError   network/timeout on a market-data fetch
    ├── PersistenceError      history store read/write failure
    ├── OrderExecutionError   order submission failed after the decision
    └── StartupError          store/bind failure while starting up
"""


class ScalperError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, code: str = "SCALPER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class TransientFetchError(ScalperError):
    """A price, bar or balance fetch failed; retry on the next cycle."""

    def __init__(self, message: str):
        super().__init__(message, code="TRANSIENT_FETCH")


class PersistenceError(ScalperError):
    """The history store could not complete a read or write."""

    def __init__(self, message: str, operation: str = ""):
        super().__init__(message, code="PERSISTENCE")
        self.operation = operation


class OrderExecutionError(ScalperError):
    """An order was not accepted by the execution client.

    The position state machine has already committed the transition when
    this is raised; it is reported as a discrepancy, never rolled back.
    """

    def __init__(self, message: str, side: str = ""):
        super().__init__(message, code="ORDER_EXECUTION")
        self.side = side


class StartupError(ScalperError):
    """A resource needed at startup could not be acquired."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message, code="STARTUP")
        self.retryable = retryable
