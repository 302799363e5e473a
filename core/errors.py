class MutationError(Exception):
    """Raised by the backing store when a buy/sell request is rejected."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StateCorruptError(RuntimeError):
    """The state file exists but cannot be decoded; it is never written over."""
