"""Shared exceptions for server actions and the services behind them."""


class ActionError(Exception):
    """
    Base class for failures a server action reports back to the client.

    The message is safe to show to the user; upstream details stay in the logs.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigurationError(ActionError):
    """Raised when a required provider credential or setting is missing."""

    def __init__(self, setting: str) -> None:
        self.setting = setting
        super().__init__(f"{setting} environment variable is not set")


class UpstreamServiceError(ActionError):
    """Raised when a third-party AI or storage service fails or misbehaves."""


class InsufficientCreditsError(ActionError):
    """Raised when a user does not have enough credits for a paid action."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits: {required} required, {available} available",
        )


class ConcurrentModificationError(ActionError):
    """Raised when a document keeps changing underneath a read-then-write update."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__("The document was modified concurrently. Please try again.")
