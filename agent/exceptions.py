"""Custom exceptions for the streaming tool-call bot runtime."""


class EndpointConnectionError(Exception):
    """Raised when unable to reach the chat completions endpoint."""
    pass


class EndpointResponseError(Exception):
    """Raised when the chat completions endpoint answers with a non-success status."""

    def __init__(self, message: str, status: int, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ToolRegistrationError(Exception):
    """Raised when a tool cannot be registered (e.g. duplicate name)."""
    pass


class ToolNotFoundError(Exception):
    """Raised when a requested tool does not exist."""
    pass


class ToolLoopExceededError(Exception):
    """Raised when the conversation loop exceeds its tool round-trip budget."""

    def __init__(self, max_rounds: int):
        super().__init__(
            f"Tool-call loop exceeded: the model kept requesting tools after "
            f"{max_rounds} round trip(s)"
        )
        self.max_rounds = max_rounds


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass
