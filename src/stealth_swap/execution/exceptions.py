"""Error taxonomy for swap orchestration."""
from typing import Optional


class SwapError(Exception):
    """Base exception for every failure raised while orchestrating a swap."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        """
        Initialize swap error.

        Args:
            message: Human readable error message
            stage: Orchestration stage reached when the error occurred
            cause: Underlying exception, if any
        """
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.cause = cause

    @property
    def retryable(self) -> bool:
        """Whether the caller may retry the same request."""
        return False

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ConfigurationError(SwapError):
    """Missing or invalid configuration. Raised before any network call."""
    pass


class QuoteUnavailable(SwapError):
    """No price source produced a quote; execution proceeds without a floor."""
    pass


class RouteRefusal(SwapError):
    """Production network without a usable private submission endpoint."""
    pass


class TransportFailure(SwapError):
    """Network or RPC error while reading chain state or submitting."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, stage=stage, cause=cause)
        self.endpoint = endpoint

    @property
    def retryable(self) -> bool:
        return True


class SubmissionRejected(TransportFailure):
    """Endpoint answered the submission with a JSON-RPC error."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        code: Optional[int] = None,
        stage: Optional[str] = None
    ):
        super().__init__(message, endpoint=endpoint, stage=stage)
        self.code = code


class ExecutionRevert(SwapError):
    """On-chain rejection of the execution unit."""

    def __init__(
        self,
        message: str,
        revert_reason: Optional[str] = None,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, stage=stage, cause=cause)
        self.revert_reason = revert_reason

    def __str__(self) -> str:
        text = super().__str__()
        if self.revert_reason:
            return f"{text} (reason: {self.revert_reason})"
        return text


class InsufficientBalance(ExecutionRevert):
    """Sender cannot cover the value plus gas reserve."""
    pass


class InsufficientValue(ExecutionRevert):
    """Supplied value is below the sum of committed leg amounts."""
    pass


class DeadlineExpired(ExecutionRevert):
    """Request deadline is not in the future."""
    pass


class MalformedLeg(ExecutionRevert):
    """A swap leg is missing fields or carries a non-positive amount."""
    pass


class ChainReadError(Exception):
    """Non-transport failure while reading chain state (revert, bad output)."""
    pass
