"""Error types raised by the tutoring pipeline's external-service adapters."""


class TutorError(Exception):
    """Base class for all archtutor errors."""


class UpstreamServiceError(TutorError):
    """An embedding, retrieval or generation call failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message


class ServiceTimeoutError(UpstreamServiceError):
    """An external call did not answer within the configured bound."""

    def __init__(self, stage: str, timeout: float):
        super().__init__(stage, f"timed out after {timeout:.1f}s")
        self.timeout = timeout
