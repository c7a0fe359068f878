from typing import Optional


class IntakeError(Exception):
    """Base class for every error raised by the intake engine."""


class ConfigurationError(IntakeError):
    """Bot schema or business context is unusable. Fatal, not retryable."""


class ModelCallError(IntakeError):
    """The language model call failed or timed out. Retryable."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error


class DecisionParseError(IntakeError):
    """Model output is not a JSON decision or has no reply. Retryable."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class TransportError(IntakeError):
    """The model stream broke after tokens were already flushed."""


class SubmissionError(IntakeError):
    """The submission sink rejected or failed to store a completed conversation."""


class ExtractionViolation(IntakeError):
    """The model extracted a key that is not part of the schema. Dropped, never raised."""

    def __init__(self, key: str, value: str):
        super().__init__(f"extracted key not in required_info: {key}")
        self.key = key
        self.value = value


class ValidationRejection(IntakeError):
    """An extracted value failed its field-type check. Dropped, never raised."""

    def __init__(self, key: str, value: str, prompt: str):
        super().__init__(f"value for {key} failed validation")
        self.key = key
        self.value = value
        self.prompt = prompt
