"""Run-level errors of the damage analysis pipeline."""

from enum import Enum
from typing import List, Optional


class ErrorType(Enum):
    """Enumeration of run-level error types."""

    NO_IMAGES_PROVIDED = "NO_IMAGES_PROVIDED"
    ALL_IMAGES_FAILED = "ALL_IMAGES_FAILED"
    ANALYSIS_CANCELLED = "ANALYSIS_CANCELLED"
    RESPONSE_PARSING_FAILED = "RESPONSE_PARSING_FAILED"
    VISION_REQUEST_FAILED = "VISION_REQUEST_FAILED"


class DamageAnalysisError(Exception):
    """Base class for errors surfaced to the caller of an analysis run."""

    error_type = ErrorType.VISION_REQUEST_FAILED
    recovery_suggestion = "Please try again"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recovery_suggestion": self.recovery_suggestion,
        }


class NoImagesProvidedError(DamageAnalysisError):
    error_type = ErrorType.NO_IMAGES_PROVIDED

    def __init__(self, message: str = "No images provided for analysis"):
        super().__init__(message)


class AllImagesFailedError(DamageAnalysisError):
    """Every photo's vision-model call failed."""

    error_type = ErrorType.ALL_IMAGES_FAILED
    recovery_suggestion = "Check your internet connection and try again"

    def __init__(self, errors: Optional[List[Exception]] = None,
                 message: str = "All image analyses failed"):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: {self.errors[0]}"
        super().__init__(message)


class AnalysisCancelledError(DamageAnalysisError):
    error_type = ErrorType.ANALYSIS_CANCELLED
    recovery_suggestion = "Start a new analysis when ready"

    def __init__(self, completed: int = 0, total: int = 0):
        self.completed = completed
        self.total = total
        super().__init__(f"Analysis cancelled after {completed}/{total} images")


class ResponseParsingError(DamageAnalysisError):
    """A vision-model response could not be decoded."""

    error_type = ErrorType.RESPONSE_PARSING_FAILED


class VisionRequestError(DamageAnalysisError):
    """A single vision-model request failed."""

    error_type = ErrorType.VISION_REQUEST_FAILED
