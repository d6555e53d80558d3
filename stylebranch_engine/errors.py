"""Error types raised by the session and the generation pipeline."""

from __future__ import annotations


class StyleBranchError(RuntimeError):
    """Base class for stylebranch failures."""


class ValidationError(StyleBranchError, ValueError):
    """Input rejected before any call to the generation API."""

    code = "invalid_request"


class MissingReferencesError(ValidationError):
    code = "missing_references"


class MissingCredentialError(ValidationError):
    code = "missing_credential"


class EmptyInstructionError(ValidationError):
    code = "empty_instruction"


class InvalidCountError(ValidationError):
    code = "invalid_count"


class RefinementPendingError(ValidationError):
    code = "refinement_pending"


class TooManyReferencesError(ValidationError):
    code = "too_many_references"


class UnsupportedImageError(ValidationError):
    code = "unsupported_image"


class StaleTargetError(StyleBranchError):
    """The node a request points at is no longer in the forest."""

    code = "stale_target"


class GenerationError(StyleBranchError):
    """The batch call itself failed; no slot results are available."""

    code = "generation_failed"
