"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class SetupError(PipelineError):
    """Raised when a run cannot start: missing credentials or input."""

    error_code = "SETUP_ERROR"


class StageError(PipelineError):
    """Raised for failures scoped to a single record or call."""

    error_code = "STAGE_ERROR"


class NoMatchError(StageError):
    """No directory candidate reached the confidence threshold."""

    error_code = "NO_MATCH"
