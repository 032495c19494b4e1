"""Pipeline exception hierarchy."""


class PipelineError(Exception):
    """Base class for errors raised inside the chat pipeline."""


class ModelError(PipelineError):
    """The completion service failed to produce text."""

    def __init__(self, message: str, task_category: str = "queries"):
        super().__init__(message)
        self.task_category = task_category


class ModelTimeoutError(ModelError):
    """The completion did not finish within the profile timeout."""


class InvalidModelResponseError(ModelError):
    """The completion text did not contain a usable JSON object."""
