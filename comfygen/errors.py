class ComfyError(Exception):
    """Base class for every failure raised by the ComfyUI client."""


class ConfigurationError(ComfyError):
    """The client is missing a required setting (e.g. the base URL)."""


class SubmissionError(ComfyError):
    """POST /prompt failed, returned garbage, or returned no prompt_id."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PollTransportError(ComfyError):
    """A single GET /history request failed. Retried by the polling loop."""


class PollDecodeError(ComfyError):
    """A /history payload could not be decoded. Retried by the polling loop."""


class GenerationTimeoutError(ComfyError, TimeoutError):
    """No image appeared in history before the attempt budget ran out."""

    def __init__(self, prompt_id: str, attempts: int):
        super().__init__(
            f"ComfyUI timeout waiting for result of {prompt_id} after {attempts} attempts"
        )
        self.prompt_id = prompt_id
        self.attempts = attempts
