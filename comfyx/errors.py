"""Exception types raised across the comfyx package boundary."""


class ComfyXError(Exception):
    """Base class for comfyx errors."""


class ChannelError(ComfyXError):
    """The execution channel could not be opened, or closed while a job was followed."""


class ChatError(ComfyXError):
    """A text-generation provider returned an error or an unusable reply."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code
