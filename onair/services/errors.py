class ScheduleValidationError(ValueError):
    """A required authoring field is missing or unusable. Nothing was written."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is required")


class DataAccessError(RuntimeError):
    """The schedule store could not be read or written."""


class AuthorizationError(PermissionError):
    pass


class ChannelNotFoundError(LookupError):
    def __init__(self, channel_id) -> None:
        self.channel_id = channel_id
        super().__init__(f"Channel {channel_id} not found")
