from __future__ import annotations


class MultiplayError(Exception):
    """Base for failures reported back to a caller.

    `kind` is stable and machine-readable; the message is shown to the caller verbatim.
    """

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_detail(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class UnknownCommand(MultiplayError):
    kind = "unknown_command"


class DecodeError(MultiplayError):
    kind = "decode_error"


class Unauthorized(MultiplayError):
    kind = "unauthorized"


class HandlerFailure(MultiplayError):
    kind = "handler_failure"


class StoreUnavailable(MultiplayError):
    kind = "store_unavailable"


class RecordBusy(StoreUnavailable):
    """Could not take the record lock before the timeout."""

    kind = "record_busy"


class UnknownChannel(MultiplayError):
    kind = "unknown_channel"
