from fastapi import status


class ClinicError(Exception):
    """Domain error carrying a stable machine-readable kind and an HTTP status."""

    kind = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "kind": self.kind}


class NotFound(ClinicError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ClinicError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidArgument(ClinicError):
    kind = "invalid_argument"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidState(ClinicError):
    kind = "invalid_state"
    status_code = status.HTTP_400_BAD_REQUEST
