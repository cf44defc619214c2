from __future__ import annotations

from fastapi import status

_PERMISSION_MARKERS = ("permission", "unauthorized", "forbidden")


class AppError(RuntimeError):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AccessDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class SetupIncompleteError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class MissingAvatarError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class TenantResolutionError(AppError):
    """No creator could be resolved for the interaction's company context."""

    status_code = status.HTTP_404_NOT_FOUND


class ExternalServiceError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.provider = provider
        self.upstream_status = upstream_status

    def __str__(self) -> str:
        upstream = f" (upstream status {self.upstream_status})" if self.upstream_status else ""
        return f"{self.provider}: {self.message}{upstream}"


class PermissionDeniedUpstream(ExternalServiceError):
    """The provider rejected the call for lack of an app permission or scope."""


class ProviderResponseError(ExternalServiceError):
    """The provider answered 2xx with a body that does not match the expected shape."""


def is_permission_message(message: str | None) -> bool:
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in _PERMISSION_MARKERS)
