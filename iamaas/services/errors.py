from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from iamaas.models import DeploymentRead


class IamException(Exception):
    """Base class for domain errors surfaced to API and CLI callers.

    ``deployment`` is set when the failing operation still persisted a record
    (a provisioning attempt that ended in ``FAILED_TO_DEPLOY``).
    """

    def __init__(self, message: str = "", *, deployment: DeploymentRead | None = None) -> None:
        super().__init__(message)
        self.deployment = deployment


class IntegrityException(IamException):
    pass


class NotFoundException(IamException):
    pass


class InsufficientBalanceException(IamException):
    pass


class RealmAlreadyExistsException(IamException):
    pass


class ProviderException(IamException):
    pass


class NotificationFailedException(IamException):
    pass


class InternalException(IamException):
    pass
