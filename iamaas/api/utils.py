import logging

from fastapi.encoders import jsonable_encoder
from starlette.requests import Request
from starlette.responses import JSONResponse

from iamaas.identity import IdentityProvider, identity_provider
from iamaas.mail import Notifier, notifier
from iamaas.services.errors import (
    IamException,
    InsufficientBalanceException,
    IntegrityException,
    InternalException,
    NotFoundException,
    NotificationFailedException,
    ProviderException,
    RealmAlreadyExistsException,
)

ERROR_STATUS = {
    IntegrityException: 409,
    RealmAlreadyExistsException: 409,
    NotFoundException: 404,
    InsufficientBalanceException: 402,
    ProviderException: 502,
    NotificationFailedException: 502,
    InternalException: 500,
}

logger = logging.getLogger(__name__)


def get_identity_provider() -> IdentityProvider:
    return identity_provider


def get_notifier() -> Notifier:
    return notifier


def _status_for(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def _exception_handler(request: Request, exc: IamException):
    status = _status_for(exc)
    if status >= 500:
        logger.error("Request failed path=%s status=%s error=%s", request.url.path, status, exc, exc_info=exc)
    else:
        logger.warning("Request failed path=%s status=%s error=%s", request.url.path, status, exc)
    body = {"detail": str(exc)}
    if exc.deployment is not None:
        body["deployment"] = jsonable_encoder(exc.deployment)
    return JSONResponse(body, status_code=status)


def register_exception_handlers(app):
    app.exception_handler(IamException)(_exception_handler)
