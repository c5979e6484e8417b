import logging

from starlette.requests import Request
from starlette.responses import JSONResponse

from knative_deployer.proc import AdapterCommandError
from knative_deployer.services.errors import (
    DeployerException,
    IntegrityException,
    NotFoundException,
    PodLookupError,
    PodPhaseError,
    WaitTimeoutError,
)

ERROR_STATUS = {
    IntegrityException: 409,
    NotFoundException: 404,
    PodLookupError: 502,
    PodPhaseError: 502,
    WaitTimeoutError: 504,
}

logger = logging.getLogger(__name__)


def _status_for(exc: Exception) -> int:
    if isinstance(exc, AdapterCommandError):
        return 503 if exc.retryable else 502
    return ERROR_STATUS.get(type(exc), 500)


def _exception_handler(request: Request, exc: Exception):
    status = _status_for(exc)
    if status >= 500:
        logger.exception("Request failed for path=%s: %s", request.url.path, exc)
    else:
        logger.warning("Request failed path=%s status=%s error=%s", request.url.path, status, exc)
    return JSONResponse({"detail": str(exc)}, status_code=status)


def register_exception_handlers(app):
    app.exception_handler(DeployerException)(_exception_handler)
    app.exception_handler(AdapterCommandError)(_exception_handler)
