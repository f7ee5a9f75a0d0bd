import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from turnwatch.errors import NotFoundError, PersistenceError, TurnwatchError, ValidationError

log = logging.getLogger(__name__)

_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    PersistenceError: 500,
}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TurnwatchError)
    async def turnwatch_error_handler(request: Request, exc: TurnwatchError):
        status = next((s for cls, s in _STATUS.items() if isinstance(exc, cls)), 500)
        if status >= 500:
            log.error("%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(
            status_code=status,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )
