"""Map dispatch error kinds onto HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ride_dispatch.domain import errors

STATUS_BY_KIND: dict[type[errors.DispatchError], int] = {
    errors.ValidationError: 422,
    errors.AuthorizationError: 403,
    errors.NotFoundError: 404,
    errors.InvalidTransitionError: 409,
    errors.ConflictError: 409,
    errors.StoreUnavailableError: 503,
}


async def dispatch_error_handler(
    request: Request, exc: errors.DispatchError
) -> JSONResponse:
    headers = None
    if isinstance(exc, errors.StoreUnavailableError):
        headers = {"Retry-After": "1"}
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(type(exc), 500),
        content={"kind": exc.kind, "detail": exc.message},
        headers=headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content={"kind": errors.ValidationError.kind, "detail": problems},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(errors.DispatchError, dispatch_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
