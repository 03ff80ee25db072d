import uuid

from fastapi import Request


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id


def envelope(request: Request, data: dict | None, error: dict | None = None, **meta: object) -> dict:
    return {
        "data": data,
        "meta": {"request_id": _request_id(request), **meta},
        "error": error,
    }


def exception_envelope(request: Request, status_code: int, message: str, code: str, details: dict | None = None) -> dict:
    return envelope(
        request,
        None,
        error={"code": code, "message": message, "details": details or {}},
        status_code=status_code,
    )
