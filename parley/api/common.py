"""Request parsing and response helpers shared by the handlers."""

import json
from typing import Any, TypeVar

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from parley.core.errors import ValidationError
from parley.schemas.requests import Identifier, RequestModel

ModelT = TypeVar("ModelT", bound=RequestModel)

_identifier = TypeAdapter(Identifier)


def success(
    message: str | None = None,
    status_code: int = status.HTTP_200_OK,
    **fields: Any,
) -> JSONResponse:
    """Success envelope: ``{"status": "success", ...fields}``."""
    content: dict[str, Any] = {"status": "success"}
    if message is not None:
        content["message"] = message
    content.update(fields)
    return JSONResponse(status_code=status_code, content=content)


async def read_payload(request: Request) -> dict[str, Any]:
    """Request body as a dict, from JSON or a form submission."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()

    if content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("INVALID_JSON", "Request body must be valid JSON") from e
    if not isinstance(payload, dict):
        raise ValidationError("INVALID_JSON", "Request body must be a JSON object")
    return payload


def request_error(model: type[RequestModel], exc: PydanticValidationError) -> ValidationError:
    """Translate the first pydantic error into an API error code."""
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"][:1])
    kind = error["type"]

    if kind == "missing" or (kind == "MISSING_FIELD" and field):
        return ValidationError("MISSING_FIELD", f"Missing required field: {field}")
    # Validators raising PydanticCustomError carry the API code as their type
    if kind.isupper():
        return ValidationError(kind, error["msg"])
    code = model.error_codes.get(field, "VALIDATION_ERROR")
    return ValidationError(code, f"Invalid {field}: {error['msg']}")


def parse_request(model: type[ModelT], payload: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise request_error(model, e) from e


async def read_request(request: Request, model: type[ModelT]) -> ModelT:
    """Read the body and validate it against ``model``."""
    return parse_request(model, await read_payload(request))


def to_int(value: Any, field: str, code: str) -> int:
    """Coerce JSON numbers and ASCII digit strings; booleans are rejected."""
    try:
        return _identifier.validate_python(value)
    except PydanticValidationError as e:
        raise ValidationError(code, f"Invalid {field}") from e


def query_int(
    request: Request,
    name: str,
    default: int,
    minimum: int = 0,
    maximum: int | None = None,
) -> int:
    """Integer query parameter, clamped to [minimum, maximum]."""
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    value = to_int(raw, name, "VALIDATION_ERROR")
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def path_int(request: Request, name: str, code: str) -> int:
    return to_int(request.path_params.get(name), name, code)
