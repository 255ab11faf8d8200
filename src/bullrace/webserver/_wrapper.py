"""
Endpoint wrappers
"""

import functools
import inspect
import json
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from json.decoder import JSONDecodeError
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from tortoise.exceptions import DBConnectionError, OperationalError

from bullrace import ctx
from bullrace.race.errors import MissingReference, RaceError, StorageError
from bullrace.utils.asyncio import ensure_async

_T = TypeVar("_T")

logger = logging.getLogger(__name__)

_READ_ERRORS = (OperationalError, DBConnectionError)


@dataclass(frozen=True)
class _ValModels:
    request: type[BaseModel] | None
    query: type[BaseModel] | None
    path: type[BaseModel] | None
    response: TypeAdapter | None
    status_code: int
    empty_on_read_error: bool


class _AdaptedResponse(Response):
    """
    Class used for sending dumped Pydantic JSON data
    """

    # pylint: disable=R0913,R0917

    media_type = "application/json"

    def __init__(
        self,
        content: bytes = b"",
        status_code=200,
        headers=None,
        media_type=None,
        background=None,
    ):
        super().__init__(content, status_code, headers, media_type, background)

    def render(self, content: bytes) -> bytes:
        return content


def error_response(
    status_code: int, message: str, errors: list[dict[str, Any]] | None = None
) -> JSONResponse:
    """
    Generate the JSON error body sent to clients

    :param status_code: The HTTP status code
    :param message: Human readable description of the error
    :param errors: Field level validation errors
    :return: The response
    """
    content: dict[str, Any] = {"message": message}
    if errors is not None:
        content["errors"] = errors

    return JSONResponse(content, status_code=status_code)


def _validation_errors(ex: ValidationError) -> list[dict[str, Any]]:
    return json.loads(ex.json(include_url=False, include_input=False))


def endpoint(
    *,
    request_model: type[BaseModel] | None = None,
    query_model: type[BaseModel] | None = None,
    path_model: type[BaseModel] | None = None,
    response_model: type[BaseModel] | TypeAdapter | None = None,
    status_code: int = 200,
    empty_on_read_error: bool = False,
):
    """
    Decorator for validating request data and response data for a route

    :param request_model: The model to use to validate the request, defaults to None
    :param query_model: The adapter model to use to validate the query parameters, defaults to None
    :param path_model: The adapter model to use to validate the path parameters, defaults to None
    :param response_model: The model to use to validate the response, defaults to None
    :param status_code: The status code of a successful response, defaults to 200
    :param empty_on_read_error: Respond with an empty list when storage can
    not be read, defaults to False
    """

    def inner(
        func: Callable[..., _T],
    ) -> Callable[[Request], Coroutine[None, None, Response]]:
        adapter: TypeAdapter | None = None
        base_kwargs = {"request", "query", "path"}
        function_kwargs = set(inspect.signature(func).parameters.keys())

        try:
            assert function_kwargs.issubset(base_kwargs)
        except AssertionError as ex:
            raise KeyError(
                f"{func.__name__} uses incompatible argument names. "
                f"Arguments must be limited to {base_kwargs}"
            ) from ex

        _validate_compatibility(func, request_model, function_kwargs, "request")
        _validate_compatibility(func, query_model, function_kwargs, "query")
        _validate_compatibility(func, path_model, function_kwargs, "path")

        if isinstance(response_model, TypeAdapter):
            adapter = response_model
        elif response_model is not None and issubclass(response_model, BaseModel):
            adapter = TypeAdapter(response_model)
        elif response_model is not None:
            raise ValueError(
                (
                    f"{func.__name__} response model is not a subclass of "
                    f"{BaseModel.__name__} or instance of {TypeAdapter.__name__}"
                )
            )

        models = _ValModels(
            request_model,
            query_model,
            path_model,
            adapter,
            status_code,
            empty_on_read_error,
        )

        @functools.wraps(func)
        async def wrapper(request: Request) -> Response:
            return await _process_request(func, request, models)

        return wrapper

    return inner


def _validate_compatibility(
    func: Callable, model: type[BaseModel] | None, used_kwargs: set[str], arg_id: str
):
    """
    Validate the compatibility between the function and provided model
    """

    if model is not None:
        try:
            assert arg_id in used_kwargs
        except AssertionError as ex:
            raise KeyError(
                f"'{arg_id}` must be an argument of the endpoint function "
                "when a request model has been provided"
            ) from ex

        try:
            assert issubclass(model, BaseModel)
        except AssertionError as ex:
            raise ValueError(
                f"{func.__name__} {arg_id} model is not a subclass of {BaseModel.__name__}"
            ) from ex
    else:
        try:
            assert arg_id not in used_kwargs
        except AssertionError as ex:
            raise KeyError(
                f"'{arg_id}` must NOT be an argument of the endpoint "
                f"function when a {arg_id} model has NOT been provided"
            ) from ex


async def _process_request(
    func: Callable, request: Request, models: _ValModels
) -> Response:
    """
    Processes the incoming request
    """
    ctx.request_ctx.set(request)
    kwargs: dict[str, BaseModel] = {}

    try:
        if models.request is not None:
            data = await request.body()
            kwargs["request"] = models.request.model_validate_json(data or b"{}")

        if models.query is not None:
            kwargs["query"] = models.query.model_validate(request.query_params)

        if models.path is not None:
            kwargs["path"] = models.path.model_validate(request.path_params)

    except JSONDecodeError:
        return error_response(400, "Malformed request body")

    except ValidationError as ex:
        return error_response(400, "Invalid request", _validation_errors(ex))

    try:
        endpoint_result = await ensure_async(func, **kwargs)

    except MissingReference as ex:
        return error_response(404, str(ex))

    except _READ_ERRORS:
        logger.exception("Failed to read storage in %s", func.__name__)
        if not models.empty_on_read_error:
            return error_response(500, "Storage unavailable")

        endpoint_result = []

    except StorageError as ex:
        logger.error("Storage failure in %s: %s", func.__name__, ex)
        return error_response(500, str(ex))

    except (RaceError, ValueError) as ex:
        logger.warning("Rejected %s: %s", func.__name__, ex)
        return error_response(400, str(ex))

    if isinstance(endpoint_result, Response):
        return endpoint_result

    if models.response is not None:
        return _process_response_adapter(
            func, models.response, endpoint_result, models.status_code
        )

    return Response(status_code=models.status_code)


def _process_response_adapter(
    func: Callable, response_adapter: TypeAdapter, endpoint_result: _T, status_code: int
) -> Response:
    """
    Serialize the endpoint result to a response
    """
    try:
        model = response_adapter.validate_python(endpoint_result, from_attributes=True)
    except ValidationError:
        logger.exception(
            "Returned object from {%s} does not match response adapter {%s}",
            func.__name__,
            response_adapter,
        )
        return error_response(500, "Internal server error")

    return _AdaptedResponse(response_adapter.dump_json(model), status_code=status_code)
