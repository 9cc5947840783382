"""Router with middleware dispatch, body/form parsing, validation and response handling."""

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any
from uuid import uuid4

import orjson
from asgi_correlation_id import correlation_id
from pydantic import BaseModel, ValidationError
from robyn import Request, Response, SubRouter, status_codes
from robyn.robyn import HttpMethod
from robyn.types import Body

from capsule_api.core.errors import UploadError
from capsule_api.core.logger import LogIcon, logger
from capsule_api.middlewares.base import MiddlewareHandler, RequestContext
from capsule_api.models.core import BodyType, UploadForm

REQUEST_ID_HEADER = "x-request-id"


def parse_endpoint_signature(
    sig: inspect.Signature,
) -> tuple[dict[str, tuple[BodyType, type | None]], set[str]]:
    """Parse function signature for body and upload form parameters."""
    parsed: dict[str, tuple[BodyType, type | None]] = {}
    form_params: set[str] = set()

    for name, param in sig.parameters.items():
        annotation = param.annotation

        if annotation is UploadForm:
            form_params.add(name)
            continue

        match annotation:
            case type() if issubclass(annotation, BaseModel):
                parsed[name] = (BodyType.PYDANTIC, type(annotation.__name__, (annotation, Body), {}))
            case type() if issubclass(annotation, Body):
                parsed[name] = (BodyType.JSONABLE, annotation)
            case type() if annotation is dict:
                parsed[name] = (BodyType.JSONABLE, None)
            case _ if name == "body":
                parsed[name] = (BodyType.JSONABLE, None)

    return parsed, form_params


def parse_request_body(
    body_config: dict[str, tuple[BodyType, type | None]],
    kwargs: dict[str, Any],
) -> Response | None:
    """Parse JSON/Pydantic body parameters."""
    for param_name, (body_type, model_cls) in body_config.items():
        if param_name not in kwargs:
            continue
        raw = kwargs[param_name]
        if not isinstance(raw, (str, bytes)):
            continue

        match body_type:
            case BodyType.PYDANTIC if model_cls:
                try:
                    kwargs[param_name] = model_cls.model_validate_json(raw)  # type: ignore[union-attr]
                except ValidationError as ex:
                    return Response(status_code=422, headers={}, description=ex.json())
            case BodyType.JSONABLE:
                try:
                    kwargs[param_name] = orjson.loads(raw)
                except orjson.JSONDecodeError as ex:
                    return Response(status_code=422, headers={}, description=str(ex))
    return None


def parse_request_form(
    form_params: set[str],
    context: RequestContext,
    kwargs: dict[str, Any],
) -> Response | None:
    """Hand the middleware-built fields to UploadForm kwargs."""
    if not form_params:
        return None

    if not context.is_multipart:
        return Response(
            status_code=status_codes.HTTP_422_UNPROCESSABLE_ENTITY,
            headers={"content-type": "application/json"},
            description=orjson.dumps({"error": "missing_form", "required": sorted(form_params)}).decode(),
        )

    for param_name in form_params:
        kwargs[param_name] = UploadForm(fields=dict(context.fields))

    return None


def parse_upload_error(error: UploadError) -> Response:
    """Render an upload failure raised along the middleware chain."""
    return Response(
        status_code=error.status_code,
        headers={"content-type": "application/json"},
        description=orjson.dumps(error.to_dict()).decode(),
    )


def parse_response(result: Any) -> Response:
    """Convert handler result to Response."""
    match result:
        case Response():
            return result
        case BaseModel():
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={"content-type": "application/json"},
                description=result.model_dump_json(indent=4),
            )
        case dict():
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={"content-type": "application/json"},
                description=orjson.dumps(result).decode(),
            )
        case _:
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={},
                description=str(result),
            )


HTTP_METHODS = (
    HttpMethod.GET,
    HttpMethod.POST,
    HttpMethod.PUT,
    HttpMethod.DELETE,
    HttpMethod.PATCH,
    HttpMethod.HEAD,
    HttpMethod.OPTIONS,
    HttpMethod.TRACE,
    HttpMethod.CONNECT,
)


def wrap_handler(handler: Callable, full_path: str, router: "Router") -> Callable:
    """Wrap a route handler with the router's middleware chain and body/form parsing.

    ``router.middleware_chain`` is read per request, so ``Router.use`` may run
    after routes are declared.
    """
    sig = inspect.signature(handler)
    body_config, form_params = parse_endpoint_signature(sig)
    has_request_param = "request" in sig.parameters

    @wraps(handler)
    async def wrapped_handler(request: Request, **h_kwargs):
        correlation_id.set(request.headers.get(REQUEST_ID_HEADER) or uuid4().hex)
        context = RequestContext.from_request(request, full_path)

        async def call_handler(ctx: RequestContext) -> Response:
            # Multipart bodies belong to the upload middleware, never to the JSON parser
            if not ctx.is_multipart and (error := parse_request_body(body_config, h_kwargs)):
                return error

            if form_params and (error := parse_request_form(form_params, ctx, h_kwargs)):
                return error

            # Pass request to handler only if it declared it
            if has_request_param:
                h_kwargs["request"] = request

            result = await handler(**h_kwargs)
            return parse_response(result)

        try:
            return await router.middleware_chain.run(context, call_handler)
        except UploadError as ex:
            logger.warning("Upload rejected", icon=LogIcon.VALIDATION, code=ex.code, endpoint=full_path)
            return parse_upload_error(ex)

    # Build signature: always include request for Robyn injection
    new_params = [inspect.Parameter("request", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=Request)]
    for name, param in sig.parameters.items():
        if name == "request" or name in form_params:
            continue
        if name in body_config:
            new_params.append(param.replace(annotation=body_config[name][1]))
        else:
            new_params.append(param)

    wrapped_handler.__signature__ = sig.replace(parameters=new_params)  # type: ignore[attr-defined]
    return wrapped_handler


def _create_method_wrapper(original_method: Callable, router: "Router") -> Callable:
    @wraps(original_method)
    def method_wrapper(*args, **kwargs) -> Callable:
        endpoint = args[0] if args else kwargs.get("endpoint", "")
        decorator = original_method(*args, **kwargs)
        full_path = f"{router._prefix}{endpoint}".replace("//", "/")

        def handler_decorator(handler: Callable) -> Callable:
            return decorator(wrap_handler(handler, full_path, router))

        return handler_decorator

    return method_wrapper


class Router(SubRouter):
    """Enhanced SubRouter running a middleware chain with automatic body/form parsing."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._prefix = kwargs.get("prefix", "")
        self.middleware_chain = MiddlewareHandler()
        self._wrap_methods()

    def use(self, middlewares: MiddlewareHandler) -> "Router":
        """Attach a shared middleware chain. Returns self for chaining."""
        self.middleware_chain = middlewares
        return self

    def _wrap_methods(self) -> None:
        """Wrap HTTP methods with parsing logic."""
        for method in HTTP_METHODS:
            method_name = str(method).split(".")[-1].lower()
            if hasattr(self, method_name):
                original_method = getattr(self, method_name)
                wrapped_method = _create_method_wrapper(original_method, self)
                setattr(self, method_name, wrapped_method)
