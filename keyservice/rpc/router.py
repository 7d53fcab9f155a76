"""
RPC dispatcher.

A single POST endpoint that decodes the request envelope, resolves the
method against the closed Method set and hands the argument to the auth
facade or the stats provider.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from keyservice.base_service import BaseService
from keyservice.auth.service import AuthService
from keyservice.rpc.protocol import (
    AuthArgs,
    Method,
    RPCError,
    RPCRequest,
    WireModel,
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    UNSUPPORTED_MEDIA_TYPE,
    parse_method,
    rpc_error,
    rpc_result,
)
from keyservice.server.stats import StatsProvider

# Create router
router = APIRouter(tags=["rpc"])

rpc_service = BaseService("keyservice.rpc")


def get_auth_service(request: Request) -> AuthService:
    """Dependency returning the application's auth facade."""
    return request.app.state.auth_service


def get_stats_provider(request: Request) -> StatsProvider:
    """Dependency returning the application's stats provider."""
    return request.app.state.stats_provider


async def dispatch(
    method: Method,
    params: Dict[str, Any],
    auth_service: AuthService,
    stats_provider: StatsProvider,
) -> WireModel:
    """Run one RPC method. Every Method member must have a branch here."""
    if method is Method.AUTH_GENERATE:
        return await auth_service.generate(AuthArgs.from_params(params))
    elif method is Method.AUTH_FETCH:
        return await auth_service.fetch(AuthArgs.from_params(params))
    elif method is Method.AUTH_RESET:
        return await auth_service.reset(AuthArgs.from_params(params))
    elif method is Method.SERVER_MEMSTATS:
        return stats_provider.mem_stats()
    elif method is Method.SERVER_SYSINFO:
        return stats_provider.sys_info()
    raise AssertionError(f"unhandled RPC method {method!r}")


def _is_json(request: Request) -> bool:
    content_type = request.headers.get("content-type", "")
    return content_type.split(";")[0].strip().lower() == "application/json"


@router.post("")
async def rpc_endpoint(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
    stats_provider: StatsProvider = Depends(get_stats_provider),
):
    """
    Handle one RPC request.

    Returns:
        200 with {"result": ..., "error": null, "id": ...} on success,
        4xx/500 with {"result": null, "error": {"code", "message"}, "id": ...}
        otherwise
    """
    if not _is_json(request):
        error = RPCError(
            UNSUPPORTED_MEDIA_TYPE,
            "Content-Type must be application/json",
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
        )
        return JSONResponse(rpc_error(error), status_code=error.status_code)

    try:
        body = await request.json()
    except ValueError:
        error = RPCError(PARSE_ERROR, "request body is not valid JSON")
        return JSONResponse(rpc_error(error), status_code=error.status_code)

    try:
        rpc_request = RPCRequest.model_validate(body)
    except ValidationError:
        error = RPCError(INVALID_REQUEST, "request must be an object with a string 'method'")
        return JSONResponse(rpc_error(error), status_code=error.status_code)

    try:
        method = parse_method(rpc_request.method)
        reply = await dispatch(method, rpc_request.argument(), auth_service, stats_provider)
    except RPCError as e:
        return JSONResponse(rpc_error(e, rpc_request.id), status_code=e.status_code)
    except Exception as e:
        rpc_service.log_error(e, context=f"RPC {rpc_request.method}")
        error = RPCError(
            INTERNAL_ERROR,
            "internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        return JSONResponse(rpc_error(error, rpc_request.id), status_code=error.status_code)

    return JSONResponse(rpc_result(reply, rpc_request.id))
