"""
RPC client.

Builds JSON requests for the /rpc endpoint and decodes replies. Any
transport accepted by httpx can be plugged in, including ASGITransport for
in-process use.
"""
import itertools
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel

from keyservice.rpc.protocol import (
    AuthArgs,
    AuthReply,
    MemStatsReply,
    Method,
    SysInfoReply,
    PARSE_ERROR,
)


class RPCClientError(Exception):
    """An RPC call that did not produce a result."""

    def __init__(self, status_code: int, code: Optional[str], message: str):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message


class RPCClient:
    """Async client for the credential service RPC endpoint."""

    def __init__(
        self,
        url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.url = url
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "RPCClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_request(
        self,
        method: Union[Method, str],
        args: Optional[Union[BaseModel, dict]] = None,
    ) -> httpx.Request:
        """Build the POST request for one call without sending it."""
        if isinstance(args, BaseModel):
            args = args.model_dump(by_alias=True)
        payload = {
            "method": method.value if isinstance(method, Method) else method,
            "params": [args if args is not None else {}],
            "id": next(self._ids),
        }
        return self._client.build_request("POST", self.url, json=payload)

    async def call(
        self,
        method: Union[Method, str],
        args: Optional[Union[BaseModel, dict]] = None,
    ) -> Any:
        """
        Send one call and return its decoded result.

        Raises:
            RPCClientError: if the server answered with an error
        """
        response = await self._client.send(self.build_request(method, args))
        try:
            body = response.json()
        except ValueError:
            raise RPCClientError(response.status_code, PARSE_ERROR, response.text)
        if not isinstance(body, dict):
            raise RPCClientError(response.status_code, PARSE_ERROR, response.text)

        error = body.get("error")
        if response.status_code != httpx.codes.OK or error:
            if not isinstance(error, dict):
                error = {"message": str(error)} if error else {}
            raise RPCClientError(
                response.status_code,
                error.get("code"),
                error.get("message", response.reason_phrase),
            )
        return body.get("result")

    async def generate(self, user: str) -> AuthReply:
        return AuthReply.model_validate(await self.call(Method.AUTH_GENERATE, AuthArgs(user=user)))

    async def fetch(self, user: str) -> AuthReply:
        return AuthReply.model_validate(await self.call(Method.AUTH_FETCH, AuthArgs(user=user)))

    async def reset(self, user: str) -> AuthReply:
        return AuthReply.model_validate(await self.call(Method.AUTH_RESET, AuthArgs(user=user)))

    async def mem_stats(self) -> MemStatsReply:
        return MemStatsReply.model_validate(await self.call(Method.SERVER_MEMSTATS))

    async def sys_info(self) -> SysInfoReply:
        return SysInfoReply.model_validate(await self.call(Method.SERVER_SYSINFO))
