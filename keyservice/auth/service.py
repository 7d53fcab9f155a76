"""
Auth service facade.

Translates Auth.* RPC calls into registry operations and registry errors into
RPC errors. All registry errors are client errors (HTTP 400); the error code
in the payload tells them apart.
"""
from typing import Awaitable, Callable

from keyservice.base_service import BaseService
from keyservice.auth.models import Credential
from keyservice.auth.registry import CredentialRegistry, RegistryError
from keyservice.rpc.protocol import AuthArgs, AuthReply, RPCError


class AuthService(BaseService):
    """Facade over a credential registry handle."""

    def __init__(self, registry: CredentialRegistry):
        super().__init__("keyservice.auth")
        self.registry = registry

    async def _invoke(
        self,
        action: str,
        operation: Callable[[str], Awaitable[Credential]],
        args: AuthArgs,
    ) -> AuthReply:
        try:
            credential = await operation(args.user)
        except RegistryError as e:
            self.log_event(f"credential.{action}.failed", {
                "user": args.user,
                "reason": e.code,
            })
            raise RPCError(e.code, str(e))
        return AuthReply.from_credential(credential)

    async def generate(self, args: AuthArgs) -> AuthReply:
        """Issue a first credential for a user."""
        reply = await self._invoke("generate", self.registry.generate, args)
        self.log_event("credential.generated", {
            "user": reply.name,
            "access_key_id": reply.access_key_id,
        })
        return reply

    async def fetch(self, args: AuthArgs) -> AuthReply:
        """Return a user's live credential."""
        return await self._invoke("fetch", self.registry.fetch, args)

    async def reset(self, args: AuthArgs) -> AuthReply:
        """Rotate a user's credential, invalidating the previous pair."""
        reply = await self._invoke("reset", self.registry.reset, args)
        self.log_event("credential.reset", {
            "user": reply.name,
            "access_key_id": reply.access_key_id,
        })
        return reply
