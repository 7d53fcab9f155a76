"""
Credential generation.

The registry only depends on the CredentialGenerator protocol, so tests can
swap in a deterministic generator.
"""
import base64
import secrets
import string
from typing import Protocol

from keyservice.auth.models import (
    Credential,
    ACCESS_KEY_ID_LENGTH,
    SECRET_ACCESS_KEY_LENGTH,
)

ACCESS_KEY_ALPHABET = string.ascii_uppercase + string.digits

# 30 random bytes encode to exactly 40 base64 characters with no padding
SECRET_KEY_BYTES = SECRET_ACCESS_KEY_LENGTH * 3 // 4


class CredentialGenerator(Protocol):
    """Capability that mints a fresh credential pair."""

    def new_credential(self, name: str) -> Credential:
        ...


class SecretsGenerator:
    """
    Generator backed by the operating system CSPRNG.

    Failures of the randomness source are not caught here: they propagate
    and abort the request.
    """

    def new_credential(self, name: str) -> Credential:
        access_key_id = "".join(
            secrets.choice(ACCESS_KEY_ALPHABET) for _ in range(ACCESS_KEY_ID_LENGTH)
        )
        secret_access_key = base64.b64encode(
            secrets.token_bytes(SECRET_KEY_BYTES)
        ).decode("ascii")
        return Credential(
            name=name,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
        )
