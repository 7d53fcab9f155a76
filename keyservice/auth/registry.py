"""
Credential registry.

This module owns the mapping from user name to live credential and provides:
- Atomic generate (insert-if-absent)
- Read-only fetch
- Atomic reset (replace-if-present)

Two backends are available: MemoryRegistry and SQLRegistry.
"""
import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from keyservice.auth.generator import CredentialGenerator, SecretsGenerator
from keyservice.auth.models import Base, Credential, CredentialRecord

MAX_NAME_LENGTH = 255
MAX_GENERATE_ATTEMPTS = 5


class RegistryError(Exception):
    """Base class for caller-fixable registry errors."""
    code = "RegistryError"

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class InvalidArgument(RegistryError):
    code = "InvalidArgument"


class AlreadyExists(RegistryError):
    code = "AlreadyExists"


class NotFound(RegistryError):
    code = "NotFound"


class KeyCollisionError(RuntimeError):
    """Every generation attempt produced an access key id already in use."""


def validate_name(name) -> str:
    """
    Check that a user name can be used as a registry key.

    Raises:
        InvalidArgument: if the name is empty or malformed
    """
    if not isinstance(name, str):
        raise InvalidArgument("user name must be a string")
    if not name:
        raise InvalidArgument("user name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidArgument(f"user name exceeds {MAX_NAME_LENGTH} characters", name)
    if name != name.strip():
        raise InvalidArgument("user name must not have surrounding whitespace", name)
    if any(not ch.isprintable() for ch in name):
        raise InvalidArgument("user name must not contain control characters", name)
    return name


class CredentialRegistry(ABC):
    """
    Mapping from user name to live credential.

    Per name: Absent --generate--> Active --reset--> Active.
    There is no transition back to Absent.
    """

    def __init__(self, generator: Optional[CredentialGenerator] = None):
        self.generator = generator or SecretsGenerator()

    async def init(self) -> None:
        """Prepare backing storage."""

    async def close(self) -> None:
        """Release backing storage."""

    @abstractmethod
    async def generate(self, name: str) -> Credential:
        """Mint and store a credential for a name that has none."""

    @abstractmethod
    async def fetch(self, name: str) -> Credential:
        """Return the live credential for a name."""

    @abstractmethod
    async def reset(self, name: str) -> Credential:
        """Replace the live credential for a name with a fresh one."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of live credentials."""


class MemoryRegistry(CredentialRegistry):
    """
    In-process registry guarded by a single lock over the whole mapping.

    Stored values are immutable, so fetch reads without taking the lock and
    always sees either the old or the new pair.
    """

    def __init__(self, generator: Optional[CredentialGenerator] = None):
        super().__init__(generator)
        self._lock = asyncio.Lock()
        self._credentials: Dict[str, Credential] = {}
        self._names_by_access_key: Dict[str, str] = {}

    def _mint(self, name: str) -> Credential:
        # caller holds the lock
        for _ in range(MAX_GENERATE_ATTEMPTS):
            credential = self.generator.new_credential(name)
            if credential.access_key_id not in self._names_by_access_key:
                return credential
        raise KeyCollisionError(
            f"no unused access key id after {MAX_GENERATE_ATTEMPTS} attempts"
        )

    async def generate(self, name: str) -> Credential:
        name = validate_name(name)
        async with self._lock:
            if name in self._credentials:
                raise AlreadyExists(f"credential for '{name}' already exists", name)
            credential = self._mint(name)
            self._credentials[name] = credential
            self._names_by_access_key[credential.access_key_id] = name
            return credential

    async def fetch(self, name: str) -> Credential:
        name = validate_name(name)
        credential = self._credentials.get(name)
        if credential is None:
            raise NotFound(f"no credential for '{name}'", name)
        return credential

    async def reset(self, name: str) -> Credential:
        name = validate_name(name)
        async with self._lock:
            previous = self._credentials.get(name)
            if previous is None:
                raise NotFound(f"no credential for '{name}'", name)
            credential = self._mint(name)
            self._credentials[name] = credential
            del self._names_by_access_key[previous.access_key_id]
            self._names_by_access_key[credential.access_key_id] = name
            return credential

    async def count(self) -> int:
        return len(self._credentials)


class SQLRegistry(CredentialRegistry):
    """
    Durable registry on an SQLAlchemy async engine.

    Atomicity comes from the database: the primary key on name makes generate
    an insert-if-absent, and reset is a single UPDATE. Both return only after
    the commit.
    """

    def __init__(
        self,
        database_url: str,
        generator: Optional[CredentialGenerator] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        super().__init__(generator)
        self.engine = engine or create_async_engine(database_url, echo=False, future=True)
        self.session_factory = sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)

    async def init(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    async def generate(self, name: str) -> Credential:
        name = validate_name(name)
        for _ in range(MAX_GENERATE_ATTEMPTS):
            credential = self.generator.new_credential(name)
            async with self.session_factory() as session:
                session.add(CredentialRecord(
                    name=name,
                    access_key_id=credential.access_key_id,
                    secret_access_key=credential.secret_access_key,
                ))
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if await session.get(CredentialRecord, name) is not None:
                        raise AlreadyExists(f"credential for '{name}' already exists", name)
                    # access key id collided with another user, draw again
                    continue
            return credential
        raise KeyCollisionError(
            f"no unused access key id after {MAX_GENERATE_ATTEMPTS} attempts"
        )

    async def fetch(self, name: str) -> Credential:
        name = validate_name(name)
        async with self.session_factory() as session:
            record = await session.get(CredentialRecord, name)
            if record is None:
                raise NotFound(f"no credential for '{name}'", name)
            return record.to_credential()

    async def reset(self, name: str) -> Credential:
        name = validate_name(name)
        for _ in range(MAX_GENERATE_ATTEMPTS):
            credential = self.generator.new_credential(name)
            stmt = (
                update(CredentialRecord)
                .where(CredentialRecord.name == name)
                .values(
                    access_key_id=credential.access_key_id,
                    secret_access_key=credential.secret_access_key,
                    updated_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            async with self.session_factory() as session:
                try:
                    result = await session.execute(stmt)
                    if result.rowcount == 0:
                        await session.rollback()
                        raise NotFound(f"no credential for '{name}'", name)
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    continue
            return credential
        raise KeyCollisionError(
            f"no unused access key id after {MAX_GENERATE_ATTEMPTS} attempts"
        )

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(CredentialRecord))
            return result.scalar_one()


def create_registry(settings, generator: Optional[CredentialGenerator] = None) -> CredentialRegistry:
    """Build the registry backend selected by settings."""
    if settings.registry_backend == "sql":
        return SQLRegistry(settings.database_url, generator=generator)
    return MemoryRegistry(generator=generator)
