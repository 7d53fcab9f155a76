"""
RPC wire protocol.

Requests and responses follow a JSON-RPC 1.0 style envelope:

    {"method": "Auth.Generate", "params": [{"User": "alice"}], "id": 1}
    {"result": {...}, "error": null, "id": 1}

Field names inside params and results use the storage controller's
PascalCase spelling (User, Name, AccessKeyID, ...).
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from keyservice.auth.models import Credential

PARSE_ERROR = "ParseError"
INVALID_REQUEST = "InvalidRequest"
METHOD_NOT_FOUND = "MethodNotFound"
UNSUPPORTED_MEDIA_TYPE = "UnsupportedMediaType"
INTERNAL_ERROR = "InternalError"


class Method(str, Enum):
    """The closed set of callable RPC methods."""
    AUTH_GENERATE = "Auth.Generate"
    AUTH_FETCH = "Auth.Fetch"
    AUTH_RESET = "Auth.Reset"
    SERVER_MEMSTATS = "Server.MemStats"
    SERVER_SYSINFO = "Server.SysInfo"


class RPCError(Exception):
    """An error reported to the caller inside the response envelope."""

    def __init__(self, code: str, message: str, status_code: int = 400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code

    def to_payload(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class RPCRequest(BaseModel):
    """Request envelope."""
    method: str
    params: Any = None
    id: Any = None

    def argument(self) -> Dict[str, Any]:
        """Return the single argument object carried in params."""
        params = self.params
        if isinstance(params, list):
            params = params[0] if params else None
        if params is None:
            return {}
        if not isinstance(params, dict):
            raise RPCError(INVALID_REQUEST, "params must hold a single JSON object")
        return params


class AuthArgs(WireModel):
    user: str = Field("", alias="User")

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "AuthArgs":
        try:
            return cls.model_validate(params)
        except ValidationError as e:
            raise RPCError(INVALID_REQUEST, f"invalid Auth arguments: {e.errors()[0]['msg']}")


class AuthReply(WireModel):
    name: str = Field(alias="Name")
    access_key_id: str = Field(alias="AccessKeyID")
    secret_access_key: str = Field(alias="SecretAccessKey")

    @classmethod
    def from_credential(cls, credential: Credential) -> "AuthReply":
        return cls(
            name=credential.name,
            access_key_id=credential.access_key_id,
            secret_access_key=credential.secret_access_key,
        )


class MemStatsReply(WireModel):
    max_rss: int = Field(alias="MaxRSS")
    gc_counts: List[int] = Field(alias="GCCounts")
    gc_collections: int = Field(alias="GCCollections")
    gc_collected: int = Field(alias="GCCollected")
    objects: int = Field(alias="Objects")


class SysInfoReply(WireModel):
    hostname: str = Field(alias="Hostname")
    sys_os: str = Field(alias="SysOS")
    sys_arch: str = Field(alias="SysARCH")
    sys_cpus: int = Field(alias="SysCPUS")
    threads: int = Field(alias="Threads")
    python_version: str = Field(alias="PythonVersion")
    pid: int = Field(alias="PID")
    mem_stats: MemStatsReply = Field(alias="MemStats")


def rpc_result(result: WireModel, request_id: Any = None) -> Dict[str, Any]:
    return {"result": result.to_wire(), "error": None, "id": request_id}


def rpc_error(error: RPCError, request_id: Any = None) -> Dict[str, Any]:
    return {"result": None, "error": error.to_payload(), "id": request_id}


def parse_method(name: Optional[str]) -> Method:
    """Resolve a method name to its Method member."""
    try:
        return Method(name)
    except ValueError:
        raise RPCError(METHOD_NOT_FOUND, f"unknown method '{name}'")
