"""
JSON-RPC 2.0 envelope models.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class JSONRPCRequest(BaseModel):
    """A request or notification (a notification carries no `id` member)."""

    jsonrpc: Literal["2.0"]
    method: str
    params: dict[str, Any] | list[Any] | None = None
    id: str | int | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class JSONRPCError(BaseModel):
    code: int
    message: str
    data: Any = None


class JSONRPCResponse(BaseModel):
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: str | int | None = None
    result: Any = None
    error: JSONRPCError | None = None

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            body["error"] = self.error.model_dump(exclude_none=True)
        else:
            body["result"] = self.result if self.result is not None else {}
        return body


def success_response(request_id: str | int | None, result: Any) -> JSONRPCResponse:
    return JSONRPCResponse(id=request_id, result=result)


def error_response(
    request_id: str | int | None, code: int, message: str, data: Any = None
) -> JSONRPCResponse:
    return JSONRPCResponse(
        id=request_id, error=JSONRPCError(code=code, message=message, data=data)
    )
