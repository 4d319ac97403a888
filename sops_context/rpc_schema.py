import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

RequestId = Union[StrictStr, StrictInt, StrictFloat, None]

# JSON-RPC 2.0 error codes
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Code used for errors raised by a registered method.
METHOD_ERROR = 0


class MalformedRequest(ValueError):
    """A line that is not a single well-formed JSON-RPC request object."""


class RPCRequest(BaseModel):
    jsonrpc: Literal["2.0"]
    method: StrictStr
    params: Optional[Union[Dict[str, Any], List[Any]]] = None
    id: RequestId = None

    @property
    def expects_response(self) -> bool:
        # Notifications omit "id" entirely; an explicit null still gets an answer.
        return "id" in self.model_fields_set


class TransformParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: StrictStr = Field(..., description="Full document text")


class TransformResult(BaseModel):
    text: str


class RPCError(BaseModel):
    code: int
    message: str
    data: Optional[Dict[str, Any]] = None


class RPCResponse(BaseModel):
    id: RequestId = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[RPCError] = None

    def to_line(self) -> str:
        """Compact JSON envelope terminated by exactly one newline."""
        envelope: Dict[str, Any] = {"jsonrpc": "2.0", "id": self.id}
        if self.error is not None:
            envelope["error"] = self.error.model_dump(exclude_none=True)
        else:
            envelope["result"] = self.result
        return json.dumps(envelope, ensure_ascii=False, separators=(",", ":")) + "\n"


def parse_request(line: str) -> RPCRequest:
    try:
        return RPCRequest.model_validate_json(line)
    except ValidationError as e:
        raise MalformedRequest(f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e


def success(request_id: RequestId, result: Dict[str, Any]) -> RPCResponse:
    return RPCResponse(id=request_id, result=result)


def failure(request_id: RequestId, code: int, message: str, data: Optional[Dict[str, Any]] = None) -> RPCResponse:
    return RPCResponse(id=request_id, error=RPCError(code=code, message=message, data=data))
