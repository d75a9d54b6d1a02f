from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
# Every tools/call failure (unknown tool included) reports this code.
TOOL_EXECUTION_FAILED = -32603


class RpcError(BaseModel):
    code: int
    message: str
    data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


class ToolInfo(BaseModel):
    """Discovery entry returned by tools/list."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}}, alias="inputSchema")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
