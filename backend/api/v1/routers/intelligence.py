"""
Intelligence Router: the multiplexed business_intelligence call.

Failures are reported inside the envelope (isError=true) with HTTP 200,
the same way they are reported to any other caller of the dispatcher.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field

from api.deps import get_call_meta, get_caller_id, get_dispatcher
from dispatch.dispatcher import Dispatcher, describe_operations

router = APIRouter(prefix="/api/v1/intelligence", tags=["intelligence"])

TOOL_NAME = "business_intelligence"


# ─── Schemas ────────────────────────────────────────────────────────────────


class ContentBlock(BaseModel):
    type: str
    text: str


class CallResponse(BaseModel):
    content: list[ContentBlock]
    is_error: bool | None = Field(None, alias="isError")

    model_config = ConfigDict(populate_by_name=True)


class OperationInfo(BaseModel):
    name: str
    required_parameters: list[str] = Field(..., alias="requiredParameters")

    model_config = ConfigDict(populate_by_name=True)


class ToolDescription(BaseModel):
    name: str
    description: str
    operations: list[OperationInfo]
    formats: list[str]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/call", response_model=CallResponse, response_model_exclude_none=True)
async def call_operation(
    arguments: dict[str, Any] = Body(...),
    meta: dict = Depends(get_call_meta),
    caller: str | None = Depends(get_caller_id),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Run one operation; a bearer header takes precedence over an authToken field."""
    return await dispatcher.call(arguments, meta=meta, caller=caller)


@router.get("/operations", response_model=ToolDescription)
async def list_operations():
    """Describe the tool: every operation and the parameters it requires."""
    return {
        "name": TOOL_NAME,
        "description": "Customer, sales, inventory and financial analytics with record management and reporting",
        "operations": describe_operations(),
        "formats": ["json", "csv", "pdf"],
    }
