from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    state: str = Field(..., description="nominal|observing|degraded")
    tension: float = Field(..., ge=0.0, le=1.0)
    balance_score: float = Field(..., ge=0.0, le=1.0)


class NodeResponse(BaseModel):
    id: int
    parent_id: int | None = None
    capacity: float
    load: float
    load_pct: float
    state: str = Field(..., description="idle|loaded|saturated")
    children: list[int] = Field(default_factory=list)


class EventResponse(BaseModel):
    id: int
    ts: str
    level: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)


class ExecuteRequest(BaseModel):
    payload: Any = None


class ExecuteResponse(BaseModel):
    value: Any = None
    state: str
    tension: float
    path: str = Field(..., description="primary|fallback")
    rebalance_action: str | None = None


class RouteRequest(BaseModel):
    weight: float = Field(..., gt=0)


class ReleaseRequest(BaseModel):
    node_id: int
    weight: float = Field(..., ge=0)


class RebalanceResponse(BaseModel):
    transfers: int
    moved: float
    balance_score: float
