from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder

from .api_models import (
    EventResponse,
    ExecuteRequest,
    ExecuteResponse,
    NodeResponse,
    RebalanceResponse,
    ReleaseRequest,
    RouteRequest,
    StatusResponse,
)
from .controller import ResilienceController
from .errors import BothFailed, CapacityExhausted, OperationFailure
from .health import http_failed, http_operation
from .rebalancer import Rebalancer
from .settings import Settings, settings
from .tree import NodeRef


def _unconfigured(name: str):
    def op(payload: Any = None) -> Any:
        raise RuntimeError(f"{name} is not set")

    return op


def build_controller(config: Settings | None = None) -> ResilienceController:
    """Controller whose primary/fallback call the configured HTTP endpoints."""
    config = (config or settings).validate()
    primary = (
        http_operation(config.primary_url, timeout_s=config.http_timeout_s, method="POST")
        if config.primary_url
        else _unconfigured("RSC_PRIMARY_URL")
    )
    fallback = (
        http_operation(config.fallback_url, timeout_s=config.http_timeout_s, method="POST")
        if config.fallback_url
        else _unconfigured("RSC_FALLBACK_URL")
    )
    return ResilienceController(primary, fallback, config=config, failure_predicate=http_failed)


def _node(ref: NodeRef) -> NodeResponse:
    return NodeResponse(
        id=ref.id,
        parent_id=ref.parent_id,
        capacity=ref.capacity,
        load=ref.load,
        load_pct=ref.load_pct,
        state=ref.state.value,
        children=list(ref.children),
    )


def create_app(controller: ResilienceController | None = None, run_rebalancer: bool = True) -> FastAPI:
    ctl = controller or build_controller()
    rebalancer = Rebalancer(ctl.tree, interval_s=ctl.config.rebalance_interval_s)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if run_rebalancer:
            rebalancer.start()
        try:
            yield
        finally:
            rebalancer.stop(timeout_s=1.0)

    app = FastAPI(title="Resilient Self-measuring Controller", lifespan=lifespan)
    app.state.controller = ctl
    app.state.rebalancer = rebalancer

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/status", response_model=StatusResponse)
    def status() -> StatusResponse:
        return StatusResponse(**ctl.status().as_dict())

    @app.get("/nodes", response_model=list[NodeResponse])
    def nodes() -> list[NodeResponse]:
        return [_node(n) for n in ctl.tree.nodes()]

    @app.get("/events", response_model=list[EventResponse])
    def events(limit: int = 100) -> list[EventResponse]:
        return [
            EventResponse(id=e.id, ts=e.ts, level=e.level, message=e.message, context=jsonable_encoder(e.context))
            for e in ctl.events.latest(limit)
        ]

    @app.post("/execute", response_model=ExecuteResponse)
    def execute(req: ExecuteRequest) -> ExecuteResponse:
        try:
            res = ctl.execute(req.payload)
        except BothFailed as e:
            raise HTTPException(status_code=502, detail={"error": "both_failed", "primary": str(e.primary), "fallback": str(e.fallback)})
        except OperationFailure as e:
            raise HTTPException(status_code=502, detail={"error": type(e).__name__, "message": str(e)})
        return ExecuteResponse(
            value=jsonable_encoder(res.value),
            state=res.state.label,
            tension=res.tension,
            path=res.path.value,
            rebalance_action=res.rebalance_action,
        )

    @app.post("/route", response_model=NodeResponse)
    def route(req: RouteRequest) -> NodeResponse:
        try:
            return _node(ctl.route(req.weight))
        except CapacityExhausted as e:
            raise HTTPException(status_code=409, detail=str(e))

    @app.post("/release")
    def release(req: ReleaseRequest) -> dict[str, float]:
        try:
            return {"released": ctl.release(req.node_id, req.weight)}
        except KeyError:
            raise HTTPException(status_code=404, detail=f"unknown node {req.node_id}")

    @app.post("/rebalance", response_model=RebalanceResponse)
    def rebalance() -> RebalanceResponse:
        transfers = ctl.rebalance()
        return RebalanceResponse(
            transfers=len(transfers),
            moved=sum(t.amount for t in transfers),
            balance_score=ctl.tree.balance_score(),
        )

    return app
