"""Marketplace FastAPI application.

Web server that processes marketplace commands synchronously via HTTP.
Each request runs inside the marketplace domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - default/"test" → event_processing = "sync"  (handlers fire in UoW)
#   - "production"   → event_processing = "async" (handlers fire via Engine)
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketplace.domain import marketplace
from marketplace.utils.logging import bind_request_context, clear_request_context, configure_logging

configure_logging()
marketplace.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Marketplace Post-Sale API",
    description="Sub-order fulfillment, return cases, SLA compliance and seller commissions",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the marketplace domain context and bind the actor for log lines."""
    clear_request_context()
    bind_request_context(
        path=request.url.path,
        actor_id=request.headers.get("x-actor-id"),
        actor_role=request.headers.get("x-actor-role"),
    )
    with marketplace.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from marketplace.api import (  # noqa: E402
    case_router,
    commission_router,
    order_router,
    sla_router,
    sub_order_router,
)

app.include_router(order_router)
app.include_router(sub_order_router)
app.include_router(case_router)
app.include_router(sla_router)
app.include_router(commission_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domain": {"name": marketplace.name},
        }
    )
