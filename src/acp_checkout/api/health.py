"""Health-check endpoints."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from acp_checkout.api.routes import CheckoutDependencies, get_deps

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(deps: CheckoutDependencies = Depends(get_deps)):
    state_machine = deps.state_machine
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checkouts_count": await state_machine.store.count(),
        "products_count": state_machine.catalog.count(),
        "gateway": state_machine.gateway.name,
        "stripe_configured": deps.settings.stripe_configured,
    }


@router.get("/live")
async def liveness():
    return {"status": "alive"}
