"""Marketplace API package."""

from marketplace.api.routes import case_router, commission_router, order_router, sla_router, sub_order_router

__all__ = ["order_router", "sub_order_router", "case_router", "sla_router", "commission_router"]
