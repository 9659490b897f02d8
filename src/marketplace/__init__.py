"""Marketplace post-sale engine: fulfillment, cases, SLA compliance and commissions."""
