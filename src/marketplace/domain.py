"""Marketplace bounded context: post-sale fulfillment and dispute resolution.

Decomposes multi-seller orders into per-store sub-orders, drives them through
their fulfillment state machine, manages buyer return/complaint cases, tracks
SLA compliance for those cases and keeps seller commissions consistent as
refunds change the effective order value. Uses CQRS: every aggregate is
persisted as current state and publishes domain events for its read models.
"""

from protean.domain import Domain

marketplace = Domain(name="marketplace")
