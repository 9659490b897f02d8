"""Commission read side — per-seller summaries and per-order rows.

Everything is derived from CommissionRecords at read time; nothing here is
cached, so a refund applied yesterday shows up in today's report without a
migration step.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from protean.utils.globals import current_domain

from marketplace.commission.commission import CommissionRecord
from marketplace.directory import get_directory
from marketplace.settings import UNKNOWN_SELLER_LABEL
from marketplace.shared.clock import as_utc
from marketplace.shared.money import to_decimal


@dataclass(frozen=True)
class SellerCommissionSummary:
    store_id: str
    store_name: str
    order_count: int
    gmv: Decimal
    commission: Decimal
    net_payout: Decimal


@dataclass(frozen=True)
class SellerOrderRow:
    order_id: str
    store_id: str
    order_amount: Decimal
    refunded_amount: Decimal
    commission_rate: Decimal
    net_commission: Decimal
    gmv: Decimal
    net_payout: Decimal
    calculated_at: datetime


def _records(start=None, end=None, store_id=None) -> list[CommissionRecord]:
    repo = current_domain.repository_for(CommissionRecord)
    if store_id is not None:
        records = repo._dao.query.filter(store_id=str(store_id)).all().items
    else:
        records = repo._dao.query.all().items

    selected = []
    for record in records:
        calculated = as_utc(record.calculated_at)
        if start is not None and calculated < as_utc(start):
            continue
        if end is not None and calculated > as_utc(end):
            continue
        selected.append(record)
    return selected


def store_display_name(store_id: str) -> str:
    return get_directory().store_name(store_id) or UNKNOWN_SELLER_LABEL


def seller_summary(start=None, end=None) -> list[SellerCommissionSummary]:
    """GMV, commission and payout per seller for records calculated in the range, highest GMV first."""
    groups: dict[str, list[CommissionRecord]] = {}
    for record in _records(start, end):
        groups.setdefault(str(record.store_id), []).append(record)

    summaries = []
    for store_id, records in groups.items():
        summaries.append(
            SellerCommissionSummary(
                store_id=store_id,
                store_name=store_display_name(store_id),
                order_count=len({str(r.order_id) for r in records}),
                gmv=sum((r.gmv for r in records), Decimal("0.00")),
                commission=sum((to_decimal(r.net_commission_amount) for r in records), Decimal("0.00")),
                net_payout=sum((r.net_payout for r in records), Decimal("0.00")),
            )
        )
    return sorted(summaries, key=lambda s: (-s.gmv, s.store_name))


def seller_order_rows(store_id: str, start=None, end=None) -> list[SellerOrderRow]:
    """One row per commission record of a seller, newest first."""
    rows = [
        SellerOrderRow(
            order_id=str(record.order_id),
            store_id=str(record.store_id),
            order_amount=to_decimal(record.order_amount),
            refunded_amount=to_decimal(record.refunded_amount),
            commission_rate=Decimal(str(record.commission_rate)),
            net_commission=to_decimal(record.net_commission_amount),
            gmv=record.gmv,
            net_payout=record.net_payout,
            calculated_at=as_utc(record.calculated_at),
        )
        for record in _records(start, end, store_id=store_id)
    ]
    return sorted(rows, key=lambda row: row.calculated_at, reverse=True)
