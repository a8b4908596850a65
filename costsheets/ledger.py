"""
costsheets/ledger.py

Read models over cost sheet items:
- approved_ledger(): items in final approval grouped by client
- approved_items(client_id): the approved rows of one client (export source)
- client_records(client_id): every item of a client, newest first, with totals

Nothing here writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import joinedload

from .extensions import db
from .models import ApprovalStatus, Client, CostSheet, CostSheetItem
from .pricing import coerce_amount, money


@dataclass
class LedgerEntry:
    client_id: int
    client_name: str
    submitted_at: Optional[datetime]
    total_items: int = 0
    total_cost: Decimal = Decimal("0.00")

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "client_name": self.client_name,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "total_items": self.total_items,
            "total_cost": str(money(self.total_cost)),
        }


@dataclass
class LedgerRow:
    """One exported/displayed line. Admin quotation overrides are already applied."""

    item_number: int
    date: Optional[date]
    item: str
    supplier_name: str
    qty: int
    supplier_cost: Decimal
    misc_cost: Decimal
    total_cost: Decimal
    rea_margin: Decimal
    actual_quoted: Decimal
    approval_status: str = ApprovalStatus.APPROVED_BOTH.value
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "item_number": self.item_number,
            "date": self.date.isoformat() if self.date else None,
            "item": self.item,
            "supplier_name": self.supplier_name,
            "qty": self.qty,
            "supplier_cost": str(self.supplier_cost),
            "misc_cost": str(self.misc_cost),
            "total_cost": str(self.total_cost),
            "rea_margin": str(self.rea_margin),
            "actual_quoted": str(self.actual_quoted),
            "approval_status": self.approval_status,
        }


@dataclass
class ClientRecords:
    rows: List[LedgerRow] = field(default_factory=list)
    total_cost: Decimal = Decimal("0.00")
    total_quoted: Decimal = Decimal("0.00")

    def to_dict(self) -> dict:
        return {
            "records": [r.to_dict() for r in self.rows],
            "total_cost": str(money(self.total_cost)),
            "total_quoted": str(money(self.total_quoted)),
        }


def _amount(value) -> Decimal:
    return money(coerce_amount(value))


def _row_for(item: CostSheetItem, use_override: bool = True) -> LedgerRow:
    supplier_name = item.supplier_name or "N/A"
    supplier_cost = _amount(item.supplier_cost)
    misc_cost = _amount(item.misc_cost)
    total_cost = _amount(item.total_cost)
    rea_margin = _amount(item.rea_margin)
    actual_quoted = _amount(item.actual_quoted)

    override = item.quotation_override if use_override else None
    if override is not None:
        if override.supplier_id is not None and item.admin_chosen_supplier is not None:
            supplier_name = item.admin_chosen_supplier.name
        if override.supplier_cost is not None:
            supplier_cost = _amount(override.supplier_cost)
        if override.misc_cost is not None:
            misc_cost = _amount(override.misc_cost)
        if override.total_cost is not None:
            total_cost = _amount(override.total_cost)
        if override.rea_margin is not None:
            rea_margin = _amount(override.rea_margin)
        if override.actual_quoted is not None:
            actual_quoted = _amount(override.actual_quoted)

    return LedgerRow(
        item_number=item.item_number,
        date=item.date,
        item=item.item or "",
        supplier_name=supplier_name,
        qty=item.qty or 0,
        supplier_cost=supplier_cost,
        misc_cost=misc_cost,
        total_cost=total_cost,
        rea_margin=rea_margin,
        actual_quoted=actual_quoted,
        approval_status=item.approval_status.value,
        created_at=item.created_at,
    )


def _approved_query():
    return (
        CostSheetItem.query.join(CostSheet, CostSheetItem.cost_sheet_id == CostSheet.id)
        .filter(CostSheetItem.approval_status == ApprovalStatus.APPROVED_BOTH)
        .options(
            joinedload(CostSheetItem.supplier),
            joinedload(CostSheetItem.admin_chosen_supplier),
            joinedload(CostSheetItem.cost_sheet).joinedload(CostSheet.client),
        )
    )


def approved_ledger() -> List[LedgerEntry]:
    """
    Approved items grouped by client, with item count and summed total cost.

    submitted_at is the latest submission among the client's approved items.
    Totals use the canonical (engine-computed) total cost.
    """
    groups: Dict[int, LedgerEntry] = {}
    for item in _approved_query().order_by(CostSheetItem.date.desc()).all():
        sheet = item.cost_sheet
        entry = groups.get(sheet.client_id)
        if entry is None:
            entry = LedgerEntry(
                client_id=sheet.client_id,
                client_name=sheet.client.name if sheet.client else "",
                submitted_at=sheet.submitted_at,
            )
            groups[sheet.client_id] = entry
        elif sheet.submitted_at and (entry.submitted_at is None or sheet.submitted_at > entry.submitted_at):
            entry.submitted_at = sheet.submitted_at

        entry.total_items += 1
        entry.total_cost += coerce_amount(item.total_cost)

    return sorted(groups.values(), key=lambda e: e.client_name.lower())


def approved_items(client_id: int) -> List[LedgerRow]:
    items = (
        _approved_query()
        .filter(CostSheet.client_id == client_id)
        .order_by(CostSheetItem.item_number.asc(), CostSheetItem.id.asc())
        .all()
    )
    return [_row_for(item) for item in items]


def client_records(client_id: int) -> ClientRecords:
    """Every item of the client in any status, newest first."""
    items = (
        CostSheetItem.query.join(CostSheet, CostSheetItem.cost_sheet_id == CostSheet.id)
        .filter(CostSheet.client_id == client_id)
        .options(joinedload(CostSheetItem.supplier))
        .order_by(CostSheetItem.created_at.desc(), CostSheetItem.id.desc())
        .all()
    )
    records = ClientRecords()
    for item in items:
        row = _row_for(item, use_override=False)
        records.rows.append(row)
        records.total_cost += row.total_cost
        records.total_quoted += row.actual_quoted
    return records


def client_name(client_id: int) -> Optional[str]:
    client = db.session.get(Client, client_id)
    return client.name if client else None
