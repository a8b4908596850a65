"""
Cost Sheets – Domain Models

Tables:
- users / user_roles (login + role: estimator | admin)
- clients, suppliers (suppliers are scoped to a client)
- cost_sheets, cost_sheet_items (quotation + priced line items)
- notifications (per-user inbox)
- audit_logs (who changed what)

IMPORTANT:
- Derived pricing fields on CostSheetItem (total_cost, rea_margin, actual_quoted) are
  only ever written by CostSheetItem.apply_pricing(); callers never set them directly.
- The admin_chosen_* columns are a display/export override (QuotationOverride).
  They never feed back into the pricing engine.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .pricing import PricingResult, compute_pricing, money, pricing_inputs_from


# ---------------------------------------------------------------------
# Closed enumerations
# ---------------------------------------------------------------------
class Role(str, enum.Enum):
    ESTIMATOR = "estimator"
    ADMIN = "admin"


class SheetStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    # Legacy two-stage approval values; kept so old rows load.
    APPROVED_ADMIN_A = "approved_admin_a"
    APPROVED_ADMIN_B = "approved_admin_b"
    APPROVED_BOTH = "approved_both"
    REJECTED = "rejected"


def _enum_column(enum_cls, name: str):
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


# ---------------------------------------------------------------------
# Users & roles
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user. Exactly one UserRole row carries the role."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    role_entry = db.relationship(
        "UserRole",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def role(self) -> Role | None:
        return self.role_entry.role if self.role_entry else None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_estimator(self) -> bool:
        return self.role == Role.ESTIMATOR

    def __repr__(self):
        return f"<User {self.email}>"


class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(_enum_column(Role, "user_role"), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User", back_populates="role_entry")


# ---------------------------------------------------------------------
# Clients & suppliers
# ---------------------------------------------------------------------
class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    suppliers = db.relationship("Supplier", back_populates="client", lazy=True)
    cost_sheets = db.relationship("CostSheet", back_populates="client", lazy=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Client {self.name}>"


class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    client = db.relationship("Client", back_populates="suppliers")

    def to_dict(self) -> dict:
        return {"id": self.id, "client_id": self.client_id, "name": self.name}

    def __repr__(self):
        return f"<Supplier {self.name}>"


# ---------------------------------------------------------------------
# Cost sheets
# ---------------------------------------------------------------------
class CostSheet(db.Model):
    __tablename__ = "cost_sheets"

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    status = db.Column(
        _enum_column(SheetStatus, "sheet_status"),
        nullable=False,
        default=SheetStatus.DRAFT,
        index=True,
    )
    submitted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship("Client", back_populates="cost_sheets")
    creator = db.relationship("User", foreign_keys=[created_by])

    # No ORM cascade: items are deleted explicitly before the sheet (see workflow.delete_sheet).
    items = db.relationship(
        "CostSheetItem",
        back_populates="cost_sheet",
        lazy=True,
        order_by="CostSheetItem.item_number",
        passive_deletes="all",
    )

    @property
    def aggregate_status(self) -> SheetStatus:
        """
        Sheet-level approval view derived from item states.

        - draft stays draft
        - every item approved_both -> approved
        - nothing pending and at least one rejected -> rejected
        - otherwise the stored status (submitted)
        """
        if self.status == SheetStatus.DRAFT or not self.items:
            return self.status
        statuses = {item.approval_status for item in self.items}
        if statuses == {ApprovalStatus.APPROVED_BOTH}:
            return SheetStatus.APPROVED
        if ApprovalStatus.PENDING not in statuses and ApprovalStatus.REJECTED in statuses:
            return SheetStatus.REJECTED
        return self.status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "created_by": self.created_by,
            "status": self.status.value,
            "aggregate_status": self.aggregate_status.value,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }


@dataclass(frozen=True)
class QuotationOverride:
    """Admin-chosen supplier/cost figures used when quoting (display/export only)."""

    supplier_id: int | None = None
    misc_supplier_id: int | None = None
    supplier_cost: Decimal | None = None
    misc_cost: Decimal | None = None
    total_cost: Decimal | None = None
    rea_margin: Decimal | None = None
    actual_quoted: Decimal | None = None
    notes: str | None = None


class CostSheetItem(db.Model):
    __tablename__ = "cost_sheet_items"

    # Fields an estimator may set; everything derived is recomputed from these.
    EDITABLE_FIELDS = (
        "date",
        "item",
        "supplier_id",
        "misc_supplier_id",
        "qty",
        "supplier_cost",
        "misc_cost",
        "misc_qty",
        "misc_cost_type",
        "misc_description",
        "misc_type",
        "rea_margin_percentage",
    )

    id = db.Column(db.Integer, primary_key=True)

    cost_sheet_id = db.Column(
        db.Integer,
        db.ForeignKey("cost_sheets.id"),
        nullable=False,
        index=True,
    )

    item_number = db.Column(db.Integer, nullable=False)
    date = db.Column(db.Date, nullable=False, default=date.today)
    item = db.Column(db.Text, nullable=False, default="")

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    misc_supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    qty = db.Column(db.Integer, nullable=False, default=1)
    supplier_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    misc_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    misc_qty = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    misc_cost_type = db.Column(db.String(120), nullable=True)
    misc_description = db.Column(db.Text, nullable=True)
    misc_type = db.Column(db.String(120), nullable=True)

    # Derived (pricing engine)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    rea_margin_percentage = db.Column(db.Numeric(7, 2), nullable=False, default=0)
    rea_margin = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    actual_quoted = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    approval_status = db.Column(
        _enum_column(ApprovalStatus, "approval_status"),
        nullable=False,
        default=ApprovalStatus.PENDING,
        index=True,
    )
    approved_by_admin_a = db.Column(db.Boolean, nullable=False, default=False)
    approved_by_admin_b = db.Column(db.Boolean, nullable=False, default=False)

    admin_remarks = db.Column(db.Text, nullable=True)
    admin_quotation_notes = db.Column(db.Text, nullable=True)

    admin_chosen_for_quotation = db.Column(db.Boolean, nullable=False, default=False)
    admin_chosen_supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    admin_chosen_misc_supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    admin_chosen_supplier_cost = db.Column(db.Numeric(12, 2), nullable=True)
    admin_chosen_misc_cost = db.Column(db.Numeric(12, 2), nullable=True)
    admin_chosen_total_cost = db.Column(db.Numeric(12, 2), nullable=True)
    admin_chosen_rea_margin = db.Column(db.Numeric(12, 2), nullable=True)
    admin_chosen_actual_quoted = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    cost_sheet = db.relationship("CostSheet", back_populates="items")
    supplier = db.relationship("Supplier", foreign_keys=[supplier_id])
    misc_supplier = db.relationship("Supplier", foreign_keys=[misc_supplier_id])
    admin_chosen_supplier = db.relationship("Supplier", foreign_keys=[admin_chosen_supplier_id])

    def apply_pricing(self) -> PricingResult:
        """Recompute derived fields from the raw inputs (idempotent)."""
        result = compute_pricing(pricing_inputs_from(self))
        self.total_cost = money(result.total_cost)
        self.rea_margin = money(result.markup_amount)
        self.actual_quoted = money(result.quoted_price)
        return result

    @property
    def gross_margin_percentage(self) -> Decimal:
        return compute_pricing(pricing_inputs_from(self)).gross_margin_pct

    @property
    def supplier_name(self) -> str | None:
        return self.supplier.name if self.supplier else None

    @property
    def quotation_override(self) -> QuotationOverride | None:
        if not self.admin_chosen_for_quotation:
            return None
        return QuotationOverride(
            supplier_id=self.admin_chosen_supplier_id,
            misc_supplier_id=self.admin_chosen_misc_supplier_id,
            supplier_cost=self.admin_chosen_supplier_cost,
            misc_cost=self.admin_chosen_misc_cost,
            total_cost=self.admin_chosen_total_cost,
            rea_margin=self.admin_chosen_rea_margin,
            actual_quoted=self.admin_chosen_actual_quoted,
            notes=self.admin_quotation_notes,
        )

    def to_dict(self) -> dict:
        override = self.quotation_override
        return {
            "id": self.id,
            "cost_sheet_id": self.cost_sheet_id,
            "item_number": self.item_number,
            "date": self.date.isoformat() if self.date else None,
            "item": self.item,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "misc_supplier_id": self.misc_supplier_id,
            "qty": self.qty,
            "supplier_cost": str(_to_decimal(self.supplier_cost)),
            "misc_cost": str(_to_decimal(self.misc_cost)),
            "misc_qty": str(_to_decimal(self.misc_qty)),
            "misc_cost_type": self.misc_cost_type,
            "misc_description": self.misc_description,
            "misc_type": self.misc_type,
            "total_cost": str(_to_decimal(self.total_cost)),
            "rea_margin_percentage": str(_to_decimal(self.rea_margin_percentage)),
            "rea_margin": str(_to_decimal(self.rea_margin)),
            "actual_quoted": str(_to_decimal(self.actual_quoted)),
            "gross_margin_percentage": str(money(self.gross_margin_percentage)),
            "approval_status": self.approval_status.value,
            "admin_remarks": self.admin_remarks,
            "quotation_override": _override_dict(override),
        }


def _override_dict(override: QuotationOverride | None) -> dict | None:
    if override is None:
        return None
    return {
        key: (str(value) if isinstance(value, Decimal) else value)
        for key, value in asdict(override).items()
    }


# ---------------------------------------------------------------------
# Notifications & audit
# ---------------------------------------------------------------------
class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(50), nullable=False, index=True)
    read = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "read": self.read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AuditLog(db.Model):
    """Who did what to which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    role_snapshot = db.Column(db.String(20), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
