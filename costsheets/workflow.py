"""
costsheets/workflow.py

Cost sheet approval workflow.

Every operation takes an explicit Actor (actor_id, actor_role) and enforces:
- role: estimator authors sheets, admin reviews items;
- state: which sheet/item states allow the action.
Guards run before any store call, so a refused action changes nothing.

Sheet:  draft -> submitted   (never back to draft; approved/rejected is the aggregate
                              view derived from item states, see CostSheet.aggregate_status)
Item:   pending -> approved_both | rejected

Persistence policy:
- Local state is only considered changed once the store confirmed (commit).
- On store failure the session is rolled back and a StoreError is raised. No retries.
- Pricing recomputation runs eagerly on every edit; it has no side effects.
- Change events and notification events are published only after commit.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import notifications
from .audit import log_action, serialize_model
from .errors import (
    DuplicateError,
    InvalidTransition,
    NotFound,
    PartialFailureError,
    PermissionDenied,
    StoreError,
    ValidationError,
)
from .events import DELETE, INSERT, UPDATE, ChangeEvent
from .extensions import db, event_bus
from .models import (
    ApprovalStatus,
    Client,
    CostSheet,
    CostSheetItem,
    QuotationOverride,
    Role,
    SheetStatus,
    Supplier,
)
from .pricing import (
    NEW_ROW_DEFAULTS,
    coerce_amount,
    coerce_quantity,
    compute_pricing,
    money,
    pricing_inputs_from,
)

logger = logging.getLogger(__name__)

MONEY_FIELDS = ("supplier_cost", "misc_cost", "misc_qty", "rea_margin_percentage")
TEXT_FIELDS = ("misc_cost_type", "misc_description", "misc_type")


class ActiveSheet(NamedTuple):
    """The authoring view of a client: its active sheet (if any) and open items."""

    sheet: Optional[CostSheet]
    items: List[CostSheetItem]

    @property
    def status(self) -> SheetStatus:
        return self.sheet.status if self.sheet else SheetStatus.DRAFT


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _require_role(actor, *roles: Role, message: str = "You do not have permission to perform this action.") -> None:
    if actor is None or actor.actor_role not in roles:
        raise PermissionDenied(message)


def _load(model, entity_id: Any, label: str):
    try:
        entity_id = int(entity_id)
    except (TypeError, ValueError):
        raise NotFound(f"{label} not found") from None
    entity = db.session.get(model, entity_id)
    if entity is None:
        raise NotFound(f"{label} not found")
    return entity


def _commit(failure_message: str) -> None:
    """Commit or roll back and raise StoreError."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("%s: %s", failure_message, exc)
        raise StoreError(failure_message) from exc


def _publish_item(item: CostSheetItem, action: str, payload: Optional[dict] = None) -> None:
    event_bus.publish(
        ChangeEvent(
            table="cost_sheet_items",
            action=action,
            row_id=item.id,
            payload=payload if payload is not None else item.to_dict(),
            sheet_id=item.cost_sheet_id,
        )
    )


def _publish_sheet(sheet: CostSheet, action: str, payload: Optional[dict] = None) -> None:
    event_bus.publish(
        ChangeEvent(
            table="cost_sheets",
            action=action,
            row_id=sheet.id,
            payload=payload if payload is not None else sheet.to_dict(),
            sheet_id=sheet.id,
        )
    )


def _currency() -> str:
    return current_app.config.get("CURRENCY_LABEL", "AED")


def _parse_optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Invalid reference: {value!r}") from None


def _parse_date(value: Any) -> date:
    if value is None or value == "":
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}") from None


def _client_supplier_id(client_id: int, value: Any) -> Optional[int]:
    """Validate an optional supplier reference belongs to the client."""
    supplier_id = _parse_optional_int(value)
    if supplier_id is None:
        return None
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None or supplier.client_id != client_id:
        raise ValidationError("Supplier does not belong to this client")
    return supplier_id


def _coerce_field(client_id: int, name: str, value: Any) -> Any:
    """Coerce one estimator-editable field to the value stored on the item."""
    if name == "date":
        return _parse_date(value)
    if name == "item":
        return (str(value) if value is not None else "").strip()
    if name in ("supplier_id", "misc_supplier_id"):
        return _client_supplier_id(client_id, value)
    if name == "qty":
        return int(coerce_quantity(value))
    if name in MONEY_FIELDS:
        # Stored at column precision so recomputation after reload is stable.
        return money(coerce_amount(value))
    if name in TEXT_FIELDS:
        return (str(value).strip() or None) if value is not None else None
    raise KeyError(name)


def _coerced_fields(client_id: int, fields: Mapping[str, Any]) -> dict:
    return {
        name: _coerce_field(client_id, name, fields[name])
        for name in CostSheetItem.EDITABLE_FIELDS
        if name in fields
    }


def _apply_fields(item: CostSheetItem, client_id: int, fields: Mapping[str, Any]) -> None:
    """
    Copy estimator-editable fields onto the item, coercing as we go, then
    recompute the derived pricing fields. Derived keys in `fields` are ignored.
    """
    for name, value in _coerced_fields(client_id, fields).items():
        setattr(item, name, value)

    item.apply_pricing()


def _has_changes(item: CostSheetItem, client_id: int, fields: Mapping[str, Any]) -> bool:
    """True when any editable field in `fields` differs from the item after coercion."""
    return any(
        getattr(item, name) != value
        for name, value in _coerced_fields(client_id, fields).items()
    )


def _new_item(sheet: CostSheet, item_number: int) -> CostSheetItem:
    return CostSheetItem(
        cost_sheet=sheet,
        item_number=item_number,
        date=date.today(),
        item="",
        qty=NEW_ROW_DEFAULTS["qty"],
        supplier_cost=money(coerce_amount(NEW_ROW_DEFAULTS["supplier_cost"])),
        misc_qty=money(coerce_amount(NEW_ROW_DEFAULTS["misc_qty"])),
        misc_cost=money(coerce_amount(NEW_ROW_DEFAULTS["misc_cost"])),
        rea_margin_percentage=money(coerce_amount(NEW_ROW_DEFAULTS["rea_margin_percentage"])),
        approval_status=ApprovalStatus.PENDING,
    )


def _item_count(sheet: CostSheet) -> int:
    if sheet.id is None:
        return 0
    return CostSheetItem.query.filter_by(cost_sheet_id=sheet.id).count()


def _can_add_items(sheet: CostSheet) -> bool:
    return sheet.status == SheetStatus.DRAFT or sheet.aggregate_status == SheetStatus.REJECTED


def _check_item_editable(item: CostSheetItem) -> None:
    if item.approval_status == ApprovalStatus.APPROVED_BOTH:
        raise InvalidTransition("Approved items can no longer be edited")
    if item.cost_sheet.status != SheetStatus.DRAFT and item.approval_status != ApprovalStatus.REJECTED:
        raise InvalidTransition("Item is under review and cannot be edited")


def _check_reviewable(item: CostSheetItem) -> None:
    if item.cost_sheet.status != SheetStatus.SUBMITTED:
        raise InvalidTransition("Cost sheet has not been submitted for approval")
    if item.approval_status != ApprovalStatus.PENDING:
        raise InvalidTransition("Only pending items can be approved or rejected")


# ---------------------------------------------------------------------
# Clients & suppliers
# ---------------------------------------------------------------------
def list_clients() -> List[Client]:
    return Client.query.order_by(Client.name.asc()).all()


def get_client(client_id: int) -> Client:
    return _load(Client, client_id, "Client")


def create_client(actor, name: str) -> Client:
    _require_role(actor, Role.ESTIMATOR, Role.ADMIN)

    name = str(name or "").strip()
    if not name:
        raise ValidationError("Client name cannot be empty")

    client = Client(name=name, created_by=actor.actor_id)
    db.session.add(client)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateError("A client with this name already exists") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to create client %r: %s", name, exc)
        raise StoreError("Failed to create client") from exc

    log_action(actor, client, "CREATE", after=serialize_model(client))
    _commit("Failed to create client")
    logger.info("Client %s created by user %s", client.id, actor.actor_id)
    return client


def list_suppliers(client_id: int) -> List[Supplier]:
    return Supplier.query.filter_by(client_id=client_id).order_by(Supplier.name.asc()).all()


def create_supplier(actor, client_id: int, name: str) -> Supplier:
    _require_role(actor, Role.ESTIMATOR, message="Only estimators can add suppliers")

    name = str(name or "").strip()
    if not name:
        raise ValidationError("Supplier name cannot be empty")

    client = _load(Client, client_id, "Client")

    supplier = Supplier(client_id=client.id, name=name)
    db.session.add(supplier)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to add supplier %r: %s", name, exc)
        raise StoreError("Failed to add supplier") from exc

    log_action(actor, supplier, "CREATE", after=serialize_model(supplier))
    _commit("Failed to add supplier")
    return supplier


def delete_supplier(actor, supplier_id: int) -> None:
    """Store foreign keys refuse deletion while items reference the supplier."""
    _require_role(actor, Role.ESTIMATOR, Role.ADMIN)
    supplier = _load(Supplier, supplier_id, "Supplier")
    before_snapshot = serialize_model(supplier)

    db.session.delete(supplier)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Failed to delete supplier %s: %s", supplier_id, exc)
        raise StoreError("Failed to delete supplier") from exc

    log_action(actor, supplier, "DELETE", before=before_snapshot)
    _commit("Failed to delete supplier")


# ---------------------------------------------------------------------
# Authoring view
# ---------------------------------------------------------------------
def _active_sheet_query(client_id: int):
    open_items = CostSheet.items.any(CostSheetItem.approval_status != ApprovalStatus.APPROVED_BOTH)
    return (
        CostSheet.query.filter(CostSheet.client_id == client_id)
        .filter(or_(CostSheet.status == SheetStatus.DRAFT, open_items))
        .order_by(CostSheet.created_at.desc(), CostSheet.id.desc())
    )


def get_active_sheet(client_id: int) -> ActiveSheet:
    """
    The client's active sheet and its items that are not yet fully approved.

    Fetch failures degrade to an empty "no sheet yet" view instead of raising.
    """
    try:
        sheet = _active_sheet_query(client_id).first()
        if sheet is None:
            return ActiveSheet(None, [])
        items = (
            CostSheetItem.query.filter(
                CostSheetItem.cost_sheet_id == sheet.id,
                CostSheetItem.approval_status != ApprovalStatus.APPROVED_BOTH,
            )
            .order_by(CostSheetItem.item_number.asc())
            .all()
        )
        return ActiveSheet(sheet, items)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Error fetching cost sheet items for client %s: %s", client_id, exc)
        return ActiveSheet(None, [])
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected error fetching cost sheet for client %s", client_id)
        return ActiveSheet(None, [])


def new_item_row(items: Iterable[Any]) -> dict:
    """Unsaved row for the editing session (no id, numbered after existing rows)."""
    row = dict(NEW_ROW_DEFAULTS)
    row.update(
        {
            "id": None,
            "item_number": len(list(items)) + 1,
            "date": date.today().isoformat(),
            "item": "",
            "supplier_id": None,
            "misc_supplier_id": None,
            "misc_cost_type": "",
            "approval_status": ApprovalStatus.PENDING.value,
            "admin_remarks": "",
        }
    )
    return recalculate_row(row)


def recalculate_row(row: Mapping[str, Any]) -> dict:
    """Return a copy of an editing-session row with derived fields recomputed."""
    result = compute_pricing(pricing_inputs_from(row))
    updated = dict(row)
    updated["total_cost"] = str(money(result.total_cost))
    updated["rea_margin"] = str(money(result.markup_amount))
    updated["actual_quoted"] = str(money(result.quoted_price))
    updated["gross_margin_percentage"] = str(money(result.gross_margin_pct))
    return updated


def _sheet_for_authoring(actor, client: Client, adding: bool) -> CostSheet:
    """Active sheet of the client, creating a draft (unflushed) on first save."""
    active = _active_sheet_query(client.id).first()
    if active is None:
        sheet = CostSheet(client_id=client.id, created_by=actor.actor_id, status=SheetStatus.DRAFT)
        db.session.add(sheet)
        return sheet
    if adding and not _can_add_items(active):
        raise InvalidTransition("Cost sheet is under review; items can no longer be added")
    return active


def add_item(actor, client_id: int, fields: Optional[Mapping[str, Any]] = None) -> CostSheetItem:
    """Create one pending item on the client's active sheet (creating the sheet if needed)."""
    _require_role(actor, Role.ESTIMATOR, message="Only estimators can add items")
    client = _load(Client, client_id, "Client")
    sheet = _sheet_for_authoring(actor, client, adding=True)

    item = _new_item(sheet, _item_count(sheet) + 1)
    try:
        _apply_fields(item, client.id, fields or {})
    except ValidationError:
        db.session.rollback()
        raise

    db.session.add(item)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to add item for client %s: %s", client.id, exc)
        raise StoreError("Failed to save new items") from exc

    log_action(actor, item, "CREATE", after=serialize_model(item))
    _commit("Failed to save new items")

    logger.info("Item %s added to sheet %s", item.id, item.cost_sheet_id)
    _publish_item(item, INSERT)
    return item


def save_sheet(actor, client_id: int, rows: List[Mapping[str, Any]]) -> ActiveSheet:
    """
    Batch save of the editing session: rows with an id are updated, rows without one
    are inserted. The sheet is created on first save. One transaction for everything.
    Rows with an id whose editable fields are unchanged are skipped, so echoing an
    item that is still under review is not an edit.
    """
    _require_role(actor, Role.ESTIMATOR, message="Only estimators can save cost sheets")
    if not rows:
        raise ValidationError("Add at least one item")

    client = _load(Client, client_id, "Client")
    new_rows = [r for r in rows if not r.get("id")]
    existing_rows = [r for r in rows if r.get("id")]

    created: List[CostSheetItem] = []
    updated: List[CostSheetItem] = []
    try:
        sheet = _sheet_for_authoring(actor, client, adding=bool(new_rows))

        for row in existing_rows:
            item = _load(CostSheetItem, row["id"], "Item")
            if item.cost_sheet is not sheet:
                raise ValidationError("Item does not belong to this cost sheet")
            if not _has_changes(item, client.id, row):
                continue
            _check_item_editable(item)
            before_snapshot = serialize_model(item)
            _apply_fields(item, client.id, row)
            db.session.flush()
            log_action(actor, item, "UPDATE", before=before_snapshot, after=serialize_model(item))
            updated.append(item)

        next_number = _item_count(sheet) + 1
        for offset, row in enumerate(new_rows):
            item = _new_item(sheet, next_number + offset)
            _apply_fields(item, client.id, row)
            db.session.add(item)
            created.append(item)

        db.session.flush()
        for item in created:
            log_action(actor, item, "CREATE", after=serialize_model(item))
    except (ValidationError, InvalidTransition, NotFound):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to save cost sheet for client %s: %s", client_id, exc)
        raise StoreError("Failed to save cost sheet") from exc

    _commit("Failed to save cost sheet")
    logger.info("Sheet %s saved: %d updated, %d new", sheet.id, len(updated), len(created))

    for item in updated:
        _publish_item(item, UPDATE)
    for item in created:
        _publish_item(item, INSERT)
    return get_active_sheet(client.id)


def update_item(actor, item_id: int, changes: Mapping[str, Any]) -> CostSheetItem:
    _require_role(actor, Role.ESTIMATOR, message="Only estimators can edit items")
    item = _load(CostSheetItem, item_id, "Item")
    _check_item_editable(item)

    before_snapshot = serialize_model(item)
    try:
        _apply_fields(item, item.cost_sheet.client_id, changes)
    except ValidationError:
        db.session.rollback()
        raise

    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to update item %s: %s", item_id, exc)
        raise StoreError("Failed to update item") from exc

    log_action(actor, item, "UPDATE", before=before_snapshot, after=serialize_model(item))
    _commit("Failed to update item")
    _publish_item(item, UPDATE)
    return item


def delete_item(actor, item_id: int) -> None:
    """Estimators while the item is editable; admins unconditionally."""
    _require_role(actor, Role.ESTIMATOR, Role.ADMIN)
    item = _load(CostSheetItem, item_id, "Item")
    if actor.actor_role == Role.ESTIMATOR:
        _check_item_editable(item)

    payload = item.to_dict()
    sheet_id = item.cost_sheet_id
    before_snapshot = serialize_model(item)

    db.session.delete(item)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to delete item %s: %s", item_id, exc)
        raise StoreError("Failed to delete item") from exc

    log_action(actor, item, "DELETE", before=before_snapshot)
    _commit("Failed to delete item")

    event_bus.publish(
        ChangeEvent(table="cost_sheet_items", action=DELETE, row_id=payload["id"], payload=payload, sheet_id=sheet_id)
    )


# ---------------------------------------------------------------------
# Submission & review
# ---------------------------------------------------------------------
def submit_sheet(actor, sheet_id: int) -> CostSheet:
    _require_role(actor, Role.ESTIMATOR, message="Only estimators can submit cost sheets")
    sheet = _load(CostSheet, sheet_id, "Cost sheet")

    if sheet.status != SheetStatus.DRAFT:
        raise InvalidTransition("Cost sheet has already been submitted")
    if _item_count(sheet) == 0:
        raise ValidationError("Add at least one item before submitting")

    before_snapshot = serialize_model(sheet)
    sheet.status = SheetStatus.SUBMITTED
    sheet.submitted_at = datetime.utcnow()

    client_name = sheet.client.name if sheet.client else "client"
    created = notifications.notify_admins(
        notifications.TITLE_APPROVAL_REQUEST,
        f"A new cost sheet for {client_name} has been submitted and requires your approval.",
        notifications.TYPE_APPROVAL_REQUEST,
    )

    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to submit sheet %s: %s", sheet_id, exc)
        raise StoreError("Failed to submit cost sheet") from exc

    log_action(actor, sheet, "SUBMIT", before=before_snapshot, after=serialize_model(sheet))
    _commit("Failed to submit cost sheet")

    logger.info("Sheet %s submitted; %d admin(s) notified", sheet.id, len(created))
    _publish_sheet(sheet, UPDATE)
    notifications.publish_created(created)
    return sheet


def _review_item(actor, item_id: int, new_status: ApprovalStatus, remarks: Optional[str]) -> CostSheetItem:
    _require_role(actor, Role.ADMIN, message="Only admins can approve or reject items")
    item = _load(CostSheetItem, item_id, "Item")
    _check_reviewable(item)

    before_snapshot = serialize_model(item)
    item.approval_status = new_status
    if remarks is not None:
        item.admin_remarks = remarks.strip() or None

    sheet = item.cost_sheet
    client_name = sheet.client.name if sheet.client else "client"
    created = []
    if sheet.created_by is not None:
        if new_status == ApprovalStatus.APPROVED_BOTH:
            price = money(coerce_amount(item.actual_quoted))
            created.append(
                notifications.notify_user(
                    sheet.created_by,
                    notifications.TITLE_APPROVED,
                    f"Supplier: {item.supplier_name or 'Unknown'} | Price: {_currency()} {price:,.2f} | Client: {client_name}",
                    notifications.TYPE_APPROVAL,
                )
            )
        else:
            message = f"An item from your cost sheet for {client_name} has been rejected."
            if item.admin_remarks:
                message += f" Remarks: {item.admin_remarks}"
            created.append(
                notifications.notify_user(
                    sheet.created_by,
                    notifications.TITLE_REJECTED,
                    message,
                    notifications.TYPE_REJECTION,
                )
            )

    action = "APPROVE" if new_status == ApprovalStatus.APPROVED_BOTH else "REJECT"
    failure = "Failed to approve item" if action == "APPROVE" else "Failed to reject item"
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("%s %s: %s", failure, item_id, exc)
        raise StoreError(failure) from exc

    log_action(actor, item, action, before=before_snapshot, after=serialize_model(item))
    _commit(failure)

    logger.info("Item %s on sheet %s -> %s by user %s", item.id, item.cost_sheet_id, new_status.value, actor.actor_id)
    _publish_item(item, UPDATE)
    notifications.publish_created(created)
    return item


def approve_item(actor, item_id: int, remarks: Optional[str] = None) -> CostSheetItem:
    """Single-stage approval: pending -> approved_both."""
    return _review_item(actor, item_id, ApprovalStatus.APPROVED_BOTH, remarks)


def reject_item(actor, item_id: int, remarks: Optional[str] = None) -> CostSheetItem:
    return _review_item(actor, item_id, ApprovalStatus.REJECTED, remarks)


def set_admin_remarks(actor, item_id: int, remarks: Optional[str], quotation_notes: Optional[str] = None) -> CostSheetItem:
    _require_role(actor, Role.ADMIN, message="Only admins can add remarks")
    item = _load(CostSheetItem, item_id, "Item")
    if item.cost_sheet.status != SheetStatus.SUBMITTED:
        raise InvalidTransition("Cost sheet has not been submitted for approval")

    before_snapshot = serialize_model(item)
    if remarks is not None:
        item.admin_remarks = remarks.strip() or None
    if quotation_notes is not None:
        item.admin_quotation_notes = quotation_notes.strip() or None

    log_action(actor, item, "UPDATE", before=before_snapshot, after=serialize_model(item))
    _commit("Failed to save remarks")
    _publish_item(item, UPDATE)
    return item


def _optional_money(value: Any):
    if value is None or value == "":
        return None
    return money(coerce_amount(value))


def choose_for_quotation(actor, item_id: int, override: Optional[QuotationOverride]) -> CostSheetItem:
    """
    Attach (or clear, with None) the admin's quotation override.

    The override is for display/export only; canonical pricing fields are untouched.
    """
    _require_role(actor, Role.ADMIN, message="Only admins can choose quotation figures")
    item = _load(CostSheetItem, item_id, "Item")
    if item.cost_sheet.status != SheetStatus.SUBMITTED:
        raise InvalidTransition("Cost sheet has not been submitted for approval")

    before_snapshot = serialize_model(item)
    if override is None:
        item.admin_chosen_for_quotation = False
        item.admin_chosen_supplier_id = None
        item.admin_chosen_misc_supplier_id = None
        item.admin_chosen_supplier_cost = None
        item.admin_chosen_misc_cost = None
        item.admin_chosen_total_cost = None
        item.admin_chosen_rea_margin = None
        item.admin_chosen_actual_quoted = None
    else:
        client_id = item.cost_sheet.client_id
        item.admin_chosen_supplier_id = _client_supplier_id(client_id, override.supplier_id)
        item.admin_chosen_misc_supplier_id = _client_supplier_id(client_id, override.misc_supplier_id)
        item.admin_chosen_supplier_cost = _optional_money(override.supplier_cost)
        item.admin_chosen_misc_cost = _optional_money(override.misc_cost)
        item.admin_chosen_total_cost = _optional_money(override.total_cost)
        item.admin_chosen_rea_margin = _optional_money(override.rea_margin)
        item.admin_chosen_actual_quoted = _optional_money(override.actual_quoted)
        if override.notes is not None:
            item.admin_quotation_notes = override.notes.strip() or None
        item.admin_chosen_for_quotation = True

    log_action(actor, item, "UPDATE", before=before_snapshot, after=serialize_model(item))
    _commit("Failed to save quotation choice")
    _publish_item(item, UPDATE)
    return item


# ---------------------------------------------------------------------
# Deleting a sheet (two committed steps)
# ---------------------------------------------------------------------
def _delete_sheet_items(sheet_id: int) -> int:
    deleted = CostSheetItem.query.filter_by(cost_sheet_id=sheet_id).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def _delete_sheet_record(sheet: CostSheet) -> None:
    db.session.delete(sheet)
    db.session.commit()


def delete_sheet(actor, sheet_id: int) -> None:
    """
    Remove every item of the sheet, then the sheet record.

    Items are deleted and committed first so the sheet is never removed while rows
    still reference it. If that step fails nothing changed (StoreError). If the second
    step fails the items are already gone and PartialFailureError(step="sheet") is raised.
    """
    _require_role(actor, Role.ESTIMATOR, Role.ADMIN)
    sheet = _load(CostSheet, sheet_id, "Cost sheet")
    payload = sheet.to_dict()

    try:
        deleted = _delete_sheet_items(sheet.id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to delete items of sheet %s: %s", sheet_id, exc)
        raise StoreError("Failed to delete cost sheet items") from exc

    before_snapshot = serialize_model(sheet)
    try:
        log_action(actor, sheet, "DELETE", before=before_snapshot)
        _delete_sheet_record(sheet)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Deleted %d item(s) but failed to delete sheet %s: %s", deleted, sheet_id, exc)
        raise PartialFailureError("Failed to delete cost sheet", step="sheet") from exc

    logger.info("Sheet %s deleted with %d item(s) by user %s", sheet_id, deleted, actor.actor_id)
    event_bus.publish(ChangeEvent(table="cost_sheets", action=DELETE, row_id=payload["id"], payload=payload, sheet_id=payload["id"]))
