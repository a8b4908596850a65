"""
Cost Sheet Routes

Authoring (estimator):
- GET    /cost-sheets/client/<client_id>          active sheet, open items, new row template
- POST   /cost-sheets/client/<client_id>/items    add one item
- POST   /cost-sheets/client/<client_id>/save     batch save {"rows": [...]}
- POST   /cost-sheets/recalculate                 derived fields for an unsaved row
- PUT    /cost-sheets/items/<item_id>
- POST   /cost-sheets/<sheet_id>/submit

Review (admin):
- POST   /cost-sheets/items/<item_id>/approve     {"remarks"}
- POST   /cost-sheets/items/<item_id>/reject      {"remarks"}
- PUT    /cost-sheets/items/<item_id>/remarks     {"remarks", "quotation_notes"}
- PUT    /cost-sheets/items/<item_id>/quotation   override figures, or {"chosen": false}

Either role (workflow decides):
- DELETE /cost-sheets/items/<item_id>
- DELETE /cost-sheets/<sheet_id>

SECURITY NOTE:
- The decorators are a first gate only. Role AND state are enforced in costsheets.workflow.
"""

from flask import Blueprint, jsonify
from flask_login import login_required

from ... import workflow
from ...errors import ValidationError
from ...models import QuotationOverride
from ...security import admin_required, current_actor, estimator_required, role_required
from ...utils import json_body, optional_text

cost_sheets_bp = Blueprint("cost_sheets", __name__, url_prefix="/cost-sheets")


def _active_sheet_response(client_id: int, active: workflow.ActiveSheet):
    return jsonify(
        {
            "client_id": client_id,
            "sheet": active.sheet.to_dict() if active.sheet else None,
            "status": active.status.value,
            "items": [item.to_dict() for item in active.items],
            "new_row": workflow.new_item_row(active.items),
        }
    )


# ============================================================
# AUTHORING
# ============================================================

@cost_sheets_bp.route("/client/<int:client_id>", methods=["GET"])
@login_required
@role_required
def active_sheet(client_id: int):
    workflow.get_client(client_id)
    return _active_sheet_response(client_id, workflow.get_active_sheet(client_id))


@cost_sheets_bp.route("/client/<int:client_id>/items", methods=["POST"])
@login_required
@estimator_required
def add_item(client_id: int):
    item = workflow.add_item(current_actor(), client_id, json_body())
    return jsonify({"item": item.to_dict()}), 201


@cost_sheets_bp.route("/client/<int:client_id>/save", methods=["POST"])
@login_required
@estimator_required
def save_sheet(client_id: int):
    rows = json_body().get("rows")
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValidationError("rows must be a list of objects")
    active = workflow.save_sheet(current_actor(), client_id, rows)
    return _active_sheet_response(client_id, active)


@cost_sheets_bp.route("/recalculate", methods=["POST"])
@login_required
@role_required
def recalculate():
    return jsonify({"row": workflow.recalculate_row(json_body())})


@cost_sheets_bp.route("/items/<int:item_id>", methods=["PUT"])
@login_required
@estimator_required
def update_item(item_id: int):
    item = workflow.update_item(current_actor(), item_id, json_body())
    return jsonify({"item": item.to_dict()})


@cost_sheets_bp.route("/items/<int:item_id>", methods=["DELETE"])
@login_required
@role_required
def delete_item(item_id: int):
    workflow.delete_item(current_actor(), item_id)
    return jsonify({"ok": True})


@cost_sheets_bp.route("/<int:sheet_id>/submit", methods=["POST"])
@login_required
@estimator_required
def submit_sheet(sheet_id: int):
    sheet = workflow.submit_sheet(current_actor(), sheet_id)
    return jsonify({"sheet": sheet.to_dict()})


# ============================================================
# REVIEW
# ============================================================

@cost_sheets_bp.route("/items/<int:item_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve_item(item_id: int):
    item = workflow.approve_item(current_actor(), item_id, optional_text(json_body(), "remarks"))
    return jsonify({"item": item.to_dict()})


@cost_sheets_bp.route("/items/<int:item_id>/reject", methods=["POST"])
@login_required
@admin_required
def reject_item(item_id: int):
    item = workflow.reject_item(current_actor(), item_id, optional_text(json_body(), "remarks"))
    return jsonify({"item": item.to_dict()})


@cost_sheets_bp.route("/items/<int:item_id>/remarks", methods=["PUT"])
@login_required
@admin_required
def set_remarks(item_id: int):
    data = json_body()
    item = workflow.set_admin_remarks(
        current_actor(),
        item_id,
        optional_text(data, "remarks"),
        optional_text(data, "quotation_notes"),
    )
    return jsonify({"item": item.to_dict()})


@cost_sheets_bp.route("/items/<int:item_id>/quotation", methods=["PUT"])
@login_required
@admin_required
def choose_for_quotation(item_id: int):
    data = json_body()
    override = None
    if data.get("chosen", True) is not False:
        override = QuotationOverride(
            supplier_id=data.get("supplier_id"),
            misc_supplier_id=data.get("misc_supplier_id"),
            supplier_cost=data.get("supplier_cost"),
            misc_cost=data.get("misc_cost"),
            total_cost=data.get("total_cost"),
            rea_margin=data.get("rea_margin"),
            actual_quoted=data.get("actual_quoted"),
            notes=optional_text(data, "notes"),
        )
    item = workflow.choose_for_quotation(current_actor(), item_id, override)
    return jsonify({"item": item.to_dict()})


# ============================================================
# DELETE SHEET
# ============================================================

@cost_sheets_bp.route("/<int:sheet_id>", methods=["DELETE"])
@login_required
@role_required
def delete_sheet(sheet_id: int):
    workflow.delete_sheet(current_actor(), sheet_id)
    return jsonify({"ok": True})
