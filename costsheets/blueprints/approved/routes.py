"""
Approved Ledger Routes

- GET /approved                          clients with approved items (count, total cost)
- GET /approved/<client_id>              approved lines of one client (quotation overrides applied)
- GET /approved/<client_id>/export.csv
- GET /approved/<client_id>/export.pdf
- GET /approved/records/<client_id>      every item of the client with totals

Read-only. Visible to both roles.
"""

import re

from flask import Blueprint, Response, current_app, jsonify
from flask_login import login_required

from ... import exports, ledger
from ...errors import NotFound
from ...security import role_required

approved_bp = Blueprint("approved", __name__, url_prefix="/approved")


def _client_name_or_404(client_id: int) -> str:
    name = ledger.client_name(client_id)
    if name is None:
        raise NotFound("Client not found")
    return name


def _download(body: bytes, mimetype: str, client_name: str, extension: str) -> Response:
    slug = re.sub(r"[^A-Za-z0-9]+", "_", client_name).strip("_") or "client"
    response = Response(body, mimetype=mimetype)
    response.headers["Content-Disposition"] = f'attachment; filename="{slug}_approved_costs.{extension}"'
    return response


@approved_bp.route("", methods=["GET"])
@login_required
@role_required
def approved_ledger():
    return jsonify({"entries": [e.to_dict() for e in ledger.approved_ledger()]})


@approved_bp.route("/<int:client_id>", methods=["GET"])
@login_required
@role_required
def approved_detail(client_id: int):
    name = _client_name_or_404(client_id)
    return jsonify(
        {
            "client_id": client_id,
            "client_name": name,
            "rows": [row.to_dict() for row in ledger.approved_items(client_id)],
        }
    )


@approved_bp.route("/<int:client_id>/export.csv", methods=["GET"])
@login_required
@role_required
def export_csv(client_id: int):
    name = _client_name_or_404(client_id)
    body = exports.export_csv(ledger.approved_items(client_id), current_app.config.get("CURRENCY_LABEL", "AED"))
    return _download(body, "text/csv", name, "csv")


@approved_bp.route("/<int:client_id>/export.pdf", methods=["GET"])
@login_required
@role_required
def export_pdf(client_id: int):
    name = _client_name_or_404(client_id)
    body = exports.export_pdf(name, ledger.approved_items(client_id), current_app.config.get("CURRENCY_LABEL", "AED"))
    return _download(body, "application/pdf", name, "pdf")


@approved_bp.route("/records/<int:client_id>", methods=["GET"])
@login_required
@role_required
def client_records(client_id: int):
    name = _client_name_or_404(client_id)
    data = ledger.client_records(client_id).to_dict()
    data.update({"client_id": client_id, "client_name": name})
    return jsonify(data)
