"""
Clients & Suppliers Routes

- GET/POST   /clients
- GET/POST   /clients/<client_id>/suppliers
- DELETE     /clients/suppliers/<supplier_id>

Suppliers are scoped to one client. Permission checks live in costsheets.workflow;
the decorators here only keep users without a role out.
"""

from flask import Blueprint, jsonify
from flask_login import login_required

from ... import workflow
from ...security import current_actor, role_required
from ...utils import json_body

clients_bp = Blueprint("clients", __name__, url_prefix="/clients")


@clients_bp.route("", methods=["GET"])
@login_required
@role_required
def list_clients():
    return jsonify({"clients": [c.to_dict() for c in workflow.list_clients()]})


@clients_bp.route("", methods=["POST"])
@login_required
@role_required
def create_client():
    client = workflow.create_client(current_actor(), json_body().get("name"))
    return jsonify({"client": client.to_dict()}), 201


@clients_bp.route("/<int:client_id>/suppliers", methods=["GET"])
@login_required
@role_required
def list_suppliers(client_id: int):
    workflow.get_client(client_id)
    return jsonify({"suppliers": [s.to_dict() for s in workflow.list_suppliers(client_id)]})


@clients_bp.route("/<int:client_id>/suppliers", methods=["POST"])
@login_required
@role_required
def create_supplier(client_id: int):
    supplier = workflow.create_supplier(current_actor(), client_id, json_body().get("name"))
    return jsonify({"supplier": supplier.to_dict()}), 201


@clients_bp.route("/suppliers/<int:supplier_id>", methods=["DELETE"])
@login_required
@role_required
def delete_supplier(supplier_id: int):
    workflow.delete_supplier(current_actor(), supplier_id)
    return jsonify({"ok": True})
