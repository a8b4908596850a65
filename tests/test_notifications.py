from __future__ import annotations

import pytest

from costsheets import notifications, workflow
from costsheets.errors import NotFound, PermissionDenied
from costsheets.events import EventFilter
from costsheets.extensions import db, event_bus
from costsheets.models import Notification, Role
from costsheets.security import actor_for


def _submitted_item(estimator, acme, supplier):
    item = workflow.add_item(
        estimator, acme.id,
        {"item": "Switchgear", "supplier_id": supplier.id, "qty": 2, "supplier_cost": 100, "rea_margin_percentage": 10},
    )
    workflow.submit_sheet(estimator, item.cost_sheet_id)
    return item


def test_submit_notifies_every_admin(estimator, admin, acme, supplier, user_factory):
    second_admin = user_factory("admin2@example.com", Role.ADMIN)

    _submitted_item(estimator, acme, supplier)

    for user_id in (admin.actor_id, second_admin.id):
        rows = notifications.list_for_user(user_id)
        assert len(rows) == 1
        assert rows[0].title == "New Cost Sheet Awaiting Approval"
        assert rows[0].type == "approval_request"
        assert "Acme Trading" in rows[0].message
        assert rows[0].read is False
    assert notifications.list_for_user(estimator.actor_id) == []


def test_approval_notifies_creator_with_price(estimator, admin, acme, supplier):
    item = _submitted_item(estimator, acme, supplier)
    workflow.approve_item(admin, item.id)

    [note] = notifications.list_for_user(estimator.actor_id)
    assert note.title == "Item Approved"
    assert note.type == "approval"
    assert note.message == "Supplier: Gulf Supplies | Price: AED 220.00 | Client: Acme Trading"


def test_rejection_notifies_creator(estimator, admin, acme, supplier):
    item = _submitted_item(estimator, acme, supplier)
    workflow.reject_item(admin, item.id, remarks="Find a cheaper supplier")

    [note] = notifications.list_for_user(estimator.actor_id)
    assert note.title == "Item Rejected"
    assert note.type == "rejection"
    assert "Find a cheaper supplier" in note.message


def test_notification_rows_publish_insert_events(estimator, admin, acme, supplier):
    with event_bus.subscribe(EventFilter(table="notifications", user_id=admin.actor_id)) as sub:
        _submitted_item(estimator, acme, supplier)
        events = sub.drain()
    assert [e.action for e in events] == ["INSERT"]
    assert events[0].payload["type"] == "approval_request"


def test_list_is_newest_first_and_limited(estimator):
    for n in range(55):
        notifications.notify_user(estimator.actor_id, f"Note {n}", "body", "approval")
    db.session.commit()

    rows = notifications.list_for_user(estimator.actor_id)
    assert len(rows) == notifications.DEFAULT_LIMIT == 50
    assert rows[0].id > rows[-1].id
    assert notifications.unread_count(estimator.actor_id) == 55


def test_mark_read_only_by_recipient(estimator, admin):
    note = notifications.notify_user(estimator.actor_id, "Item Approved", "body", "approval")
    db.session.commit()

    with pytest.raises(PermissionDenied):
        notifications.mark_read(admin, note.id)
    with pytest.raises(NotFound):
        notifications.mark_read(estimator, 404)

    notifications.mark_read(estimator, note.id)
    assert db.session.get(Notification, note.id).read is True
    assert notifications.unread_count(estimator.actor_id) == 0


def test_mark_all_read(estimator, admin):
    for _ in range(3):
        notifications.notify_user(estimator.actor_id, "Item Rejected", "body", "rejection")
    notifications.notify_user(admin.actor_id, "Item Rejected", "body", "rejection")
    db.session.commit()

    assert notifications.mark_all_read(estimator) == 3
    assert notifications.unread_count(estimator.actor_id) == 0
    assert notifications.unread_count(admin.actor_id) == 1


def test_admin_user_ids_only_admins(estimator_user, admin_user, user_factory):
    other = user_factory("other-admin@example.com", Role.ADMIN)
    assert notifications.admin_user_ids() == sorted([admin_user.id, other.id])
    assert actor_for(estimator_user).actor_id not in notifications.admin_user_ids()
