from __future__ import annotations

import threading

from costsheets import workflow
from costsheets.events import (
    DELETE,
    INSERT,
    UPDATE,
    ApprovalWatcher,
    ChangeEvent,
    EventBus,
    EventFilter,
    LedgerWatcher,
)
from costsheets.extensions import event_bus


def _item_event(row_id, sheet_id, status, action=UPDATE):
    return ChangeEvent(
        table="cost_sheet_items",
        action=action,
        row_id=row_id,
        payload={"id": row_id, "approval_status": status},
        sheet_id=sheet_id,
    )


def test_filter_none_matches_anything():
    event = _item_event(1, 7, "pending")
    assert EventFilter().matches(event)
    assert EventFilter(table="cost_sheet_items", sheet_id=7).matches(event)
    assert not EventFilter(sheet_id=8).matches(event)
    assert not EventFilter(action=DELETE).matches(event)
    assert not EventFilter(table="notifications").matches(event)


def test_publish_fans_out_to_matching_subscriptions():
    bus = EventBus()
    everything = bus.subscribe()
    sheet_7 = bus.subscribe(EventFilter(sheet_id=7))

    assert bus.publish(_item_event(1, 7, "pending")) == 2
    assert bus.publish(_item_event(2, 8, "pending")) == 1

    assert [e.row_id for e in everything.drain()] == [1, 2]
    assert [e.row_id for e in sheet_7.drain()] == [1]


def test_closed_subscription_stops_receiving_and_iteration_ends():
    bus = EventBus()
    sub = bus.subscribe()
    bus.publish(_item_event(1, 1, "pending", action=INSERT))
    sub.close()
    assert bus.publish(_item_event(2, 1, "pending")) == 0
    assert [e.row_id for e in sub] == [1]


def test_slow_subscriber_keeps_only_newest_events():
    bus = EventBus()
    sub = bus.subscribe(max_pending=3)
    for row_id in range(1, 6):
        assert bus.publish(_item_event(row_id, 1, "pending")) == 1

    assert [e.row_id for e in sub.drain()] == [3, 4, 5]
    assert sub.dropped == 2


def test_close_on_full_backlog_still_ends_iteration():
    bus = EventBus()
    sub = bus.subscribe(max_pending=2)
    bus.publish(_item_event(1, 1, "pending"))
    bus.publish(_item_event(2, 1, "pending"))
    sub.close()
    assert [e.row_id for e in sub] == [2]
    assert sub.dropped == 1


def test_subscription_get_blocks_until_event():
    bus = EventBus()
    with bus.subscribe() as sub:
        timer = threading.Timer(0.05, bus.publish, args=(_item_event(3, 1, "approved_both"),))
        timer.start()
        event = sub.get(timeout=2)
        timer.join()
    assert event is not None and event.row_id == 3
    assert sub.get(timeout=0.01) is None


def test_approval_watcher_alerts_once_per_item():
    bus = EventBus()
    refetches, alerts = [], []
    watcher = ApprovalWatcher(bus, sheet_id=5, refetch=lambda: refetches.append(1), alert=alerts.append)

    approved = _item_event(10, 5, "approved_both")
    bus.publish(approved)
    bus.publish(approved)  # duplicate delivery
    bus.publish(_item_event(11, 5, "rejected"))
    bus.publish(_item_event(12, 6, "approved_both"))  # other sheet

    assert watcher.poll() == 2
    assert len(refetches) == 2
    assert [e.row_id for e in alerts] == [10]
    assert watcher.alerted_item_ids == {10}
    watcher.close()


def test_ledger_watcher_refetches_on_any_final_approval():
    bus = EventBus()
    refetches = []
    watcher = LedgerWatcher(bus, refetch=lambda: refetches.append(1))

    bus.publish(_item_event(1, 1, "approved_both"))
    bus.publish(_item_event(2, 2, "approved_both"))
    bus.publish(_item_event(3, 2, "pending"))

    assert watcher.poll() == 2
    assert len(refetches) == 2
    watcher.close()
    assert bus.publish(_item_event(4, 3, "approved_both")) == 0


def test_workflow_approval_reaches_watchers(estimator, admin, acme, supplier):
    item = workflow.add_item(estimator, acme.id, {"supplier_id": supplier.id, "qty": 1, "supplier_cost": 10})
    sheet_id = item.cost_sheet_id
    workflow.submit_sheet(estimator, sheet_id)

    snapshots = []
    watcher = ApprovalWatcher(event_bus, sheet_id, refetch=lambda: snapshots.append(workflow.get_active_sheet(acme.id)))
    try:
        workflow.approve_item(admin, item.id)
        assert watcher.poll() == 1
    finally:
        watcher.close()

    assert watcher.alerted_item_ids == {item.id}
    assert snapshots[0].sheet is None


def test_item_changes_publish_events(estimator, acme, supplier):
    with event_bus.subscribe(EventFilter(table="cost_sheet_items")) as sub:
        item = workflow.add_item(estimator, acme.id, {"supplier_id": supplier.id})
        workflow.update_item(estimator, item.id, {"qty": 3})
        workflow.delete_item(estimator, item.id)
        actions = [e.action for e in sub.drain()]
    assert actions == [INSERT, UPDATE, DELETE]
