from tests.factories import T0, at
from timekeeper.tickets.audit import AuditLogBuilder
from timekeeper.tickets.models import Checklist


def test_append_returns_new_log_and_leaves_input_alone(clock):
    builder = AuditLogBuilder(clock)
    original = builder.append((), "Started")

    clock.advance(10)
    extended = builder.append(original, "Paused", reason="lunch")

    assert len(original) == 1
    assert [entry.action for entry in extended] == ["Started", "Paused"]
    assert extended[0] is original[0]
    assert extended[1].timestamp > extended[0].timestamp
    assert extended[1].reason == "lunch"
    assert extended[1].checklist is None


def test_append_records_checklist_snapshot(clock):
    snapshot = Checklist(ticket_answered=True, sheet_updated=True)

    log = AuditLogBuilder(clock).append([], "Completed", checklist=snapshot)

    assert log[0].timestamp == T0
    assert log[0].checklist == snapshot
    assert log[0].to_dict() == {
        "timestamp": T0.isoformat(),
        "action": "Completed",
        "checklist": {"ticket_answered": True, "sheet_updated": True},
    }


def test_append_uses_explicit_timestamp_over_clock(clock):
    clock.set(at(99))

    log = AuditLogBuilder(clock).append((), "Paused", reason="lunch", timestamp=at(5))

    assert log[0].timestamp == at(5)
