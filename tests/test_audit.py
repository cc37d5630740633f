"""
Tests for the hash-chained audit trail
"""

import pytest

from financialsx.audit import AuditEvent, AuditEventType, AuditTrail
from financialsx.storage import InMemoryStorage


@pytest.fixture
def trail():
    return AuditTrail(InMemoryStorage())


class TestLogging:

    def test_first_event_has_empty_previous_hash(self, trail):
        event = trail.log_event(AuditEventType.USER_REGISTERED, "user", "u1", {"username": "root"})
        assert event.previous_hash == ""
        assert event.current_hash == event.calculate_hash()
        assert len(event.current_hash) == 64

    def test_events_are_chained(self, trail):
        first = trail.log_event(AuditEventType.LOGIN_SUCCESS, "user", "u1")
        second = trail.log_event(AuditEventType.LOGOUT, "user", "u1")
        assert second.previous_hash == first.current_hash

    def test_metadata_is_made_serializable(self, trail):
        event = trail.log_event(AuditEventType.DBF_RECORD_UPDATED, "dbf_record", "CHECKS.DBF#3",
                                {"kind": AuditEventType.LOGOUT, "values": (1, 2)},
                                company="ACME")
        assert event.metadata == {"kind": "logout", "values": [1, 2]}
        assert event.company == "ACME"

    def test_round_trip_through_storage(self, trail):
        event = trail.log_event(AuditEventType.REPORT_GENERATED, "report", "coa.pdf", user_id="u1")
        loaded = trail.get_all_events()[0]
        assert isinstance(loaded, AuditEvent)
        assert loaded.event_type is AuditEventType.REPORT_GENERATED
        assert loaded.current_hash == event.current_hash
        assert loaded.verify_hash()


class TestQueries:

    def test_limit_returns_most_recent(self, trail):
        for n in range(5):
            trail.log_event(AuditEventType.LOGIN_SUCCESS, "user", f"u{n}")
        recent = trail.get_all_events(limit=2)
        assert [e.entity_id for e in recent] == ["u3", "u4"]
        assert trail.count_events() == 5

    def test_filter_by_entity_and_type(self, trail):
        trail.log_event(AuditEventType.LOGIN_SUCCESS, "user", "u1")
        trail.log_event(AuditEventType.LOGIN_FAILED, "user", "u2")
        trail.log_event(AuditEventType.LOGOUT, "user", "u1")

        assert len(trail.get_events_for_entity("user", "u1")) == 2
        failed = trail.get_events_by_type(AuditEventType.LOGIN_FAILED)
        assert [e.entity_id for e in failed] == ["u2"]


class TestIntegrity:
    """Tamper detection"""

    def test_untouched_chain_verifies(self, trail):
        for n in range(3):
            trail.log_event(AuditEventType.VENDOR_UPDATED, "vendor", str(n))
        result = trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 3
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_empty_chain_is_valid(self, trail):
        assert trail.verify_integrity()["valid"]

    def test_edited_metadata_is_detected(self, trail):
        trail.log_event(AuditEventType.VENDOR_UPDATED, "vendor", "0", {"CPHONE": "555-0100"})
        target = trail.log_event(AuditEventType.VENDOR_UPDATED, "vendor", "1", {"CPHONE": "555-0200"})

        data = trail.storage.load(trail.table_name, target.id)
        data["metadata"]["CPHONE"] = "555-9999"
        trail.storage.save(trail.table_name, target.id, data)

        result = trail.verify_integrity()
        assert not result["valid"]
        assert [e["event_id"] for e in result["hash_errors"]] == [target.id]

    def test_rehashed_edit_breaks_the_chain(self, trail):
        first = trail.log_event(AuditEventType.LOGIN_SUCCESS, "user", "u1")
        trail.log_event(AuditEventType.LOGOUT, "user", "u1")

        forged = AuditEvent.from_dict(trail.storage.load(trail.table_name, first.id))
        forged.entity_id = "u2"
        forged.current_hash = forged.calculate_hash()
        trail.storage.save(trail.table_name, forged.id, forged.to_dict())

        result = trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"] == []
        assert result["chain_breaks"][0]["position"] == 1
