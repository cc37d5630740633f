"""
Audit Trail Module

Hash-chained log of every state change FinancialsX makes: logins, user and
role changes, DBF record writes, settings changes and generated reports. Each
event stores the SHA-256 of its predecessor so edits to the log are detectable.
"""

import hashlib
import json
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    # Auth events
    USER_REGISTERED = "user_registered"
    USER_CREATED = "user_created"
    USER_ROLE_CHANGED = "user_role_changed"
    USER_STATUS_CHANGED = "user_status_changed"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"

    # Data events
    DATA_PATH_CHANGED = "data_path_changed"
    DBF_RECORD_UPDATED = "dbf_record_updated"
    DBF_EXPORTED = "dbf_exported"
    VENDOR_UPDATED = "vendor_updated"
    COMPANY_INFO_UPDATED = "company_info_updated"

    # Integration and reporting events
    VFP_SETTINGS_CHANGED = "vfp_settings_changed"
    VFP_FORM_LAUNCHED = "vfp_form_launched"
    REPORT_GENERATED = "report_generated"

    # Reconciliation events
    RECONCILIATION_DRAFT_SAVED = "reconciliation_draft_saved"
    RECONCILIATION_DRAFT_DELETED = "reconciliation_draft_deleted"
    RECONCILIATION_COMMITTED = "reconciliation_committed"


def _serializable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serializable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event with hash chaining for tamper detection
    """
    event_type: AuditEventType
    entity_type: str  # user, dbf_record, vendor, company, vfp, report
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    company: Optional[str] = None

    def __post_init__(self):
        self.metadata = _serializable(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'company': self.company,
            'metadata': self.metadata,
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        if isinstance(data.get('event_type'), str):
            data['event_type'] = AuditEventType(data['event_type'])
        return super().from_dict(data)


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

    def _last_hash(self) -> str:
        events = self.storage.load_all(self.table_name)
        return events[-1].get('current_hash', '') if events else ''

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        company: Optional[str] = None,
    ) -> AuditEvent:
        """
        Append an event to the chain.

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited
            entity_id: ID of the entity (user id, "TABLE.DBF#row", ...)
            metadata: Additional event-specific data
            user_id: ID of user who initiated the action
            company: Company whose data was touched

        Returns:
            Created AuditEvent
        """
        with self._lock:
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=str(entity_id),
                previous_hash=self._last_hash(),
                current_hash="",
                metadata=metadata or {},
                user_id=user_id,
                company=company,
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def get_all_events(self, limit: Optional[int] = None) -> List[AuditEvent]:
        """Events in chain order; with a limit, the most recent ones"""
        events = [AuditEvent.from_dict(d) for d in self.storage.load_all(self.table_name)]
        if limit:
            events = events[-limit:]
        return events

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        return [
            AuditEvent.from_dict(d)
            for d in self.storage.find(self.table_name, {'entity_type': entity_type,
                                                         'entity_id': str(entity_id)})
        ]

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [
            AuditEvent.from_dict(d)
            for d in self.storage.find(self.table_name, {'event_type': event_type.value})
        ]

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify every event hash and the links between them.

        Returns:
            Dictionary with valid flag, total_events, hash_errors and chain_breaks
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': [],
        }
        previous_hash = ""
        for position, event in enumerate(self.get_all_events()):
            result['total_events'] += 1
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash,
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash,
                })
            previous_hash = event.current_hash
        return result
