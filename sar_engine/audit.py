from .evidence import mask_pii
from .models import AuditTrailLog, _utcnow


def log_event(session, case_id, event_type, description, payload, user_id="system", commit=True):
    masked_payload = mask_pii(payload)
    event = AuditTrailLog(
        case_id=case_id,
        event_type=event_type,
        description=description,
        timestamp=_utcnow(),
        detail_payload=masked_payload,
        user_id=user_id,
    )
    session.add(event)
    if commit:
        session.commit()
    else:
        session.flush()
    return event


def get_audit_timeline(session, case_id):
    events = (
        session.query(AuditTrailLog)
        .filter(AuditTrailLog.case_id == case_id)
        .order_by(AuditTrailLog.timestamp.asc(), AuditTrailLog.id.asc())
        .all()
    )
    return [
        {
            "timestamp": e.timestamp.isoformat() + "Z",
            "event_type": e.event_type,
            "description": e.description,
            "user_id": e.user_id,
            "payload": e.detail_payload,
        }
        for e in events
    ]
