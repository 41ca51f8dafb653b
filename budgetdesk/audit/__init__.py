"""
BudgetDesk — Audit Log
Every create/update/delete on a tenant record leaves an entry. A failure to
write the entry is logged and never fails the operation being audited.
"""
import logging

from budgetdesk.db import new_id, now_iso, parse_date

logger = logging.getLogger(__name__)


def record_audit(db: dict, user: dict, action: str, entity: str, entity_id: str,
                 changes=None, organization_id: str = None) -> dict:
    try:
        entry = {
            "id": new_id(), "userId": user.get("id") if user else None,
            "action": action, "entity": entity, "entityId": entity_id,
            "changes": changes,
            "organizationId": organization_id if organization_id is not None
                              else (user or {}).get("organizationId"),
            "createdAt": now_iso(),
        }
        db.setdefault("audit_log", []).append(entry)
        return entry
    except Exception:
        logger.exception("Failed to create audit log for %s %s/%s", action, entity, entity_id)
        return None


def query_audit_logs(db: dict, organization_id: str = None, entity: str = None,
                     entity_id: str = None, user_id: str = None,
                     date_from: str = None, date_to: str = None,
                     limit: int = 50, offset: int = 0) -> dict:
    """Newest-first audit entries matching every given filter."""
    lo, hi = parse_date(date_from), parse_date(date_to)
    logs = []
    for log in db.get("audit_log", []):
        if organization_id is not None and log.get("organizationId") != organization_id:
            continue
        if entity and log.get("entity") != entity:
            continue
        if entity_id and log.get("entityId") != entity_id:
            continue
        if user_id and log.get("userId") != user_id:
            continue
        created = parse_date(log.get("createdAt"))
        if lo and (created is None or created < lo):
            continue
        if hi and (created is None or created > hi):
            continue
        logs.append(log)
    logs.sort(key=lambda l: l.get("createdAt", ""), reverse=True)
    return {"logs": logs[offset:offset + limit], "total": len(logs)}
