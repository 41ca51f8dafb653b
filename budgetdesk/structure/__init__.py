"""
BudgetDesk — Organizational Structure
Services and their poles; budget types and the domains under them.

Budget types and domains are read on almost every page, so the routing
layer serves them through the TTL cache and clears the organization's
cache prefix whenever one of them is written.
"""
from budgetdesk.db import new_id, now_iso, find_by_id, org_records, remove_by_id
from budgetdesk.errors import ValidationError, NotFoundError
from budgetdesk.audit import record_audit


def _by_name(rows):
    return sorted(rows, key=lambda r: (r.get("name") or "").lower())


def _line_count(db, pole_id):
    return sum(1 for l in db.get("budget_lines", []) if l.get("poleId") == pole_id)


# ============================================================
# SERVICES
# ============================================================
def list_services(db: dict, org_id: str) -> list:
    out = []
    for s in _by_name(org_records(db, "services", org_id)):
        poles = [{**p, "_count": {"budgetLines": _line_count(db, p["id"])}}
                 for p in _by_name(org_records(db, "poles", org_id)) if p.get("serviceId") == s["id"]]
        out.append({**s, "poles": poles})
    return out


def get_service(db: dict, org_id: str, service_id: str) -> dict:
    service = find_by_id(db, "services", service_id, org_id)
    if not service:
        raise NotFoundError("Service")
    return service


def create_service(db: dict, user: dict, data: dict) -> dict:
    service = {"id": new_id(), "organizationId": user["organizationId"],
               "name": data["name"], "description": data.get("description"),
               "color": data.get("color"), "createdAt": now_iso()}
    db["services"].append(service)
    record_audit(db, user, "CREATE", "Service", service["id"], {"name": service["name"]})
    return {**service, "poles": []}


def update_service(db: dict, user: dict, service_id: str, changes: dict) -> dict:
    service = get_service(db, user["organizationId"], service_id)
    service.update(changes)
    record_audit(db, user, "UPDATE", "Service", service_id, changes)
    return service


def delete_service(db: dict, user: dict, service_id: str) -> None:
    """Deletes the service together with its poles."""
    org_id = user["organizationId"]
    service = get_service(db, org_id, service_id)
    for pole in [p for p in org_records(db, "poles", org_id) if p.get("serviceId") == service_id]:
        _drop_pole(db, pole["id"])
    remove_by_id(db, "services", service_id)
    record_audit(db, user, "DELETE", "Service", service_id, {"name": service.get("name")})


# ============================================================
# POLES
# ============================================================
def list_poles(db: dict, org_id: str, service_id: str = None) -> list:
    rows = org_records(db, "poles", org_id)
    if service_id:
        rows = [p for p in rows if p.get("serviceId") == service_id]
    return [{**p, "service": find_by_id(db, "services", p.get("serviceId")),
             "_count": {"budgetLines": _line_count(db, p["id"])}} for p in _by_name(rows)]


def get_pole(db: dict, org_id: str, pole_id: str) -> dict:
    pole = find_by_id(db, "poles", pole_id, org_id)
    if not pole:
        raise NotFoundError("Pole")
    return pole


def create_pole(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    service = find_by_id(db, "services", data["serviceId"], org_id)
    if not service:
        raise ValidationError("Invalid service")
    pole = {"id": new_id(), "organizationId": org_id, "serviceId": service["id"],
            "name": data["name"], "description": data.get("description"),
            "color": data.get("color"), "createdAt": now_iso()}
    db["poles"].append(pole)
    record_audit(db, user, "CREATE", "Pole", pole["id"], {"name": pole["name"]})
    return {**pole, "service": service}


def update_pole(db: dict, user: dict, pole_id: str, changes: dict) -> dict:
    org_id = user["organizationId"]
    pole = get_pole(db, org_id, pole_id)
    pole.update(changes)
    record_audit(db, user, "UPDATE", "Pole", pole_id, changes)
    return {**pole, "service": find_by_id(db, "services", pole.get("serviceId"))}


def _drop_pole(db, pole_id):
    # Lines stay, detached from the pole
    for coll in ("budget_lines", "forecast_budget_lines"):
        for line in db.get(coll, []):
            if line.get("poleId") == pole_id:
                line["poleId"] = None
    db["pole_allocations"] = [a for a in db.get("pole_allocations", []) if a.get("poleId") != pole_id]
    remove_by_id(db, "poles", pole_id)


def delete_pole(db: dict, user: dict, pole_id: str) -> None:
    pole = get_pole(db, user["organizationId"], pole_id)
    _drop_pole(db, pole_id)
    record_audit(db, user, "DELETE", "Pole", pole_id, {"name": pole.get("name")})


# ============================================================
# BUDGET TYPES / DOMAINS
# ============================================================
def list_budget_types(db: dict, org_id: str) -> list:
    return [dict(t) for t in _by_name(org_records(db, "budget_types", org_id))]


def list_budget_domains(db: dict, org_id: str) -> list:
    out = []
    for d in _by_name(org_records(db, "budget_domains", org_id)):
        t = find_by_id(db, "budget_types", d.get("typeId"))
        out.append({**d, "type": {"name": t.get("name"), "color": t.get("color")} if t else None})
    return out


def create_budget_type(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    if any(t.get("name") == data["name"] for t in org_records(db, "budget_types", org_id)):
        raise ValidationError(f"Budget type '{data['name']}' already exists")
    row = {"id": new_id(), "organizationId": org_id, "name": data["name"],
           "color": data.get("color"), "createdAt": now_iso()}
    db["budget_types"].append(row)
    record_audit(db, user, "CREATE", "BudgetType", row["id"], {"name": row["name"]})
    return row


def create_budget_domain(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    if not find_by_id(db, "budget_types", data["typeId"], org_id):
        raise ValidationError("Invalid type")
    row = {"id": new_id(), "organizationId": org_id, "typeId": data["typeId"],
           "name": data["name"], "description": data.get("description"),
           "createdAt": now_iso()}
    db["budget_domains"].append(row)
    record_audit(db, user, "CREATE", "BudgetDomain", row["id"], {"name": row["name"]})
    return row
