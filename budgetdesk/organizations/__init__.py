"""
BudgetDesk — Organizations, Users & Invitations

Organizations are tenants. A super admin (admin without organizationId)
sees and manages all of them; an organization admin only their own.
Invitations create the invited user directly, without a password.
"""
import uuid
from datetime import datetime, timedelta

from budgetdesk.config import DEFAULT_ROLE
from budgetdesk.db import new_id, now_iso, find_by_id, org_records, remove_by_id
from budgetdesk.errors import ValidationError, NotFoundError, ForbiddenError, ConflictError
from budgetdesk.audit import record_audit
from budgetdesk.auth import hash_password, public_user, find_user_by_email, is_super_admin

TENANT_COLLECTIONS = (
    "budget_types", "budget_domains", "budget_lines", "annual_budgets",
    "budget_line_comments", "contracts", "invoices", "services", "poles",
    "purchase_orders", "forecast_budget_lines", "forecast_expenses",
)
INVITATION_TTL_HOURS = 48


def new_invite_code() -> str:
    return uuid.uuid4().hex[:12].upper()


# ============================================================
# ORGANIZATIONS
# ============================================================
def _with_counts(db, org):
    counts = {c: len(org_records(db, coll, org["id"]))
              for c, coll in (("users", "users"), ("invoices", "invoices"),
                              ("contracts", "contracts"), ("budgetLines", "budget_lines"))}
    return {**org, "_count": counts}


def get_organization(db: dict, org_id: str) -> dict:
    org = find_by_id(db, "organizations", org_id)
    if not org:
        raise NotFoundError("Organization")
    return org


def _check_access(user, org_id):
    if not is_super_admin(user) and user.get("organizationId") != org_id:
        raise ForbiddenError()


def list_organizations(db: dict, user: dict) -> list:
    orgs = db.get("organizations", [])
    if not is_super_admin(user):
        orgs = [o for o in orgs if o["id"] == user.get("organizationId")]
    orgs = sorted(orgs, key=lambda o: o.get("createdAt", ""), reverse=True)
    return [_with_counts(db, o) for o in orgs]


def create_organization(db: dict, user: dict, name: str, slug: str) -> dict:
    if not is_super_admin(user):
        raise ForbiddenError("Only a super admin can create organizations")
    if any(o.get("slug") == slug for o in db.get("organizations", [])):
        raise ConflictError("This slug is already in use")

    org = {"id": new_id(), "name": name, "slug": slug,
           "inviteCode": new_invite_code(), "createdAt": now_iso()}
    db["organizations"].append(org)
    record_audit(db, user, "CREATE", "Organization", org["id"],
                 {"name": name, "slug": slug}, organization_id=org["id"])
    return _with_counts(db, org)


def rename_organization(db: dict, user: dict, org_id: str, name: str) -> dict:
    org = get_organization(db, org_id)
    _check_access(user, org_id)
    org["name"] = name
    record_audit(db, user, "UPDATE", "Organization", org_id, {"name": name},
                 organization_id=org_id)
    return _with_counts(db, org)


def delete_organization(db: dict, user: dict, org_id: str) -> None:
    if not is_super_admin(user):
        raise ForbiddenError("Only a super admin can delete organizations")
    org = get_organization(db, org_id)
    if org_records(db, "users", org_id):
        raise ValidationError("Cannot delete an organization that still has users")

    line_ids = {l["id"] for l in org_records(db, "budget_lines", org_id)}
    db["yearly_budgets"] = [y for y in db["yearly_budgets"] if y.get("budgetLineId") not in line_ids]
    db["pole_allocations"] = [a for a in db["pole_allocations"] if a.get("budgetLineId") not in line_ids]
    for coll in TENANT_COLLECTIONS:
        db[coll] = [r for r in db.get(coll, []) if r.get("organizationId") != org_id]
    remove_by_id(db, "organizations", org_id)
    record_audit(db, user, "DELETE", "Organization", org_id,
                 {"name": org.get("name"), "slug": org.get("slug")})


def invite_code(db: dict, user: dict, org_id: str) -> str:
    org = get_organization(db, org_id)
    _check_access(user, org_id)
    return org["inviteCode"]


def join_organization(db: dict, user: dict, code: str) -> dict:
    """Attach an organization-less user to the organization owning `code`."""
    record = find_by_id(db, "users", user["id"])
    if record.get("organizationId"):
        raise ValidationError("You already belong to an organization")
    org = next((o for o in db.get("organizations", []) if o.get("inviteCode") == code), None)
    if not org:
        raise NotFoundError("Invitation code")

    record["organizationId"] = org["id"]
    record_audit(db, user, "UPDATE", "User", user["id"],
                 {"joinedOrganization": org["name"]}, organization_id=org["id"])
    return {"id": org["id"], "name": org["name"], "slug": org["slug"]}


# ============================================================
# USERS
# ============================================================
def _user_view(db, u):
    org = find_by_id(db, "organizations", u.get("organizationId")) if u.get("organizationId") else None
    return {**public_user(u), "organization": {"name": org["name"]} if org else None}


def list_users(db: dict, user: dict) -> list:
    users = db.get("users", [])
    if not is_super_admin(user):
        users = org_records(db, "users", user["organizationId"])
    users = sorted(users, key=lambda u: u.get("createdAt", ""), reverse=True)
    return [_user_view(db, u) for u in users]


def _new_user(db, name, email, role, org_id, password=None, is_active=True):
    if find_user_by_email(db, email):
        raise ConflictError("This email is already in use")
    u = {"id": new_id(), "name": name, "email": email.strip().lower(),
         "password": hash_password(password) if password else None,
         "role": role or DEFAULT_ROLE, "isActive": is_active,
         "organizationId": org_id, "createdAt": now_iso()}
    db["users"].append(u)
    return u


def create_user(db: dict, admin: dict, data: dict) -> dict:
    """New user in the admin's organization (none for a super admin)."""
    u = _new_user(db, data["name"], data["email"], data.get("role"), admin.get("organizationId"),
                  password=data.get("password"),
                  is_active=data["isActive"] if data.get("isActive") is not None else True)
    record_audit(db, admin, "CREATE", "User", u["id"], {"email": u["email"], "role": u["role"]})
    return public_user(u)


def _managed_user(db, admin, user_id):
    u = find_by_id(db, "users", user_id)
    if not u:
        raise NotFoundError("User")
    if not is_super_admin(admin) and u.get("organizationId") != admin.get("organizationId"):
        raise ForbiddenError()
    return u


def update_user(db: dict, admin: dict, user_id: str, changes: dict) -> dict:
    u = _managed_user(db, admin, user_id)
    if changes.get("email"):
        other = find_user_by_email(db, changes["email"])
        if other and other["id"] != user_id:
            raise ConflictError("This email is already in use")
        changes["email"] = changes["email"].strip().lower()

    applied = {k: v for k, v in changes.items() if v is not None and k != "password"}
    u.update(applied)
    if changes.get("password"):
        u["password"] = hash_password(changes["password"])
        applied["password"] = "***"
    record_audit(db, admin, "UPDATE", "User", user_id, applied)
    return public_user(u)


def bootstrap_super_admin(db: dict, email: str, password: str):
    """Create the first super admin when no user exists yet. Returns it, or None."""
    if db.get("users") or not (email and password):
        return None
    u = _new_user(db, "Administrator", email, "admin", None, password=password)
    record_audit(db, u, "CREATE", "User", u["id"], {"email": u["email"], "role": "admin"})
    return u


def delete_user(db: dict, admin: dict, user_id: str) -> None:
    if user_id == admin["id"]:
        raise ValidationError("You cannot delete your own account")
    u = _managed_user(db, admin, user_id)
    remove_by_id(db, "users", user_id)
    record_audit(db, admin, "DELETE", "User", user_id, {"email": u.get("email")})


# ============================================================
# INVITATIONS
# ============================================================
def _as_invitation(u, note=None, used_at=None):
    return {
        "id": u["id"], "code": f"USER-{u['id'][:8].upper()}", "role": u["role"],
        "email": u["email"], "note": note or u["name"], "usedBy": u["email"],
        "usedAt": used_at or u.get("createdAt"),
        "expiresAt": u.get("invitationExpiresAt"),
        "createdAt": u.get("createdAt"),
    }


def list_invitations(db: dict, org_id: str) -> list:
    users = sorted(org_records(db, "users", org_id), key=lambda u: u.get("createdAt", ""), reverse=True)
    return [_as_invitation(u) for u in users]


def create_invitation(db: dict, admin: dict, data: dict) -> dict:
    name = data.get("name") or data.get("note") or data["email"].split("@")[0]
    u = _new_user(db, name, data["email"], data["role"], admin["organizationId"])
    u["invitationExpiresAt"] = (datetime.now() + timedelta(hours=INVITATION_TTL_HOURS)).isoformat()
    record_audit(db, admin, "CREATE", "User", u["id"], {"email": u["email"], "role": u["role"]})
    return _as_invitation(u, note=name, used_at=now_iso())
