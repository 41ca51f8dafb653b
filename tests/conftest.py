"""
Pytest Configuration and Shared Fixtures

- Environment for an isolated, in-memory store (set before budgetdesk is imported)
- A fresh database and empty cache per test
- A seeded "world": two organizations, users per role, budget structure
- Bearer headers per role
"""

import os
import tempfile
from types import SimpleNamespace

os.environ["BUDGETDESK_DATA_DIR"] = tempfile.mkdtemp(prefix="budgetdesk-test-")
os.environ["PERSIST_DATA"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("BOOTSTRAP_ADMIN_EMAIL", None)

import pytest
from fastapi.testclient import TestClient

from budgetdesk.server import app
from budgetdesk.db import reset_db, save_db, new_id, now_iso
from budgetdesk.auth import hash_password, create_jwt

PASSWORD = "secret123"


def make_user(db, name, role, org_id, active=True):
    user = {"id": new_id(), "name": name, "email": f"{name}@example.com",
            "password": hash_password(PASSWORD), "role": role, "isActive": active,
            "organizationId": org_id, "createdAt": now_iso()}
    db["users"].append(user)
    return user


def make_org(db, name, slug):
    org = {"id": new_id(), "name": name, "slug": slug,
           "inviteCode": f"CODE-{slug.upper()}", "createdAt": now_iso()}
    db["organizations"].append(org)
    return org


def make_structure(db, org_id, type_name="IT", domain_name="Software"):
    t = {"id": new_id(), "organizationId": org_id, "name": type_name, "color": "#336699"}
    d = {"id": new_id(), "organizationId": org_id, "typeId": t["id"],
         "name": domain_name, "description": None}
    db["budget_types"].append(t)
    db["budget_domains"].append(d)
    return t, d


def make_line(db, org_id, type_id, domain_id, label, budget=0.0, year=2025, yearly_budget=None):
    line = {"id": new_id(), "organizationId": org_id, "typeId": type_id, "domainId": domain_id,
            "poleId": None, "label": label, "description": None, "accountingCode": None,
            "allocationCode": None, "nature": "Fonctionnement",
            "budget": budget, "engineered": 0.0, "invoiced": 0.0,
            "createdAt": now_iso(), "updatedAt": now_iso()}
    db["budget_lines"].append(line)
    db["yearly_budgets"].append({"id": new_id(), "budgetLineId": line["id"], "year": year,
                                 "budget": budget if yearly_budget is None else yearly_budget,
                                 "engineered": 0.0, "invoiced": 0.0})
    return line


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {create_jwt(user)}"}


# ============================================================================
# Store & Client
# ============================================================================

@pytest.fixture
def db():
    """Fresh empty store; the app cache is emptied too."""
    fresh = reset_db()
    app.state.cache.clear_all()
    return fresh


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def world(db):
    """Org A (admin, manager, viewer, one line) and org B (admin, one line), plus a super admin."""
    org_a = make_org(db, "Acme", "acme")
    org_b = make_org(db, "Globex", "globex")

    admin = make_user(db, "alice", "admin", org_a["id"])
    manager = make_user(db, "marc", "manager", org_a["id"])
    viewer = make_user(db, "vera", "viewer", org_a["id"])
    other_admin = make_user(db, "otto", "admin", org_b["id"])
    super_admin = make_user(db, "root", "admin", None)

    type_a, domain_a = make_structure(db, org_a["id"])
    type_b, domain_b = make_structure(db, org_b["id"])
    line_a = make_line(db, org_a["id"], type_a["id"], domain_a["id"], "Licences", budget=1000.0)
    line_b = make_line(db, org_b["id"], type_b["id"], domain_b["id"], "Hosting", budget=500.0)
    save_db(db)

    return SimpleNamespace(
        db=db, org_a=org_a, org_b=org_b,
        admin=admin, manager=manager, viewer=viewer,
        other_admin=other_admin, super_admin=super_admin,
        type_a=type_a, domain_a=domain_a, line_a=line_a,
        type_b=type_b, domain_b=domain_b, line_b=line_b,
        h_admin=bearer(admin), h_manager=bearer(manager), h_viewer=bearer(viewer),
        h_other=bearer(other_admin), h_super=bearer(super_admin),
    )


@pytest.fixture
def invoice_body(world):
    """Valid invoice payload for org A, linked to its budget line."""
    return {
        "number": "F-2025-001", "vendor": "Adobe", "description": "Creative Cloud",
        "amount": 500.0, "dueDate": "2025-03-31", "invoiceDate": "2025-03-01",
        "status": "En attente", "domainId": world.domain_a["id"], "typeId": world.type_a["id"],
        "nature": "Fonctionnement", "budgetLineId": world.line_a["id"],
    }


@pytest.fixture
def contract_body(world):
    """Valid contract payload for org A, linked to its budget line."""
    return {
        "number": "C-001", "label": "Adobe licences", "vendor": "Adobe",
        "startDate": "2025-01-01", "endDate": "2027-12-31", "amount": 3000.0,
        "typeId": world.type_a["id"], "domainId": world.domain_a["id"],
        "budgetLineId": world.line_a["id"], "status": "Actif",
        "yearlyAmounts": [{"year": 2025, "amount": 1000.0}, {"year": 2026, "amount": 2000.0}],
    }
