"""
Unit Tests for budgetdesk/alerts

Expiring contracts, overdue invoices, overspent budget lines, and the
/api/alerts endpoint.
"""

from datetime import datetime, timedelta

import pytest

from budgetdesk.alerts import compute_alerts, format_amount, format_day
from budgetdesk.db import new_id

NOW = datetime(2025, 6, 1, 12, 0, 0)
ORG = "org-1"


def contract(end: datetime, org=ORG, **kw):
    return {"id": new_id(), "organizationId": org, "number": kw.get("number", "C-1"),
            "label": kw.get("label", "Maintenance"), "vendor": "Acme",
            "endDate": end.isoformat()}


def invoice(status="Retard", due: datetime = NOW - timedelta(days=5), org=ORG, **kw):
    return {"id": new_id(), "organizationId": org, "number": kw.get("number", "F-1"),
            "vendor": kw.get("vendor", "Adobe"), "amount": kw.get("amount", 1200.0),
            "status": status, "dueDate": due.isoformat() if due else None}


def line(budget, invoiced, org=ORG, label="Licences"):
    return {"id": new_id(), "organizationId": org, "label": label,
            "budget": budget, "invoiced": invoiced}


@pytest.fixture
def store(db):
    return db


class TestAggregation:
    """compute_alerts() concatenates the three rule sets."""

    def test_no_records_no_alerts(self, store):
        assert compute_alerts(store, ORG, NOW) == []

    def test_one_of_each(self, store):
        store["contracts"].append(contract(NOW + timedelta(days=10)))
        store["invoices"].append(invoice(due=NOW - timedelta(days=5)))
        store["budget_lines"].append(line(1000, 1500))

        alerts = compute_alerts(store, ORG, NOW)

        assert [a["type"] for a in alerts] == ["contract", "invoice", "budget"]
        assert [a["severity"] for a in alerts] == ["warning", "error", "error"]

    def test_no_category_exceeds_five(self, store):
        for i in range(8):
            store["contracts"].append(contract(NOW + timedelta(days=i + 1)))
            store["invoices"].append(invoice())
            store["budget_lines"].append(line(100, 200 + i))

        alerts = compute_alerts(store, ORG, NOW)

        for kind in ("contract", "invoice", "budget"):
            assert sum(1 for a in alerts if a["type"] == kind) == 5

    def test_other_tenant_records_ignored(self, store):
        store["contracts"].append(contract(NOW + timedelta(days=3), org="org-2"))
        store["invoices"].append(invoice(org="org-2"))
        store["budget_lines"].append(line(1, 2, org="org-2"))

        assert compute_alerts(store, ORG, NOW) == []


class TestContractRule:

    def test_window_bounds(self, store):
        inside = contract(NOW + timedelta(days=30), number="IN")
        past = contract(NOW - timedelta(days=1), number="PAST")
        beyond = contract(NOW + timedelta(days=31), number="FAR")
        store["contracts"].extend([inside, past, beyond])

        alerts = compute_alerts(store, ORG, NOW)

        assert [a["id"] for a in alerts] == [inside["id"]]

    def test_soonest_first(self, store):
        late = contract(NOW + timedelta(days=20))
        soon = contract(NOW + timedelta(days=2))
        store["contracts"].extend([late, soon])

        alerts = compute_alerts(store, ORG, NOW)

        assert [a["id"] for a in alerts] == [soon["id"], late["id"]]

    def test_message_and_date(self, store):
        end = NOW + timedelta(days=10)
        store["contracts"].append(contract(end, number="C-42", label="Support"))

        alert = compute_alerts(store, ORG, NOW)[0]

        assert alert["title"] == "Contrat expirant bientôt"
        assert alert["message"] == "Support (C-42) expire le 11/06/2025"
        assert alert["date"] == end.isoformat()


class TestInvoiceRule:

    def test_overdue_iff_status_is_late_marker(self, store):
        past_due_pending = invoice(status="En attente", due=NOW - timedelta(days=30))
        future_due_late = invoice(status="Retard", due=NOW + timedelta(days=30))
        paid = invoice(status="Payée")
        store["invoices"].extend([past_due_pending, future_due_late, paid])

        alerts = compute_alerts(store, ORG, NOW)

        assert [a["id"] for a in alerts] == [future_due_late["id"]]

    def test_earliest_due_first_missing_due_last(self, store):
        no_due = invoice(due=None)
        recent = invoice(due=NOW - timedelta(days=1))
        oldest = invoice(due=NOW - timedelta(days=40))
        store["invoices"].extend([no_due, recent, oldest])

        alerts = compute_alerts(store, ORG, NOW)

        assert [a["id"] for a in alerts] == [oldest["id"], recent["id"], no_due["id"]]

    def test_message(self, store):
        store["invoices"].append(invoice(number="F-7", vendor="Adobe", amount=12345.5))

        alert = compute_alerts(store, ORG, NOW)[0]

        assert alert["title"] == "Facture en retard"
        assert alert["message"] == "Facture F-7 - Adobe - 12 345,5€"


class TestBudgetRule:

    def test_only_strictly_overspent(self, store):
        equal = line(1000, 1000)
        over = line(1000, 1000.01)
        store["budget_lines"].extend([equal, over])

        alerts = compute_alerts(store, ORG, NOW)

        assert [a["id"] for a in alerts] == [over["id"]]

    def test_message_and_date(self, store):
        store["budget_lines"].append(line(1000, 1500, label="Licences"))

        alert = compute_alerts(store, ORG, NOW)[0]

        assert alert["title"] == "Budget dépassé"
        assert alert["message"] == "Licences - Facturé: 1 500€ / Budget: 1 000€"
        assert alert["date"] == NOW.isoformat()


class TestFormatting:

    def test_format_amount(self):
        assert format_amount(1500) == "1 500"
        assert format_amount(12345.5) == "12 345,5"
        assert format_amount(0) == "0"
        assert format_amount(99.99) == "99,99"

    def test_format_day(self):
        assert format_day(datetime(2025, 1, 9)) == "09/01/2025"


class TestAlertsEndpoint:

    def test_requires_token(self, client):
        assert client.get("/api/alerts").status_code == 401

    def test_user_without_organization_forbidden(self, client, world):
        assert client.get("/api/alerts", headers=world.h_super).status_code == 403

    def test_returns_tenant_alerts(self, client, world):
        world.line_a["invoiced"] = 2000.0
        world.line_b["invoiced"] = 9999.0

        r = client.get("/api/alerts", headers=world.h_viewer)

        assert r.status_code == 200
        assert [a["id"] for a in r.json()] == [world.line_a["id"]]

    def test_read_failure_is_a_generic_500(self, world, monkeypatch):
        from fastapi.testclient import TestClient
        from budgetdesk import server

        def broken(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(server, "compute_alerts", broken)
        r = TestClient(server.app, raise_server_exceptions=False).get("/api/alerts", headers=world.h_admin)

        assert r.status_code == 500
        assert r.json()["error"] == "Internal server error"
        assert r.json()["code"] == "INTERNAL_ERROR"
        assert "store unavailable" not in r.text
