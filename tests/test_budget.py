"""
Tests for budgetdesk/budget and its routes

Budget lines, comments, pole allocations, yearly and annual budgets,
budget years, reporting and cached reads.
"""

import pytest

from budgetdesk.budget import monthly_invoice_totals, budget_summary, parse_years
from budgetdesk.config import MONTH_LABELS
from budgetdesk.db import new_id
from budgetdesk.errors import ValidationError


@pytest.fixture
def line_body(world):
    return {"label": "Telecom", "typeId": world.type_a["id"], "domainId": world.domain_a["id"],
            "year": 2025, "budget": 12000, "nature": "Investissement"}


class TestReporting:
    """Pure computations over in-memory records."""

    def test_monthly_totals_shape(self):
        points = monthly_invoice_totals([], [2024, 2025])

        assert [p["month"] for p in points] == MONTH_LABELS
        assert all(p["2024"] == 0 and p["2025"] == 0 for p in points)

    def test_monthly_totals_bucket_by_invoice_date(self):
        invoices = [
            {"invoiceDate": "2025-01-15", "amount": 100.0},
            {"invoiceDate": "2025-01-31T10:00:00", "amount": 50.5},
            {"invoiceDate": "2024-12-01", "amount": 70.0},
            {"invoiceDate": "2023-12-01", "amount": 999.0},
            {"invoiceDate": None, "amount": 1.0},
        ]

        points = monthly_invoice_totals(invoices, [2024, 2025])

        assert points[0] == {"month": "janv.", "2024": 0.0, "2025": 150.5}
        assert points[11]["2024"] == 70.0

    def test_parse_years(self):
        assert parse_years("2024, 2025") == [2024, 2025]
        with pytest.raises(ValidationError):
            parse_years("")
        with pytest.raises(ValidationError):
            parse_years("20x4")

    def test_summary_all_years_uses_line_totals(self, world):
        world.line_a.update(engineered=300.0, invoiced=250.0)

        s = budget_summary(world.db, world.org_a["id"])

        assert s == {"totalBudget": 1000.0, "totalEngineered": 300.0, "totalInvoiced": 250.0,
                     "remaining": 750.0, "percentageUsed": 25.0}

    def test_summary_one_year_uses_yearly_rows(self, world):
        world.db["yearly_budgets"].append({"id": new_id(), "budgetLineId": world.line_a["id"],
                                           "year": 2026, "budget": 4000.0, "engineered": 0.0,
                                           "invoiced": 1000.0})

        s = budget_summary(world.db, world.org_a["id"], 2026)

        assert s["totalBudget"] == 4000.0
        assert s["percentageUsed"] == 25.0

    def test_summary_zero_budget(self, db):
        assert budget_summary(db, "nobody")["percentageUsed"] == 0.0


class TestBudgetLines:

    def test_create_starts_at_zero_with_yearly_budget(self, client, world, line_body):
        r = client.post("/api/budget-lines", json=line_body, headers=world.h_manager)

        assert r.status_code == 201
        line = r.json()
        assert (line["budget"], line["engineered"], line["invoiced"]) == (0.0, 0.0, 0.0)
        assert line["yearlyBudgets"][0]["year"] == 2025
        assert line["yearlyBudgets"][0]["budget"] == 12000
        assert line["type"]["name"] == "IT"

    def test_create_with_foreign_type_rejected(self, client, world, line_body):
        r = client.post("/api/budget-lines", json={**line_body, "typeId": world.type_b["id"]},
                        headers=world.h_manager)

        assert r.status_code == 400
        assert r.json()["error"] == "Invalid type"

    def test_list_paginated_and_all(self, client, world, line_body):
        for label in ("B line", "A line"):
            client.post("/api/budget-lines", json={**line_body, "label": label}, headers=world.h_manager)

        page = client.get("/api/budget-lines?pageSize=2", headers=world.h_viewer).json()
        everything = client.get("/api/budget-lines?all=true", headers=world.h_viewer).json()

        assert page["total"] == 3
        assert [l["label"] for l in page["data"]] == ["A line", "B line"]
        assert set(everything) == {"data"}
        assert len(everything["data"]) == 3

    def test_list_filters(self, client, world, line_body):
        client.post("/api/budget-lines", json={**line_body, "year": 2026}, headers=world.h_manager)

        by_year = client.get("/api/budget-lines?year=2026", headers=world.h_viewer).json()
        by_nature = client.get("/api/budget-lines?nature=Investissement", headers=world.h_viewer).json()
        by_type = client.get("/api/budget-lines?type=IT&search=licen", headers=world.h_viewer).json()

        assert [l["label"] for l in by_year["data"]] == ["Telecom"]
        assert [l["label"] for l in by_nature["data"]] == ["Telecom"]
        assert [l["label"] for l in by_type["data"]] == ["Licences"]

    def test_update(self, client, world):
        r = client.patch(f"/api/budget-lines/{world.line_a['id']}",
                         json={"label": "Software licences", "budget": 1500},
                         headers=world.h_manager)

        assert r.status_code == 200
        assert r.json()["label"] == "Software licences"
        assert r.json()["budget"] == 1500

    def test_only_admin_deletes(self, client, world):
        url = f"/api/budget-lines/{world.line_a['id']}"

        assert client.delete(url, headers=world.h_manager).status_code == 403
        assert client.delete(url, headers=world.h_admin).status_code == 200
        assert not [y for y in world.db["yearly_budgets"] if y["budgetLineId"] == world.line_a["id"]]

    def test_delete_refused_with_contracts(self, client, world, contract_body):
        client.post("/api/contracts", json=contract_body, headers=world.h_manager)

        r = client.delete(f"/api/budget-lines/{world.line_a['id']}", headers=world.h_admin)

        assert r.status_code == 400

    def test_cross_tenant_read_is_404(self, client, world):
        r = client.get(f"/api/budget-lines/{world.line_b['id']}", headers=world.h_admin)

        assert r.status_code == 404
        assert r.json()["error"] == "Budget line not found"


class TestComments:

    def test_add_and_list(self, client, world):
        url = f"/api/budget-lines/{world.line_a['id']}/comments"
        client.post(url, json={"content": "Renewal due in Q3"}, headers=world.h_viewer)

        comments = client.get(url, headers=world.h_manager).json()

        assert comments[0]["content"] == "Renewal due in Q3"
        assert comments[0]["user"]["name"] == "vera"

    def test_only_author_or_admin_deletes(self, client, world):
        url = f"/api/budget-lines/{world.line_a['id']}/comments"
        c = client.post(url, json={"content": "note"}, headers=world.h_viewer).json()

        assert client.delete(f"{url}/{c['id']}", headers=world.h_manager).status_code == 403
        assert client.delete(f"{url}/{c['id']}", headers=world.h_admin).status_code == 200

    def test_empty_content_rejected(self, client, world):
        r = client.post(f"/api/budget-lines/{world.line_a['id']}/comments", json={"content": ""},
                        headers=world.h_viewer)

        assert r.status_code == 400


class TestPoleAllocations:

    @pytest.fixture
    def poles(self, client, world):
        service = client.post("/api/services", json={"name": "DSI"}, headers=world.h_manager).json()["service"]
        ids = []
        for name in ("Infra", "Apps"):
            pole = client.post("/api/poles", json={"serviceId": service["id"], "name": name},
                               headers=world.h_manager).json()["pole"]
            ids.append(pole["id"])
        return ids

    def test_replace_set(self, client, world, poles):
        url = f"/api/budget-lines/{world.line_a['id']}/pole-allocations"
        body = {"allocations": [{"poleId": poles[0], "percentage": 60},
                                {"poleId": poles[1], "percentage": 40}]}

        r = client.put(url, json=body, headers=world.h_manager)

        assert r.status_code == 200
        assert [a["percentage"] for a in r.json()] == [60, 40]
        assert len(client.get(url, headers=world.h_viewer).json()) == 2

    def test_must_total_100(self, client, world, poles):
        body = {"allocations": [{"poleId": poles[0], "percentage": 60},
                                {"poleId": poles[1], "percentage": 30}]}

        r = client.put(f"/api/budget-lines/{world.line_a['id']}/pole-allocations", json=body,
                       headers=world.h_manager)

        assert r.status_code == 400

    def test_empty_set_clears(self, client, world, poles):
        url = f"/api/budget-lines/{world.line_a['id']}/pole-allocations"
        client.put(url, json={"allocations": [{"poleId": poles[0], "percentage": 100}]},
                   headers=world.h_manager)

        client.put(url, json={"allocations": []}, headers=world.h_manager)

        assert client.get(url, headers=world.h_viewer).json() == []


class TestYearlyAndAnnualBudgets:

    def test_upsert_yearly_budget(self, client, world):
        body = {"lineId": world.line_a["id"], "year": 2026, "budget": 2500}

        assert client.patch("/api/yearly-budgets", json=body, headers=world.h_manager).json() == {"success": True}
        client.patch("/api/yearly-budgets", json={**body, "budget": 3000}, headers=world.h_manager)

        rows = [y for y in world.db["yearly_budgets"]
                if y["budgetLineId"] == world.line_a["id"] and y["year"] == 2026]
        assert [y["budget"] for y in rows] == [3000]

    def test_upsert_requires_line(self, client, world):
        r = client.patch("/api/yearly-budgets", json={"year": 2026}, headers=world.h_manager)

        assert r.status_code == 400

    def test_update_by_id_is_audited(self, client, world):
        row = next(y for y in world.db["yearly_budgets"] if y["budgetLineId"] == world.line_a["id"])

        r = client.patch(f"/api/yearly-budgets/{row['id']}", json={"budget": 1800}, headers=world.h_manager)

        assert r.json()["budget"] == 1800
        entry = world.db["audit_log"][-1]
        assert entry["changes"]["oldBudget"] == 1000.0
        assert entry["changes"]["newBudget"] == 1800

    def test_annual_budget_defaults_then_upsert(self, client, world):
        empty = client.get("/api/annual-budgets?year=2025", headers=world.h_viewer).json()
        assert empty == {"year": 2025, "budgetFonctionnement": 0, "budgetInvestissement": 0, "exists": False}

        body = {"year": 2025, "budgetFonctionnement": 80000, "budgetInvestissement": 20000}
        saved = client.post("/api/annual-budgets", json=body, headers=world.h_manager).json()
        assert saved["success"] is True

        again = client.get("/api/annual-budgets?year=2025", headers=world.h_viewer).json()
        assert again["exists"] is True
        assert again["budgetFonctionnement"] == 80000

    def test_annual_budget_requires_year(self, client, world):
        assert client.get("/api/annual-budgets", headers=world.h_viewer).status_code == 400

    def test_viewer_cannot_set_annual_budget(self, client, world):
        body = {"year": 2025, "budgetFonctionnement": 1, "budgetInvestissement": 1}

        assert client.post("/api/annual-budgets", json=body, headers=world.h_viewer).status_code == 403


class TestBudgetYears:

    def test_list(self, client, world):
        assert client.get("/api/budget-years", headers=world.h_viewer).json() == {"years": [2025]}

    def test_copy_year(self, client, world):
        world.db["yearly_budgets"][0]["engineered"] = 400.0

        r = client.post("/api/budget-years", json={"year": 2026, "copyFrom": 2025},
                        headers=world.h_manager).json()

        assert r["copiedLines"] == 1
        copied = next(y for y in world.db["yearly_budgets"]
                      if y["budgetLineId"] == world.line_a["id"] and y["year"] == 2026)
        assert (copied["budget"], copied["engineered"], copied["invoiced"]) == (1000.0, 0.0, 0.0)
        assert client.get("/api/budget-years", headers=world.h_viewer).json() == {"years": [2026, 2025]}

    def test_existing_year_rejected(self, client, world):
        r = client.post("/api/budget-years", json={"year": 2025}, headers=world.h_manager)

        assert r.status_code == 400


class TestStatsRoutes:

    def test_monthly_requires_years(self, client, world):
        r = client.get("/api/budget-stats/monthly", headers=world.h_viewer)

        assert r.status_code == 400
        assert r.json()["error"] == "Years parameter is required"

    def test_monthly_is_tenant_scoped(self, client, world, invoice_body):
        client.post("/api/invoices", json=invoice_body, headers=world.h_manager)

        mine = client.get("/api/budget-stats/monthly?years=2025", headers=world.h_viewer).json()
        theirs = client.get("/api/budget-stats/monthly?years=2025", headers=world.h_other).json()

        assert mine[2]["2025"] == 500.0
        assert theirs[2]["2025"] == 0.0

    def test_summary(self, client, world):
        r = client.get("/api/budget-stats/summary?year=2025", headers=world.h_viewer).json()

        assert r["totalBudget"] == 1000.0


class TestCachedReads:
    """Cached routes send Cache-Control and see writes from the same tenant."""

    def test_budget_types_cache_header(self, client, world):
        r = client.get("/api/budget-types", headers=world.h_viewer)

        assert r.headers["Cache-Control"] == "private, max-age=3"
        assert [t["name"] for t in r.json()] == ["IT"]

    def test_write_invalidates_tenant_cache(self, client, world):
        client.get("/api/budget-types", headers=world.h_viewer)

        client.post("/api/budget-types", json={"name": "Facilities"}, headers=world.h_manager)

        names = [t["name"] for t in client.get("/api/budget-types", headers=world.h_viewer).json()]
        assert names == ["Facilities", "IT"]

    def test_cached_payload_served_within_ttl(self, client, world):
        client.get("/api/budget-domains", headers=world.h_viewer)
        # Direct store write bypasses invalidation
        world.db["budget_domains"].append({"id": new_id(), "organizationId": world.org_a["id"],
                                           "typeId": world.type_a["id"], "name": "Hardware"})

        domains = client.get("/api/budget-domains", headers=world.h_viewer).json()

        assert [d["name"] for d in domains] == ["Software"]
        assert domains[0]["type"]["name"] == "IT"

    def test_tenants_do_not_share_entries(self, client, world):
        client.get("/api/budget-types", headers=world.h_viewer)
        world.type_b["name"] = "Ops"

        theirs = client.get("/api/budget-types", headers=world.h_other).json()

        assert [t["name"] for t in theirs] == ["Ops"]

    def test_domain_with_foreign_type_rejected(self, client, world):
        r = client.post("/api/budget-domains", json={"typeId": world.type_b["id"], "name": "X"},
                        headers=world.h_manager)

        assert r.status_code == 400
