"""
BudgetDesk — Budget Module

Budget lines and everything hanging off them: comments, pole allocations,
yearly budgets, plus the organization-level annual budget, budget years and
reporting (monthly invoice totals, budget summary).

A line's `engineered` and `invoiced` totals only move through
adjust_line_total(), called by the contracts and invoices modules.

All functions take the live db dict and mutate it in place; the routing
layer persists with save_db() afterwards.
"""
from budgetdesk.config import MONTH_LABELS, NATURE_OPERATING
from budgetdesk.db import (
    new_id, now_iso, find_by_id, org_records, remove_by_id, parse_date, _n
)
from budgetdesk.errors import ValidationError, NotFoundError, ForbiddenError
from budgetdesk.audit import record_audit


# ============================================================
# DECORATION
# ============================================================
def _ref(db, collection, record_id, *fields):
    rec = find_by_id(db, collection, record_id) if record_id else None
    return {f: rec.get(f) for f in fields} if rec else None


def _pole_with_service(db, pole_id):
    pole = find_by_id(db, "poles", pole_id) if pole_id else None
    if not pole:
        return None
    return {**pole, "service": find_by_id(db, "services", pole.get("serviceId"))}


def yearly_budgets_for(db: dict, line_id: str, year: int = None) -> list:
    rows = [y for y in db.get("yearly_budgets", [])
            if y.get("budgetLineId") == line_id and (year is None or y.get("year") == year)]
    return sorted(rows, key=lambda y: y.get("year", 0))


def _linked(db, collection, line_id):
    return [r for r in db.get(collection, []) if r.get("budgetLineId") == line_id]


def decorate_line(db: dict, line: dict, year: int = None) -> dict:
    contracts = _linked(db, "contracts", line["id"])
    invoices = _linked(db, "invoices", line["id"])
    return {
        **line,
        "type": _ref(db, "budget_types", line.get("typeId"), "name", "color"),
        "domain": _ref(db, "budget_domains", line.get("domainId"), "name", "description"),
        "pole": _pole_with_service(db, line.get("poleId")),
        "poleAllocations": list_pole_allocations(db, line["id"]),
        "yearlyBudgets": yearly_budgets_for(db, line["id"], year),
        "_count": {"contracts": len(contracts), "invoices": len(invoices)},
    }


# ============================================================
# BUDGET LINES
# ============================================================
def _name_to_id(db, collection, org_id, name):
    for r in org_records(db, collection, org_id):
        if r.get("name") == name:
            return r["id"]
    return None


def list_budget_lines(db: dict, org_id: str, domain: str = None, type_name: str = None,
                      year: int = None, search: str = None, nature: str = None) -> list:
    lines = org_records(db, "budget_lines", org_id)

    if domain:
        domain_id = _name_to_id(db, "budget_domains", org_id, domain)
        if domain_id:
            lines = [l for l in lines if l.get("domainId") == domain_id]
    if type_name:
        type_id = _name_to_id(db, "budget_types", org_id, type_name)
        if type_id:
            lines = [l for l in lines if l.get("typeId") == type_id]
    if search:
        s = search.lower()
        lines = [l for l in lines if any(s in (l.get(f) or "").lower()
                 for f in ("label", "description", "accountingCode", "allocationCode"))]
    if nature:
        lines = [l for l in lines if l.get("nature") == nature]
    if year is not None:
        # Only lines that have a yearly budget for that year
        with_year = {y["budgetLineId"] for y in db.get("yearly_budgets", []) if y.get("year") == year}
        lines = [l for l in lines if l["id"] in with_year]

    lines = sorted(lines, key=lambda l: (l.get("label") or "").lower())
    return [decorate_line(db, l, year) for l in lines]


def get_budget_line(db: dict, org_id: str, line_id: str) -> dict:
    line = find_by_id(db, "budget_lines", line_id, org_id)
    if not line:
        raise NotFoundError("Budget line")
    return line


def budget_line_detail(db: dict, org_id: str, line_id: str) -> dict:
    line = get_budget_line(db, org_id, line_id)
    detail = decorate_line(db, line)
    detail["contracts"] = [{k: c.get(k) for k in ("id", "number", "label", "amount", "status")}
                           for c in _linked(db, "contracts", line_id)]
    invoices = sorted(_linked(db, "invoices", line_id),
                      key=lambda i: i.get("invoiceDate") or "", reverse=True)
    detail["invoices"] = [{k: i.get(k) for k in ("id", "number", "amount", "invoiceDate", "status")}
                          for i in invoices]
    return detail


def create_budget_line(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    check_references(db, org_id, data)
    if data.get("poleId") and not find_by_id(db, "poles", data["poleId"], org_id):
        raise ValidationError("Invalid pole")

    ts = now_iso()
    line = {
        "id": new_id(), "organizationId": org_id,
        "typeId": data["typeId"], "domainId": data["domainId"],
        "poleId": data.get("poleId") or None,
        "label": data["label"], "description": data.get("description"),
        "accountingCode": data.get("accountingCode"),
        "allocationCode": data.get("allocationCode"),
        "nature": data.get("nature") or NATURE_OPERATING,
        "budget": 0.0, "engineered": 0.0, "invoiced": 0.0,
        "createdAt": ts, "updatedAt": ts,
    }
    db["budget_lines"].append(line)
    db["yearly_budgets"].append({
        "id": new_id(), "budgetLineId": line["id"], "year": data["year"],
        "budget": _n(data.get("budget")), "engineered": 0.0, "invoiced": 0.0,
    })
    record_audit(db, user, "CREATE", "BudgetLine", line["id"],
                 {"label": line["label"], "year": data["year"]})
    return decorate_line(db, line)


def update_budget_line(db: dict, user: dict, line_id: str, changes: dict) -> dict:
    org_id = user["organizationId"]
    line = get_budget_line(db, org_id, line_id)
    if changes.get("poleId") and not find_by_id(db, "poles", changes["poleId"], org_id):
        raise ValidationError("Invalid pole")
    line.update(changes)
    line["updatedAt"] = now_iso()
    record_audit(db, user, "UPDATE", "BudgetLine", line_id, changes)
    return decorate_line(db, line)


def adjust_line_total(db: dict, org_id: str, line_id: str, field: str, delta: float) -> None:
    """Add delta to a line's running total ('engineered' or 'invoiced')."""
    if not line_id or not delta:
        return
    line = find_by_id(db, "budget_lines", line_id, org_id)
    if line is not None:
        line[field] = round(_n(line.get(field)) + delta, 2)


def check_references(db: dict, org_id: str, data: dict) -> None:
    """Type, domain and budget line ids in data must belong to the organization."""
    for key, collection, label in (("typeId", "budget_types", "type"),
                                   ("domainId", "budget_domains", "domain"),
                                   ("budgetLineId", "budget_lines", "budget line")):
        if data.get(key) and not find_by_id(db, collection, data[key], org_id):
            raise ValidationError(f"Invalid {label}")


def delete_budget_line(db: dict, user: dict, line_id: str) -> None:
    line = get_budget_line(db, user["organizationId"], line_id)
    if _linked(db, "contracts", line_id) or _linked(db, "invoices", line_id):
        raise ValidationError("Cannot delete a budget line with linked contracts or invoices")

    remove_by_id(db, "budget_lines", line_id)
    db["yearly_budgets"] = [y for y in db["yearly_budgets"] if y.get("budgetLineId") != line_id]
    db["pole_allocations"] = [a for a in db["pole_allocations"] if a.get("budgetLineId") != line_id]
    db["budget_line_comments"] = [c for c in db["budget_line_comments"]
                                  if c.get("budgetLineId") != line_id]
    record_audit(db, user, "DELETE", "BudgetLine", line_id, {"label": line.get("label")})


# ============================================================
# COMMENTS
# ============================================================
def _with_author(db, comment):
    return {**comment, "user": _ref(db, "users", comment.get("userId"), "id", "name", "email")}


def list_comments(db: dict, org_id: str, line_id: str) -> list:
    get_budget_line(db, org_id, line_id)
    comments = [c for c in db.get("budget_line_comments", [])
                if c.get("budgetLineId") == line_id and c.get("organizationId") == org_id]
    comments.sort(key=lambda c: c.get("createdAt", ""), reverse=True)
    return [_with_author(db, c) for c in comments]


def add_comment(db: dict, user: dict, line_id: str, content: str) -> dict:
    org_id = user["organizationId"]
    get_budget_line(db, org_id, line_id)
    comment = {"id": new_id(), "organizationId": org_id, "budgetLineId": line_id,
               "userId": user["id"], "content": content, "createdAt": now_iso()}
    db["budget_line_comments"].append(comment)
    return _with_author(db, comment)


def delete_comment(db: dict, user: dict, line_id: str, comment_id: str) -> None:
    comment = next((c for c in db.get("budget_line_comments", [])
                    if c.get("id") == comment_id and c.get("budgetLineId") == line_id
                    and c.get("organizationId") == user["organizationId"]), None)
    if not comment:
        raise NotFoundError("Comment")
    if comment.get("userId") != user["id"] and user.get("role") != "admin":
        raise ForbiddenError("You can only delete your own comments")
    remove_by_id(db, "budget_line_comments", comment_id)


# ============================================================
# POLE ALLOCATIONS
# ============================================================
def list_pole_allocations(db: dict, line_id: str) -> list:
    rows = [{**a, "pole": _pole_with_service(db, a.get("poleId"))}
            for a in db.get("pole_allocations", []) if a.get("budgetLineId") == line_id]
    return sorted(rows, key=lambda a: a.get("percentage", 0), reverse=True)


def replace_pole_allocations(db: dict, user: dict, line_id: str, allocations: list) -> list:
    """Replace every allocation of a line. Non-empty sets must total 100%."""
    org_id = user["organizationId"]
    get_budget_line(db, org_id, line_id)

    total = sum(a["percentage"] for a in allocations)
    if allocations and abs(total - 100) > 0.01:
        raise ValidationError(f"Percentages must add up to 100% (currently {total:g}%)")
    for a in allocations:
        if not find_by_id(db, "poles", a["poleId"], org_id):
            raise ValidationError(f"Invalid pole: {a['poleId']}")

    db["pole_allocations"] = [a for a in db["pole_allocations"] if a.get("budgetLineId") != line_id]
    for a in allocations:
        db["pole_allocations"].append({"id": new_id(), "budgetLineId": line_id,
                                       "poleId": a["poleId"], "percentage": a["percentage"]})
    record_audit(db, user, "UPDATE", "BudgetLinePoleAllocation", line_id,
                 {"allocations": allocations})
    return list_pole_allocations(db, line_id)


# ============================================================
# YEARLY BUDGETS
# ============================================================
def upsert_yearly_budget(db: dict, user: dict, line_id: str, year: int,
                         budget=None, engineered=None, invoiced=None) -> dict:
    """Create or update the (line, year) budget row. Unset amounts keep their value."""
    get_budget_line(db, user["organizationId"], line_id)
    row = next((y for y in db["yearly_budgets"]
                if y.get("budgetLineId") == line_id and y.get("year") == year), None)
    if row:
        if budget is not None: row["budget"] = budget
        if engineered is not None: row["engineered"] = engineered
        if invoiced is not None: row["invoiced"] = invoiced
        action = "UPDATE"
    else:
        row = {"id": new_id(), "budgetLineId": line_id, "year": year,
               "budget": _n(budget), "engineered": _n(engineered), "invoiced": _n(invoiced)}
        db["yearly_budgets"].append(row)
        action = "CREATE"
    record_audit(db, user, action, "YearlyBudget", row["id"],
                 {"year": year, "budget": row["budget"]})
    return row


def update_yearly_budget_amount(db: dict, user: dict, yearly_id: str, budget: float) -> dict:
    org_id = user["organizationId"]
    row = find_by_id(db, "yearly_budgets", yearly_id)
    line = find_by_id(db, "budget_lines", row.get("budgetLineId"), org_id) if row else None
    if not line:
        raise NotFoundError("Yearly budget")

    old = row.get("budget")
    row["budget"] = budget
    record_audit(db, user, "UPDATE", "YearlyBudget", yearly_id, {
        "year": row.get("year"), "budgetLineLabel": line.get("label"),
        "oldBudget": old, "newBudget": budget,
    })
    return {**row, "budgetLine": decorate_line(db, line)}


# ============================================================
# BUDGET YEARS
# ============================================================
def _org_yearly_budgets(db, org_id):
    line_ids = {l["id"] for l in org_records(db, "budget_lines", org_id)}
    return [y for y in db.get("yearly_budgets", []) if y.get("budgetLineId") in line_ids]


def list_budget_years(db: dict, org_id: str) -> list:
    return sorted({y["year"] for y in _org_yearly_budgets(db, org_id)}, reverse=True)


def create_budget_year(db: dict, user: dict, year: int, copy_from: int = None) -> dict:
    """Open a new budget year, empty or seeded from another year's budgets."""
    org_id = user["organizationId"]
    if year in list_budget_years(db, org_id):
        raise ValidationError("This year already exists")

    if copy_from is None:
        return {"success": True, "year": year, "createdLines": 0,
                "message": f"Year {year} created empty"}

    copied = 0
    for src in _org_yearly_budgets(db, org_id):
        if src.get("year") != copy_from:
            continue
        db["yearly_budgets"].append({
            "id": new_id(), "budgetLineId": src["budgetLineId"], "year": year,
            "budget": src.get("budget", 0.0), "engineered": 0.0, "invoiced": 0.0,
        })
        copied += 1
    record_audit(db, user, "CREATE", "BudgetYear", str(year),
                 {"year": year, "copyFrom": copy_from, "copiedLines": copied})
    return {"success": True, "year": year, "copiedLines": copied,
            "message": f"{copied} budget lines copied from {copy_from}"}


# ============================================================
# ANNUAL BUDGETS (organization level)
# ============================================================
def get_annual_budget(db: dict, org_id: str, year: int) -> dict:
    for a in org_records(db, "annual_budgets", org_id):
        if a.get("year") == year:
            return {**a, "exists": True}
    return {"year": year, "budgetFonctionnement": 0, "budgetInvestissement": 0, "exists": False}


def upsert_annual_budget(db: dict, user: dict, year: int, fonctionnement: float,
                         investissement: float) -> dict:
    org_id = user["organizationId"]
    row = next((a for a in org_records(db, "annual_budgets", org_id) if a.get("year") == year), None)
    if row is None:
        row = {"id": new_id(), "organizationId": org_id, "year": year}
        db["annual_budgets"].append(row)
        action = "CREATE"
    else:
        action = "UPDATE"
    row.update({"budgetFonctionnement": float(fonctionnement),
                "budgetInvestissement": float(investissement), "updatedAt": now_iso()})
    record_audit(db, user, action, "AnnualBudget", row["id"],
                 {"year": year, "budgetFonctionnement": row["budgetFonctionnement"],
                  "budgetInvestissement": row["budgetInvestissement"]})
    return row


# ============================================================
# REPORTING
# ============================================================
def parse_years(raw: str) -> list:
    """'2024, 2025' → [2024, 2025]. Raises ValidationError on anything else."""
    if not raw:
        raise ValidationError("Years parameter is required")
    try:
        years = [int(y.strip()) for y in raw.split(",") if y.strip()]
    except ValueError:
        raise ValidationError(f"Invalid years parameter: {raw}")
    if not years:
        raise ValidationError("Years parameter is required")
    return years


def monthly_invoice_totals(invoices: list, years: list) -> list:
    """Twelve points, one per month: {"month": label, "<year>": total, ...}."""
    totals = {(y, m): 0.0 for y in years for m in range(1, 13)}
    for inv in invoices:
        d = parse_date(inv.get("invoiceDate"))
        if d is not None and (d.year, d.month) in totals:
            totals[(d.year, d.month)] += _n(inv.get("amount"))

    points = []
    for m in range(1, 13):
        point = {"month": MONTH_LABELS[m - 1]}
        for y in years:
            point[str(y)] = round(totals[(y, m)], 2)
        points.append(point)
    return points


def budget_summary(db: dict, org_id: str, year: int = None) -> dict:
    """Totals across an organization's lines; per-year rows when year is given."""
    if year is None:
        rows = org_records(db, "budget_lines", org_id)
    else:
        rows = [y for y in _org_yearly_budgets(db, org_id) if y.get("year") == year]

    budget = sum(_n(r.get("budget")) for r in rows)
    engineered = sum(_n(r.get("engineered")) for r in rows)
    invoiced = sum(_n(r.get("invoiced")) for r in rows)
    return {
        "totalBudget": round(budget, 2), "totalEngineered": round(engineered, 2),
        "totalInvoiced": round(invoiced, 2), "remaining": round(budget - invoiced, 2),
        "percentageUsed": round(invoiced / budget * 100, 1) if budget > 0 else 0.0,
    }
