"""
BudgetDesk — Forecasts

Forecast budget lines are next-year planning lines, independent from the
real budget lines: they carry their own budget and a list of forecast
expenses. Invoices and purchase orders can each point at one forecast
expense (linkedForecastExpenseId) to show which planned spend they realize.

Forecasts never move the engineered/invoiced totals of real budget lines.
"""
from budgetdesk.db import new_id, now_iso, find_by_id, org_records, remove_by_id
from budgetdesk.errors import ValidationError, NotFoundError
from budgetdesk.audit import record_audit
from budgetdesk.budget import check_references

INVOICE_LINK_FIELDS = ("id", "number", "amount", "vendor", "invoiceDate", "status")
ORDER_LINK_FIELDS = ("id", "number", "amount", "vendor", "orderDate", "status")


def _pick(record, *fields):
    return {f: record.get(f) for f in fields} if record else None


def _linked_to(db, collection, expense_id):
    return [r for r in db.get(collection, []) if r.get("linkedForecastExpenseId") == expense_id]


def _unlink(db, expense_ids):
    for coll in ("invoices", "purchase_orders"):
        for r in db.get(coll, []):
            if r.get("linkedForecastExpenseId") in expense_ids:
                r["linkedForecastExpenseId"] = None


def expense_summary(db: dict, expense_id: str):
    """Short form embedded in invoices and purchase orders."""
    expense = find_by_id(db, "forecast_expenses", expense_id) if expense_id else None
    if not expense:
        return None
    line = find_by_id(db, "forecast_budget_lines", expense.get("forecastBudgetLineId"))
    return {**_pick(expense, "id", "label", "amount"),
            "forecastBudgetLine": _pick(line, "label", "nature")}


# ============================================================
# FORECAST BUDGET LINES
# ============================================================
def _decorate_line(db, line):
    pole = find_by_id(db, "poles", line.get("poleId")) if line.get("poleId") else None
    return {
        **line,
        "type": find_by_id(db, "budget_types", line.get("typeId")),
        "domain": find_by_id(db, "budget_domains", line.get("domainId")),
        "expenses": [e for e in db.get("forecast_expenses", [])
                     if e.get("forecastBudgetLineId") == line["id"]],
        "pole": {**pole, "service": find_by_id(db, "services", pole.get("serviceId"))} if pole else None,
    }


def _check_pole(db, org_id, pole_id):
    if pole_id and not find_by_id(db, "poles", pole_id, org_id):
        raise ValidationError("Invalid pole")


def list_forecast_lines(db: dict, org_id: str, year: int = None) -> list:
    rows = org_records(db, "forecast_budget_lines", org_id)
    if year is not None:
        rows = [l for l in rows if l.get("year") == year]
    rows = sorted(rows, key=lambda l: l.get("createdAt", ""), reverse=True)
    return [_decorate_line(db, l) for l in rows]


def get_forecast_line(db: dict, org_id: str, line_id: str) -> dict:
    line = find_by_id(db, "forecast_budget_lines", line_id, org_id)
    if not line:
        raise NotFoundError("Forecast budget line")
    return line


def create_forecast_line(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    check_references(db, org_id, data)
    _check_pole(db, org_id, data.get("poleId"))

    line = {"id": new_id(), "organizationId": org_id, **data,
            "poleId": data.get("poleId") or None, "createdAt": now_iso()}
    db["forecast_budget_lines"].append(line)
    record_audit(db, user, "CREATE", "ForecastBudgetLine", line["id"],
                 {"label": line["label"], "budget": line["budget"], "year": line["year"]})
    return _decorate_line(db, line)


def update_forecast_line(db: dict, user: dict, line_id: str, changes: dict) -> dict:
    org_id = user["organizationId"]
    line = get_forecast_line(db, org_id, line_id)
    if "poleId" in changes:
        changes["poleId"] = changes["poleId"] or None
        _check_pole(db, org_id, changes["poleId"])
    line.update(changes)
    record_audit(db, user, "UPDATE", "ForecastBudgetLine", line_id, changes)
    return _decorate_line(db, line)


def delete_forecast_line(db: dict, user: dict, line_id: str) -> None:
    """Deletes the line and its expenses; linked invoices and orders are unlinked."""
    line = get_forecast_line(db, user["organizationId"], line_id)
    expense_ids = {e["id"] for e in db.get("forecast_expenses", [])
                   if e.get("forecastBudgetLineId") == line_id}
    _unlink(db, expense_ids)
    db["forecast_expenses"] = [e for e in db.get("forecast_expenses", []) if e["id"] not in expense_ids]
    remove_by_id(db, "forecast_budget_lines", line_id)
    record_audit(db, user, "DELETE", "ForecastBudgetLine", line_id, {"label": line.get("label")})


# ============================================================
# FORECAST EXPENSES
# ============================================================
def _decorate_expense(db, expense):
    line = find_by_id(db, "forecast_budget_lines", expense.get("forecastBudgetLineId"))
    return {
        **expense,
        "forecastBudgetLine": {
            **line,
            "type": find_by_id(db, "budget_types", line.get("typeId")),
            "domain": find_by_id(db, "budget_domains", line.get("domainId")),
        } if line else None,
        "linkedInvoices": [_pick(i, *INVOICE_LINK_FIELDS)
                           for i in _linked_to(db, "invoices", expense["id"])],
        "linkedPurchaseOrders": [_pick(p, *ORDER_LINK_FIELDS)
                                 for p in _linked_to(db, "purchase_orders", expense["id"])],
    }


def list_forecast_expenses(db: dict, org_id: str, line_id: str = None, year: int = None,
                           only_available: bool = False, exclude_invoice_id: str = None) -> list:
    """Newest first.

    only_available keeps expenses no invoice is linked to yet. When editing an
    invoice, pass its id as exclude_invoice_id so that the expense it already
    points at stays selectable.
    """
    rows = org_records(db, "forecast_expenses", org_id)
    if line_id:
        rows = [e for e in rows if e.get("forecastBudgetLineId") == line_id]
    if year is not None:
        rows = [e for e in rows if e.get("year") == year]
    rows = sorted(rows, key=lambda e: e.get("createdAt", ""), reverse=True)
    out = [_decorate_expense(db, e) for e in rows]

    if only_available:
        out = [e for e in out
               if not e["linkedInvoices"]
               or (exclude_invoice_id and [i["id"] for i in e["linkedInvoices"]] == [exclude_invoice_id])]
    return out


def get_forecast_expense(db: dict, org_id: str, expense_id: str) -> dict:
    expense = find_by_id(db, "forecast_expenses", expense_id, org_id)
    if not expense:
        raise NotFoundError("Forecast expense")
    return expense


def create_forecast_expense(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    if not find_by_id(db, "forecast_budget_lines", data["forecastBudgetLineId"], org_id):
        raise ValidationError("Invalid forecast budget line")

    expense = {"id": new_id(), "organizationId": org_id, **data, "createdAt": now_iso()}
    db["forecast_expenses"].append(expense)
    record_audit(db, user, "CREATE", "ForecastExpense", expense["id"],
                 {"label": expense["label"], "amount": expense["amount"]})
    return _decorate_expense(db, expense)


def update_forecast_expense(db: dict, user: dict, expense_id: str, changes: dict) -> dict:
    expense = get_forecast_expense(db, user["organizationId"], expense_id)
    expense.update(changes)
    record_audit(db, user, "UPDATE", "ForecastExpense", expense_id, changes)
    return _decorate_expense(db, expense)


def delete_forecast_expense(db: dict, user: dict, expense_id: str) -> None:
    expense = get_forecast_expense(db, user["organizationId"], expense_id)
    _unlink(db, {expense_id})
    remove_by_id(db, "forecast_expenses", expense_id)
    record_audit(db, user, "DELETE", "ForecastExpense", expense_id, {"label": expense.get("label")})
