"""
BudgetDesk — Invoices
Invoice amounts feed their budget line's `invoiced` total. Credit notes
(isCredit) count negative.
"""
from budgetdesk.db import (
    new_id, now_iso, find_by_id, org_records, remove_by_id, parse_date, _n
)
from budgetdesk.errors import ValidationError, NotFoundError
from budgetdesk.audit import record_audit
from budgetdesk.budget import adjust_line_total, check_references
from budgetdesk.forecasts import expense_summary, get_forecast_expense


def signed_amount(invoice: dict) -> float:
    amount = _n(invoice.get("amount"))
    return -amount if invoice.get("isCredit") else amount


def invoice_year(invoice_date):
    d = parse_date(invoice_date)
    return d.year if d else None


def _pick(record, *fields):
    return {f: record.get(f) for f in fields} if record else None


def _decorate(db, inv):
    return {
        **inv,
        "type": _pick(find_by_id(db, "budget_types", inv.get("typeId")), "name", "color"),
        "domain": _pick(find_by_id(db, "budget_domains", inv.get("domainId")), "name", "description"),
        "budgetLine": _pick(find_by_id(db, "budget_lines", inv.get("budgetLineId")),
                            "label", "accountingCode"),
        "contract": _pick(find_by_id(db, "contracts", inv.get("contractId")), "number", "label"),
        "linkedForecastExpense": expense_summary(db, inv.get("linkedForecastExpenseId")),
    }


def _check_contract(db, org_id, data):
    if data.get("contractId") and not find_by_id(db, "contracts", data["contractId"], org_id):
        raise ValidationError("Invalid contract")


def list_invoices(db: dict, org_id: str, status: str = None, vendor: str = None,
                  domain: str = None, nature: str = None, year: int = None,
                  unpointed_only: bool = False, without_contract: bool = False,
                  search: str = None) -> list:
    """Most recent invoice date first."""
    rows = org_records(db, "invoices", org_id)
    if status:
        rows = [i for i in rows if i.get("status") == status]
    if vendor:
        v = vendor.lower()
        rows = [i for i in rows if v in (i.get("vendor") or "").lower()]
    if nature:
        rows = [i for i in rows if i.get("nature") == nature]
    if year is not None:
        rows = [i for i in rows if i.get("invoiceYear") == year]
    if unpointed_only:
        rows = [i for i in rows if not i.get("pointed")]
    if without_contract:
        rows = [i for i in rows if not i.get("contractId")]
    if search:
        s = search.lower()
        rows = [i for i in rows if any(s in (i.get(f) or "").lower()
                for f in ("number", "vendor", "description"))]
    if domain:
        match = next((d for d in org_records(db, "budget_domains", org_id)
                      if d.get("name") == domain), None)
        if match:
            rows = [i for i in rows if i.get("domainId") == match["id"]]

    rows = sorted(rows, key=lambda i: i.get("invoiceDate") or "", reverse=True)
    return [_decorate(db, i) for i in rows]


def get_invoice(db: dict, org_id: str, invoice_id: str) -> dict:
    inv = find_by_id(db, "invoices", invoice_id, org_id)
    if not inv:
        raise NotFoundError("Invoice")
    return inv


def invoice_detail(db: dict, org_id: str, invoice_id: str) -> dict:
    return _decorate(db, get_invoice(db, org_id, invoice_id))


def create_invoice(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    check_references(db, org_id, data)
    _check_contract(db, org_id, data)

    ts = now_iso()
    inv = {
        "id": new_id(), "organizationId": org_id, **data,
        "budgetLineId": data.get("budgetLineId") or None,
        "contractId": data.get("contractId") or None,
        "linkedForecastExpenseId": None,
        "invoiceYear": invoice_year(data["invoiceDate"]),
        "createdAt": ts, "updatedAt": ts,
    }
    db["invoices"].append(inv)
    adjust_line_total(db, org_id, inv["budgetLineId"], "invoiced", signed_amount(inv))

    record_audit(db, user, "CREATE", "Invoice", inv["id"],
                 {"number": inv["number"], "amount": inv["amount"]})
    return _decorate(db, inv)


def update_invoice(db: dict, user: dict, invoice_id: str, changes: dict) -> dict:
    org_id = user["organizationId"]
    inv = get_invoice(db, org_id, invoice_id)
    check_references(db, org_id, changes)
    _check_contract(db, org_id, changes)

    if {"amount", "isCredit", "budgetLineId"} & changes.keys():
        adjust_line_total(db, org_id, inv.get("budgetLineId"), "invoiced", -signed_amount(inv))
        after = {**inv, **changes}
        adjust_line_total(db, org_id, after.get("budgetLineId"), "invoiced", signed_amount(after))

    inv.update(changes)
    if changes.get("invoiceDate"):
        inv["invoiceYear"] = invoice_year(changes["invoiceDate"])
    inv["updatedAt"] = now_iso()
    record_audit(db, user, "UPDATE", "Invoice", invoice_id, changes)
    return _decorate(db, inv)


def delete_invoice(db: dict, user: dict, invoice_id: str) -> None:
    org_id = user["organizationId"]
    inv = get_invoice(db, org_id, invoice_id)
    adjust_line_total(db, org_id, inv.get("budgetLineId"), "invoiced", -signed_amount(inv))
    remove_by_id(db, "invoices", invoice_id)
    record_audit(db, user, "DELETE", "Invoice", invoice_id,
                 {"number": inv.get("number"), "amount": inv.get("amount")})


def link_forecast(db: dict, user: dict, invoice_id: str, expense_id) -> dict:
    """Point the invoice at a forecast expense, or unlink it when expense_id is None."""
    org_id = user["organizationId"]
    inv = get_invoice(db, org_id, invoice_id)
    if expense_id:
        get_forecast_expense(db, org_id, expense_id)

    inv["linkedForecastExpenseId"] = expense_id
    inv["updatedAt"] = now_iso()
    record_audit(db, user, "UPDATE", "Invoice", invoice_id, {
        "action": "LINK_FORECAST" if expense_id else "UNLINK_FORECAST",
        "forecastExpenseId": expense_id,
    })
    return _decorate(db, inv)


def vendor_names(db: dict, org_id: str) -> list:
    """Sorted distinct vendor names across contracts (vendor and provider) and invoices."""
    names = set()
    for c in org_records(db, "contracts", org_id):
        names.update(n for n in (c.get("vendor"), c.get("providerName")) if n)
    names.update(i["vendor"] for i in org_records(db, "invoices", org_id) if i.get("vendor"))
    return sorted(names)
