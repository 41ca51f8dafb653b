"""
BudgetDesk — Contracts
A contract's amount counts toward its budget line's `engineered` total for
as long as the contract is linked to that line.
"""
from budgetdesk.db import new_id, now_iso, find_by_id, org_records, remove_by_id, _n
from budgetdesk.errors import ValidationError, NotFoundError
from budgetdesk.audit import record_audit
from budgetdesk.budget import adjust_line_total, check_references


def _decorate(db, contract, detail=False):
    invoices = [i for i in db.get("invoices", []) if i.get("contractId") == contract["id"]]
    out = {
        **contract,
        "type": _pick(find_by_id(db, "budget_types", contract.get("typeId")), "name", "color"),
        "domain": _pick(find_by_id(db, "budget_domains", contract.get("domainId")), "name", "description"),
        "budgetLine": _pick(find_by_id(db, "budget_lines", contract.get("budgetLineId")),
                            "label", "accountingCode"),
        "yearlyAmounts": sorted(contract.get("yearlyAmounts") or [], key=lambda y: y.get("year", 0)),
        "totalInvoiced": round(sum(_n(i.get("amount")) for i in invoices), 2),
    }
    if detail:
        invoices.sort(key=lambda i: i.get("invoiceDate") or "", reverse=True)
        out["invoices"] = [{k: i.get(k) for k in ("id", "number", "amount", "invoiceDate", "status")}
                           for i in invoices]
    return out


def _pick(record, *fields):
    return {f: record.get(f) for f in fields} if record else None


def list_contracts(db: dict, org_id: str, status: str = None, vendor: str = None,
                   domain: str = None, year: int = None, search: str = None) -> list:
    """Newest first. `year` keeps contracts running during that calendar year."""
    rows = org_records(db, "contracts", org_id)
    if status:
        rows = [c for c in rows if c.get("status") == status]
    if vendor:
        v = vendor.lower()
        rows = [c for c in rows if v in (c.get("vendor") or "").lower()]
    if search:
        s = search.lower()
        rows = [c for c in rows if any(s in (c.get(f) or "").lower()
                for f in ("number", "label", "vendor"))]
    if domain:
        match = next((d for d in org_records(db, "budget_domains", org_id)
                      if d.get("name") == domain), None)
        if match:
            rows = [c for c in rows if c.get("domainId") == match["id"]]
    if year is not None:
        rows = [c for c in rows
                if (c.get("startDate") or "")[:4] <= str(year) <= (c.get("endDate") or "9999")[:4]]

    rows = sorted(rows, key=lambda c: c.get("createdAt", ""), reverse=True)
    return [_decorate(db, c) for c in rows]


def get_contract(db: dict, org_id: str, contract_id: str) -> dict:
    contract = find_by_id(db, "contracts", contract_id, org_id)
    if not contract:
        raise NotFoundError("Contract")
    return contract


def contract_detail(db: dict, org_id: str, contract_id: str) -> dict:
    return _decorate(db, get_contract(db, org_id, contract_id), detail=True)


def create_contract(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    check_references(db, org_id, data)

    ts = now_iso()
    contract = {"id": new_id(), "organizationId": org_id, **data,
                "budgetLineId": data.get("budgetLineId") or None,
                "createdAt": ts, "updatedAt": ts}
    db["contracts"].append(contract)
    adjust_line_total(db, org_id, contract["budgetLineId"], "engineered", contract["amount"])

    record_audit(db, user, "CREATE", "Contract", contract["id"],
                 {"number": contract["number"], "amount": contract["amount"]})
    return _decorate(db, contract)


def update_contract(db: dict, user: dict, contract_id: str, changes: dict) -> dict:
    """Apply a partial update, moving the engaged amount when amount or line changes."""
    org_id = user["organizationId"]
    contract = get_contract(db, org_id, contract_id)
    check_references(db, org_id, changes)

    if "amount" in changes or "budgetLineId" in changes:
        old_line, old_amount = contract.get("budgetLineId"), _n(contract.get("amount"))
        new_line = changes.get("budgetLineId", old_line)
        new_amount = _n(changes.get("amount", old_amount))
        adjust_line_total(db, org_id, old_line, "engineered", -old_amount)
        adjust_line_total(db, org_id, new_line, "engineered", new_amount)

    contract.update(changes)
    contract["updatedAt"] = now_iso()
    record_audit(db, user, "UPDATE", "Contract", contract_id, changes)
    return _decorate(db, contract)


def delete_contract(db: dict, user: dict, contract_id: str) -> None:
    org_id = user["organizationId"]
    contract = get_contract(db, org_id, contract_id)
    if any(i.get("contractId") == contract_id for i in db.get("invoices", [])):
        raise ValidationError("Cannot delete a contract with linked invoices")

    adjust_line_total(db, org_id, contract.get("budgetLineId"), "engineered",
                      -_n(contract.get("amount")))
    remove_by_id(db, "contracts", contract_id)
    record_audit(db, user, "DELETE", "Contract", contract_id,
                 {"number": contract.get("number"), "amount": contract.get("amount")})
