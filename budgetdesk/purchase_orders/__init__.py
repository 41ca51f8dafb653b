"""
BudgetDesk — Purchase Orders
Order numbers are unique within an organization. An order may point at one
forecast expense; it does not touch budget-line totals.
"""
from budgetdesk.db import new_id, now_iso, find_by_id, org_records, remove_by_id
from budgetdesk.errors import ValidationError, NotFoundError, ConflictError
from budgetdesk.audit import record_audit
from budgetdesk.forecasts import expense_summary


def _decorate(db, order):
    return {**order, "linkedForecastExpense": expense_summary(db, order.get("linkedForecastExpenseId"))}


def _check_number(db, org_id, number, order_id=None):
    for o in org_records(db, "purchase_orders", org_id):
        if o.get("number") == number and o["id"] != order_id:
            raise ConflictError("A purchase order with this number already exists")


def _check_expense(db, org_id, expense_id):
    if expense_id and not find_by_id(db, "forecast_expenses", expense_id, org_id):
        raise ValidationError("Invalid forecast expense")


def list_purchase_orders(db: dict, org_id: str, status: str = None, vendor: str = None,
                         search: str = None, unlinked: bool = False) -> list:
    """Most recent order date first."""
    rows = org_records(db, "purchase_orders", org_id)
    if status:
        rows = [o for o in rows if o.get("status") == status]
    if vendor:
        v = vendor.lower()
        rows = [o for o in rows if v in (o.get("vendor") or "").lower()]
    if unlinked:
        rows = [o for o in rows if not o.get("linkedForecastExpenseId")]
    if search:
        s = search.lower()
        rows = [o for o in rows if any(s in (o.get(f) or "").lower()
                for f in ("number", "vendor", "description"))]

    rows = sorted(rows, key=lambda o: o.get("orderDate") or "", reverse=True)
    return [_decorate(db, o) for o in rows]


def get_purchase_order(db: dict, org_id: str, order_id: str) -> dict:
    order = find_by_id(db, "purchase_orders", order_id, org_id)
    if not order:
        raise NotFoundError("Purchase order")
    return order


def purchase_order_detail(db: dict, org_id: str, order_id: str) -> dict:
    return _decorate(db, get_purchase_order(db, org_id, order_id))


def create_purchase_order(db: dict, user: dict, data: dict) -> dict:
    org_id = user["organizationId"]
    _check_number(db, org_id, data["number"])
    _check_expense(db, org_id, data.get("linkedForecastExpenseId"))

    ts = now_iso()
    order = {"id": new_id(), "organizationId": org_id, **data,
             "linkedForecastExpenseId": data.get("linkedForecastExpenseId") or None,
             "createdAt": ts, "updatedAt": ts}
    db["purchase_orders"].append(order)
    record_audit(db, user, "CREATE", "PurchaseOrder", order["id"],
                 {"number": order["number"], "amount": order["amount"]})
    return _decorate(db, order)


def update_purchase_order(db: dict, user: dict, order_id: str, changes: dict) -> dict:
    org_id = user["organizationId"]
    order = get_purchase_order(db, org_id, order_id)
    if changes.get("number") and changes["number"] != order.get("number"):
        _check_number(db, org_id, changes["number"], order_id)
    _check_expense(db, org_id, changes.get("linkedForecastExpenseId"))

    order.update(changes)
    order["updatedAt"] = now_iso()
    record_audit(db, user, "UPDATE", "PurchaseOrder", order_id, changes)
    return _decorate(db, order)


def delete_purchase_order(db: dict, user: dict, order_id: str) -> None:
    order = get_purchase_order(db, user["organizationId"], order_id)
    remove_by_id(db, "purchase_orders", order_id)
    record_audit(db, user, "DELETE", "PurchaseOrder", order_id,
                 {"number": order.get("number"), "amount": order.get("amount")})
