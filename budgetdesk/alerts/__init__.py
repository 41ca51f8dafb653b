"""
BudgetDesk — Alert Aggregator

Three independent rule sets, each normalized into the same alert shape and
concatenated (contracts, then invoices, then budget lines):

  1. Contract expiry  — end date within [now, now + 30 days], soonest first  (warning)
  2. Overdue invoice  — stored status is the late marker, earliest due first  (error)
  3. Budget overspend — invoiced > budget                                     (error)

Titles and messages are French, like the stored status markers. Each
category is capped at ALERT_CATEGORY_LIMIT entries. Alerts are derived on
every call and never stored. Any failure while reading records propagates:
the caller gets no partial list.
"""
from datetime import datetime, timedelta
from typing import List, Literal, TypedDict

from budgetdesk.config import (
    ALERT_EXPIRY_WINDOW_DAYS, ALERT_CATEGORY_LIMIT, INVOICE_STATUS_LATE
)
from budgetdesk.db import org_records, parse_date, _n


class Alert(TypedDict):
    id: str
    type: Literal["contract", "invoice", "budget"]
    severity: Literal["warning", "error"]
    title: str
    message: str
    date: str


def format_amount(amount: float) -> str:
    """French-style grouping: 12345.5 → '12 345,5', 1500.0 → '1 500'."""
    text = f"{_n(amount):,.2f}".rstrip("0").rstrip(".")
    return text.replace(",", " ").replace(".", ",")


def format_day(dt: datetime) -> str:
    return dt.strftime("%d/%m/%Y")


# ============================================================
# RULES
# ============================================================
def expiring_contracts(db: dict, org_id: str, now: datetime) -> List[Alert]:
    horizon = now + timedelta(days=ALERT_EXPIRY_WINDOW_DAYS)
    hits = []
    for c in org_records(db, "contracts", org_id):
        end = parse_date(c.get("endDate"))
        if end is not None and now <= end <= horizon:
            hits.append((end, c))
    hits.sort(key=lambda pair: pair[0])

    return [{
        "id": c["id"], "type": "contract", "severity": "warning",
        "title": "Contrat expirant bientôt",
        "message": f"{c.get('label', '')} ({c.get('number', '')}) expire le {format_day(end)}",
        "date": end.isoformat(),
    } for end, c in hits[:ALERT_CATEGORY_LIMIT]]


def overdue_invoices(db: dict, org_id: str) -> List[Alert]:
    late = [i for i in org_records(db, "invoices", org_id)
            if i.get("status") == INVOICE_STATUS_LATE]
    # Missing due dates sort last
    late.sort(key=lambda i: parse_date(i.get("dueDate")) or datetime.max)

    alerts = []
    for inv in late[:ALERT_CATEGORY_LIMIT]:
        due = parse_date(inv.get("dueDate"))
        alerts.append({
            "id": inv["id"], "type": "invoice", "severity": "error",
            "title": "Facture en retard",
            "message": f"Facture {inv.get('number', '')} - {inv.get('vendor', '')} - "
                       f"{format_amount(inv.get('amount'))}€",
            "date": due.isoformat() if due else inv.get("dueDate"),
        })
    return alerts


def overspent_budget_lines(db: dict, org_id: str, now: datetime) -> List[Alert]:
    over = [l for l in org_records(db, "budget_lines", org_id)
            if _n(l.get("invoiced")) > _n(l.get("budget"))]

    return [{
        "id": l["id"], "type": "budget", "severity": "error",
        "title": "Budget dépassé",
        "message": f"{l.get('label', '')} - Facturé: {format_amount(l.get('invoiced'))}€ / "
                   f"Budget: {format_amount(l.get('budget'))}€",
        "date": now.isoformat(),
    } for l in over[:ALERT_CATEGORY_LIMIT]]


# ============================================================
# AGGREGATION
# ============================================================
def compute_alerts(db: dict, org_id: str, now: datetime = None) -> List[Alert]:
    """All alerts for one organization."""
    now = now or datetime.now()
    return (expiring_contracts(db, org_id, now)
            + overdue_invoices(db, org_id)
            + overspent_budget_lines(db, org_id, now))
