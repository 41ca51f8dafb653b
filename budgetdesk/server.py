"""
BudgetDesk — Multi-tenant Budget Tracking API
v1.4 — budget lines, contracts, invoices, purchase orders, forecasts,
        yearly/annual budgets, alerts, organizational structure,
        organizations and users, audit trail

Routing layer only: handlers validate input, check roles, call the domain
modules, persist and invalidate the tenant's cache entries.
"""

from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Depends, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from budgetdesk.config import (
    VERSION, PORT, ROLE_MANAGER, ROLE_ADMIN, CACHE_CONTROL_HEADER,
    DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, BOOTSTRAP_ADMIN_EMAIL, BOOTSTRAP_ADMIN_PASSWORD
)
from budgetdesk.logger import setup_logging
from budgetdesk.errors import register_error_handlers, ValidationError
from budgetdesk.db import get_db, save_db, find_by_id, org_records, paginate
from budgetdesk.auth import (
    authenticate, create_jwt, public_user, get_current_user, require_org_user,
    require_role, is_super_admin
)
from budgetdesk.cache import TTLCache, get_cache, cache_key, org_prefix
from budgetdesk.audit import query_audit_logs
from budgetdesk.alerts import compute_alerts
from budgetdesk import schemas
from budgetdesk import (
    budget, contracts, invoices, purchase_orders, forecasts, structure, organizations
)

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = get_db()
    admin = organizations.bootstrap_super_admin(db, BOOTSTRAP_ADMIN_EMAIL, BOOTSTRAP_ADMIN_PASSWORD)
    if admin:
        save_db(db)
        logger.info("Bootstrap super admin created: %s", admin["email"])
    logger.info("BudgetDesk v%s started", VERSION)
    yield


app = FastAPI(title="BudgetDesk", version=VERSION, lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
register_error_handlers(app)
app.state.cache = TTLCache()

manager_user = require_role(ROLE_MANAGER)
admin_user = require_role(ROLE_ADMIN)
any_admin = require_role(ROLE_ADMIN, org_required=False)


# ============================================================
# HELPERS
# ============================================================
def commit(db: dict, cache: TTLCache, org_id: str = None):
    """Persist and drop the tenant's cached reads (everything when org_id is None)."""
    save_db(db)
    if org_id:
        cache.clear(org_prefix(org_id))
    else:
        cache.clear_all()


def cached(response: Response, cache: TTLCache, key: str, loader):
    response.headers["Cache-Control"] = CACHE_CONTROL_HEADER
    return cache.get_or_load(key, loader)


def page_params(page: int = Query(1, ge=1),
                pageSize: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)):
    return page, pageSize


# ============================================================
# HEALTH & AUTH
# ============================================================
@app.get("/api/health")
async def health():
    return {"status": "ok", "version": VERSION, "timestamp": datetime.now().isoformat()}

@app.post("/api/auth/login")
async def login(body: schemas.LoginBody):
    user = authenticate(get_db(), body.email, body.password)
    logger.info("Login: %s", user["email"])
    return {"token": create_jwt(user), "user": public_user(user)}

@app.get("/api/auth/me")
async def me(user: dict = Depends(get_current_user)):
    org = find_by_id(get_db(), "organizations", user.get("organizationId")) if user.get("organizationId") else None
    return {**user, "organization": {"id": org["id"], "name": org["name"], "slug": org["slug"]} if org else None}


# ============================================================
# ALERTS
# ============================================================
@app.get("/api/alerts")
async def alerts(user: dict = Depends(require_org_user)):
    return compute_alerts(get_db(), user["organizationId"], datetime.now())


# ============================================================
# BUDGET TYPES & DOMAINS
# ============================================================
@app.get("/api/budget-types")
async def list_budget_types(response: Response, user: dict = Depends(require_org_user),
                            cache: TTLCache = Depends(get_cache)):
    org_id = user["organizationId"]
    return cached(response, cache, cache_key(org_id, "budget-types"),
                  lambda: structure.list_budget_types(get_db(), org_id))

@app.post("/api/budget-types", status_code=201)
async def create_budget_type(body: schemas.BudgetTypeCreate, user: dict = Depends(manager_user),
                             cache: TTLCache = Depends(get_cache)):
    db = get_db()
    row = structure.create_budget_type(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return row

@app.get("/api/budget-domains")
async def list_budget_domains(response: Response, user: dict = Depends(require_org_user),
                              cache: TTLCache = Depends(get_cache)):
    org_id = user["organizationId"]
    return cached(response, cache, cache_key(org_id, "budget-domains"),
                  lambda: structure.list_budget_domains(get_db(), org_id))

@app.post("/api/budget-domains", status_code=201)
async def create_budget_domain(body: schemas.BudgetDomainCreate, user: dict = Depends(manager_user),
                               cache: TTLCache = Depends(get_cache)):
    db = get_db()
    row = structure.create_budget_domain(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return row


# ============================================================
# BUDGET LINES
# ============================================================
@app.get("/api/budget-lines")
async def list_budget_lines(domain: str = None, type_name: str = Query(None, alias="type"),
                            year: int = None, search: str = None, nature: str = None,
                            all_lines: bool = Query(False, alias="all"),
                            paging: tuple = Depends(page_params),
                            user: dict = Depends(require_org_user)):
    lines = budget.list_budget_lines(get_db(), user["organizationId"], domain=domain,
                                     type_name=type_name, year=year, search=search, nature=nature)
    if all_lines:
        return {"data": lines}
    return paginate(lines, *paging)

@app.post("/api/budget-lines", status_code=201)
async def create_budget_line(body: schemas.BudgetLineCreate, user: dict = Depends(manager_user),
                             cache: TTLCache = Depends(get_cache)):
    db = get_db()
    line = budget.create_budget_line(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return line

@app.get("/api/budget-lines/{line_id}")
async def get_budget_line(line_id: str, user: dict = Depends(require_org_user)):
    return budget.budget_line_detail(get_db(), user["organizationId"], line_id)

@app.put("/api/budget-lines/{line_id}")
@app.patch("/api/budget-lines/{line_id}")
async def update_budget_line(line_id: str, body: schemas.BudgetLineUpdate,
                             user: dict = Depends(manager_user), cache: TTLCache = Depends(get_cache)):
    db = get_db()
    line = budget.update_budget_line(db, user, line_id, body.model_dump(exclude_unset=True))
    commit(db, cache, user["organizationId"])
    return line

@app.delete("/api/budget-lines/{line_id}")
async def delete_budget_line(line_id: str, user: dict = Depends(admin_user),
                             cache: TTLCache = Depends(get_cache)):
    db = get_db()
    budget.delete_budget_line(db, user, line_id)
    commit(db, cache, user["organizationId"])
    return {"success": True}

@app.get("/api/budget-lines/{line_id}/comments")
async def list_comments(line_id: str, user: dict = Depends(require_org_user)):
    return budget.list_comments(get_db(), user["organizationId"], line_id)

@app.post("/api/budget-lines/{line_id}/comments", status_code=201)
async def add_comment(line_id: str, body: schemas.CommentCreate, user: dict = Depends(require_org_user)):
    db = get_db()
    comment = budget.add_comment(db, user, line_id, body.content)
    save_db(db)
    return comment

@app.delete("/api/budget-lines/{line_id}/comments/{comment_id}")
async def delete_comment(line_id: str, comment_id: str, user: dict = Depends(require_org_user)):
    db = get_db()
    budget.delete_comment(db, user, line_id, comment_id)
    save_db(db)
    return {"success": True}

@app.get("/api/budget-lines/{line_id}/pole-allocations")
async def get_pole_allocations(line_id: str, user: dict = Depends(require_org_user)):
    db = get_db()
    budget.get_budget_line(db, user["organizationId"], line_id)
    return budget.list_pole_allocations(db, line_id)

@app.put("/api/budget-lines/{line_id}/pole-allocations")
async def put_pole_allocations(line_id: str, body: schemas.PoleAllocationsBody,
                               user: dict = Depends(manager_user), cache: TTLCache = Depends(get_cache)):
    db = get_db()
    rows = budget.replace_pole_allocations(db, user, line_id, [a.model_dump() for a in body.allocations])
    commit(db, cache, user["organizationId"])
    return rows


# ============================================================
# YEARLY / ANNUAL BUDGETS & BUDGET YEARS
# ============================================================
@app.patch("/api/yearly-budgets")
async def upsert_yearly_budget(body: schemas.YearlyBudgetUpsert, user: dict = Depends(manager_user),
                               cache: TTLCache = Depends(get_cache)):
    line_id = body.lineId or body.budgetLineId
    if not line_id:
        raise ValidationError("lineId or budgetLineId is required")
    db = get_db()
    budget.upsert_yearly_budget(db, user, line_id, body.year, budget=body.budget,
                                engineered=body.engineered, invoiced=body.invoiced)
    commit(db, cache, user["organizationId"])
    return {"success": True}

@app.patch("/api/yearly-budgets/{yearly_id}")
async def update_yearly_budget(yearly_id: str, body: schemas.YearlyBudgetUpdate,
                               user: dict = Depends(manager_user), cache: TTLCache = Depends(get_cache)):
    db = get_db()
    row = budget.update_yearly_budget_amount(db, user, yearly_id, body.budget)
    commit(db, cache, user["organizationId"])
    return row

@app.get("/api/annual-budgets")
async def get_annual_budget(response: Response, year: int = None, user: dict = Depends(require_org_user),
                            cache: TTLCache = Depends(get_cache)):
    if year is None:
        raise ValidationError("Year is required")
    org_id = user["organizationId"]
    return cached(response, cache, cache_key(org_id, "annual-budget", year),
                  lambda: budget.get_annual_budget(get_db(), org_id, year))

@app.post("/api/annual-budgets")
async def save_annual_budget(body: schemas.AnnualBudgetBody, user: dict = Depends(manager_user),
                             cache: TTLCache = Depends(get_cache)):
    db = get_db()
    row = budget.upsert_annual_budget(db, user, body.year, body.budgetFonctionnement, body.budgetInvestissement)
    commit(db, cache, user["organizationId"])
    return {"success": True, "annualBudget": row}

@app.get("/api/budget-years")
async def list_budget_years(response: Response, user: dict = Depends(require_org_user),
                            cache: TTLCache = Depends(get_cache)):
    org_id = user["organizationId"]
    return cached(response, cache, cache_key(org_id, "budget-years"),
                  lambda: {"years": budget.list_budget_years(get_db(), org_id)})

@app.post("/api/budget-years")
async def create_budget_year(body: schemas.BudgetYearCreate, user: dict = Depends(manager_user),
                             cache: TTLCache = Depends(get_cache)):
    db = get_db()
    result = budget.create_budget_year(db, user, body.year, body.copyFrom)
    commit(db, cache, user["organizationId"])
    return result


# ============================================================
# REPORTING
# ============================================================
@app.get("/api/budget-stats/monthly")
async def monthly_stats(response: Response, years: str = None, user: dict = Depends(require_org_user),
                        cache: TTLCache = Depends(get_cache)):
    year_list = budget.parse_years(years)
    org_id = user["organizationId"]
    return cached(response, cache, cache_key(org_id, "monthly", *year_list),
                  lambda: budget.monthly_invoice_totals(org_records(get_db(), "invoices", org_id), year_list))

@app.get("/api/budget-stats/summary")
async def summary_stats(response: Response, year: int = None, user: dict = Depends(require_org_user),
                        cache: TTLCache = Depends(get_cache)):
    org_id = user["organizationId"]
    return cached(response, cache, cache_key(org_id, "summary", year if year is not None else "all"),
                  lambda: budget.budget_summary(get_db(), org_id, year))


# ============================================================
# CONTRACTS
# ============================================================
@app.get("/api/contracts")
async def list_contracts(status: str = None, vendor: str = None, domain: str = None,
                         year: int = None, search: str = None,
                         paging: tuple = Depends(page_params), user: dict = Depends(require_org_user)):
    rows = contracts.list_contracts(get_db(), user["organizationId"], status=status, vendor=vendor,
                                    domain=domain, year=year, search=search)
    return paginate(rows, *paging)

@app.post("/api/contracts", status_code=201)
async def create_contract(body: schemas.ContractCreate, user: dict = Depends(manager_user),
                          cache: TTLCache = Depends(get_cache)):
    db = get_db()
    contract = contracts.create_contract(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return contract

@app.get("/api/contracts/{contract_id}")
async def get_contract(contract_id: str, user: dict = Depends(require_org_user)):
    return contracts.contract_detail(get_db(), user["organizationId"], contract_id)

@app.put("/api/contracts/{contract_id}")
@app.patch("/api/contracts/{contract_id}")
async def update_contract(contract_id: str, body: schemas.ContractUpdate,
                          user: dict = Depends(manager_user), cache: TTLCache = Depends(get_cache)):
    db = get_db()
    contract = contracts.update_contract(db, user, contract_id, body.model_dump(exclude_unset=True))
    commit(db, cache, user["organizationId"])
    return contract

@app.delete("/api/contracts/{contract_id}")
async def delete_contract(contract_id: str, user: dict = Depends(manager_user),
                          cache: TTLCache = Depends(get_cache)):
    db = get_db()
    contracts.delete_contract(db, user, contract_id)
    commit(db, cache, user["organizationId"])
    return {"message": "Contract deleted"}


# ============================================================
# INVOICES
# ============================================================
@app.get("/api/invoices")
async def list_invoices(status: str = None, vendor: str = None, domain: str = None,
                        nature: str = None, year: int = None, unpointedOnly: bool = False,
                        withoutContract: bool = False, search: str = None,
                        paging: tuple = Depends(page_params), user: dict = Depends(require_org_user)):
    rows = invoices.list_invoices(get_db(), user["organizationId"], status=status, vendor=vendor,
                                  domain=domain, nature=nature, year=year,
                                  unpointed_only=unpointedOnly, without_contract=withoutContract,
                                  search=search)
    return paginate(rows, *paging)

@app.post("/api/invoices", status_code=201)
async def create_invoice(body: schemas.InvoiceCreate, user: dict = Depends(manager_user),
                         cache: TTLCache = Depends(get_cache)):
    db = get_db()
    inv = invoices.create_invoice(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return inv

@app.get("/api/invoices/{invoice_id}")
async def get_invoice(invoice_id: str, user: dict = Depends(require_org_user)):
    return invoices.invoice_detail(get_db(), user["organizationId"], invoice_id)

@app.put("/api/invoices/{invoice_id}")
@app.patch("/api/invoices/{invoice_id}")
async def update_invoice(invoice_id: str, body: schemas.InvoiceUpdate,
                         user: dict = Depends(manager_user), cache: TTLCache = Depends(get_cache)):
    db = get_db()
    inv = invoices.update_invoice(db, user, invoice_id, body.model_dump(exclude_unset=True))
    commit(db, cache, user["organizationId"])
    return inv

@app.delete("/api/invoices/{invoice_id}")
async def delete_invoice(invoice_id: str, user: dict = Depends(manager_user),
                         cache: TTLCache = Depends(get_cache)):
    db = get_db()
    invoices.delete_invoice(db, user, invoice_id)
    commit(db, cache, user["organizationId"])
    return {"message": "Invoice deleted"}

@app.put("/api/invoices/{invoice_id}/link-forecast")
async def link_invoice_forecast(invoice_id: str, body: schemas.ForecastLink,
                                user: dict = Depends(manager_user), cache: TTLCache = Depends(get_cache)):
    db = get_db()
    inv = invoices.link_forecast(db, user, invoice_id, body.forecastExpenseId)
    commit(db, cache, user["organizationId"])
    message = "Invoice linked" if body.forecastExpenseId else "Invoice unlinked"
    return {"message": message, "invoice": inv}

@app.get("/api/vendors-list")
async def vendors_list(response: Response, user: dict = Depends(require_org_user),
                       cache: TTLCache = Depends(get_cache)):
    org_id = user["organizationId"]
    return cached(response, cache, cache_key(org_id, "vendors"),
                  lambda: invoices.vendor_names(get_db(), org_id))


# ============================================================
# PURCHASE ORDERS
# ============================================================
@app.get("/api/purchase-orders")
async def list_purchase_orders(status: str = None, vendor: str = None, search: str = None,
                               unlinked: bool = False, paging: tuple = Depends(page_params),
                               user: dict = Depends(require_org_user)):
    rows = purchase_orders.list_purchase_orders(get_db(), user["organizationId"], status=status,
                                                vendor=vendor, search=search, unlinked=unlinked)
    return paginate(rows, *paging)

@app.post("/api/purchase-orders", status_code=201)
async def create_purchase_order(body: schemas.PurchaseOrderCreate, user: dict = Depends(manager_user),
                                cache: TTLCache = Depends(get_cache)):
    db = get_db()
    order = purchase_orders.create_purchase_order(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return order

@app.get("/api/purchase-orders/{order_id}")
async def get_purchase_order(order_id: str, user: dict = Depends(require_org_user)):
    return purchase_orders.purchase_order_detail(get_db(), user["organizationId"], order_id)

@app.put("/api/purchase-orders/{order_id}")
@app.patch("/api/purchase-orders/{order_id}")
async def update_purchase_order(order_id: str, body: schemas.PurchaseOrderUpdate,
                                user: dict = Depends(manager_user), cache: TTLCache = Depends(get_cache)):
    db = get_db()
    order = purchase_orders.update_purchase_order(db, user, order_id, body.model_dump(exclude_unset=True))
    commit(db, cache, user["organizationId"])
    return order

@app.delete("/api/purchase-orders/{order_id}")
async def delete_purchase_order(order_id: str, user: dict = Depends(manager_user),
                                cache: TTLCache = Depends(get_cache)):
    db = get_db()
    purchase_orders.delete_purchase_order(db, user, order_id)
    commit(db, cache, user["organizationId"])
    return {"message": "Purchase order deleted"}


# ============================================================
# FORECASTS
# ============================================================
@app.get("/api/forecast-budget-lines")
async def list_forecast_lines(year: int = None, user: dict = Depends(require_org_user)):
    return forecasts.list_forecast_lines(get_db(), user["organizationId"], year)

@app.post("/api/forecast-budget-lines", status_code=201)
async def create_forecast_line(body: schemas.ForecastLineCreate, user: dict = Depends(manager_user),
                               cache: TTLCache = Depends(get_cache)):
    db = get_db()
    line = forecasts.create_forecast_line(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return {"message": "Forecast budget line created", "line": line}

@app.put("/api/forecast-budget-lines")
async def update_forecast_line(body: schemas.ForecastLineUpdate, user: dict = Depends(manager_user),
                               cache: TTLCache = Depends(get_cache)):
    db = get_db()
    line = forecasts.update_forecast_line(db, user, body.id, body.model_dump(exclude_unset=True, exclude={"id"}))
    commit(db, cache, user["organizationId"])
    return {"message": "Forecast budget line updated", "line": line}

@app.delete("/api/forecast-budget-lines/{line_id}")
async def delete_forecast_line(line_id: str, user: dict = Depends(manager_user),
                               cache: TTLCache = Depends(get_cache)):
    db = get_db()
    forecasts.delete_forecast_line(db, user, line_id)
    commit(db, cache, user["organizationId"])
    return {"message": "Forecast budget line deleted"}

@app.get("/api/forecast-expenses")
async def list_forecast_expenses(forecastBudgetLineId: str = None, year: int = None,
                                 onlyAvailable: bool = False, excludeInvoiceId: str = None,
                                 user: dict = Depends(require_org_user)):
    return forecasts.list_forecast_expenses(get_db(), user["organizationId"], line_id=forecastBudgetLineId,
                                            year=year, only_available=onlyAvailable,
                                            exclude_invoice_id=excludeInvoiceId)

@app.post("/api/forecast-expenses", status_code=201)
async def create_forecast_expense(body: schemas.ForecastExpenseCreate, user: dict = Depends(manager_user),
                                  cache: TTLCache = Depends(get_cache)):
    db = get_db()
    expense = forecasts.create_forecast_expense(db, user, body.model_dump())
    commit(db, cache, user["organizationId"])
    return {"message": "Forecast expense created", "expense": expense}

@app.put("/api/forecast-expenses")
async def update_forecast_expense(body: schemas.ForecastExpenseUpdate, user: dict = Depends(manager_user),
                                  cache: TTLCache = Depends(get_cache)):
    db = get_db()
    expense = forecasts.update_forecast_expense(db, user, body.id,
                                                body.model_dump(exclude_unset=True, exclude={"id"}))
    commit(db, cache, user["organizationId"])
    return {"message": "Forecast expense updated", "expense": expense}

@app.delete("/api/forecast-expenses/{expense_id}")
async def delete_forecast_expense(expense_id: str, user: dict = Depends(manager_user),
                                  cache: TTLCache = Depends(get_cache)):
    db = get_db()
    forecasts.delete_forecast_expense(db, user, expense_id)
    commit(db, cache, user["organizationId"])
    return {"message": "Forecast expense deleted"}


# ============================================================
# SERVICES & POLES
# ============================================================
@app.get("/api/services")
async def list_services(user: dict = Depends(require_org_user)):
    return structure.list_services(get_db(), user["organizationId"])

@app.post("/api/services", status_code=201)
async def create_service(body: schemas.ServiceCreate, user: dict = Depends(manager_user)):
    db = get_db()
    service = structure.create_service(db, user, body.model_dump())
    save_db(db)
    return {"message": "Service created", "service": service}

@app.put("/api/services")
async def update_service(body: schemas.ServiceUpdate, user: dict = Depends(manager_user)):
    db = get_db()
    service = structure.update_service(db, user, body.id, body.model_dump(exclude_unset=True, exclude={"id"}))
    save_db(db)
    return {"message": "Service updated", "service": service}

@app.delete("/api/services/{service_id}")
async def delete_service(service_id: str, user: dict = Depends(manager_user),
                         cache: TTLCache = Depends(get_cache)):
    db = get_db()
    structure.delete_service(db, user, service_id)
    commit(db, cache, user["organizationId"])
    return {"message": "Service deleted"}

@app.get("/api/poles")
async def list_poles(serviceId: str = None, user: dict = Depends(require_org_user)):
    return structure.list_poles(get_db(), user["organizationId"], serviceId)

@app.post("/api/poles", status_code=201)
async def create_pole(body: schemas.PoleCreate, user: dict = Depends(manager_user)):
    db = get_db()
    pole = structure.create_pole(db, user, body.model_dump())
    save_db(db)
    return {"message": "Pole created", "pole": pole}

@app.put("/api/poles")
async def update_pole(body: schemas.PoleUpdate, user: dict = Depends(manager_user)):
    db = get_db()
    pole = structure.update_pole(db, user, body.id, body.model_dump(exclude_unset=True, exclude={"id"}))
    save_db(db)
    return {"message": "Pole updated", "pole": pole}

@app.delete("/api/poles/{pole_id}")
async def delete_pole(pole_id: str, user: dict = Depends(manager_user),
                      cache: TTLCache = Depends(get_cache)):
    db = get_db()
    structure.delete_pole(db, user, pole_id)
    commit(db, cache, user["organizationId"])
    return {"message": "Pole deleted"}


# ============================================================
# ORGANIZATIONS
# ============================================================
@app.get("/api/organizations")
async def list_organizations(user: dict = Depends(any_admin)):
    return organizations.list_organizations(get_db(), user)

@app.post("/api/organizations", status_code=201)
async def create_organization(body: schemas.OrganizationCreate, user: dict = Depends(any_admin)):
    db = get_db()
    org = organizations.create_organization(db, user, body.name, body.slug)
    save_db(db)
    logger.info("Organization created: %s (%s)", org["name"], org["slug"])
    return org

@app.post("/api/organizations/join")
async def join_organization(body: schemas.JoinBody, user: dict = Depends(get_current_user)):
    db = get_db()
    org = organizations.join_organization(db, user, body.inviteCode)
    save_db(db)
    return {"message": "You joined the organization", "organization": org}

@app.patch("/api/organizations/{org_id}")
async def rename_organization(org_id: str, body: schemas.OrganizationUpdate, user: dict = Depends(any_admin),
                              cache: TTLCache = Depends(get_cache)):
    db = get_db()
    org = organizations.rename_organization(db, user, org_id, body.name)
    commit(db, cache, org_id)
    return org

@app.delete("/api/organizations/{org_id}")
async def delete_organization(org_id: str, user: dict = Depends(any_admin),
                              cache: TTLCache = Depends(get_cache)):
    db = get_db()
    organizations.delete_organization(db, user, org_id)
    commit(db, cache, org_id)
    logger.info("Organization deleted: %s", org_id)
    return {"message": "Organization deleted"}

@app.get("/api/organizations/{org_id}/invite-code")
async def get_invite_code(org_id: str, user: dict = Depends(any_admin)):
    return {"inviteCode": organizations.invite_code(get_db(), user, org_id)}


# ============================================================
# USERS & INVITATIONS
# ============================================================
@app.get("/api/users")
async def list_users(user: dict = Depends(any_admin)):
    return organizations.list_users(get_db(), user)

@app.post("/api/users", status_code=201)
async def create_user(body: schemas.UserCreate, user: dict = Depends(any_admin)):
    db = get_db()
    created = organizations.create_user(db, user, body.model_dump())
    save_db(db)
    return created

@app.put("/api/users/{user_id}")
async def update_user(user_id: str, body: schemas.UserUpdate, user: dict = Depends(any_admin)):
    db = get_db()
    updated = organizations.update_user(db, user, user_id, body.model_dump(exclude_unset=True))
    save_db(db)
    return updated

@app.delete("/api/users/{user_id}")
async def delete_user(user_id: str, user: dict = Depends(any_admin)):
    db = get_db()
    organizations.delete_user(db, user, user_id)
    save_db(db)
    return {"message": "User deleted"}

@app.get("/api/invitations")
async def list_invitations(user: dict = Depends(require_org_user)):
    return organizations.list_invitations(get_db(), user["organizationId"])

@app.post("/api/invitations", status_code=201)
async def create_invitation(body: schemas.InvitationCreate, user: dict = Depends(admin_user)):
    db = get_db()
    invitation = organizations.create_invitation(db, user, body.model_dump())
    save_db(db)
    return invitation


# ============================================================
# AUDIT & CACHE ADMIN
# ============================================================
@app.get("/api/audit-logs")
async def audit_logs(entity: str = None, entityId: str = None, userId: str = None,
                     dateFrom: str = None, dateTo: str = None,
                     limit: int = Query(50, ge=1, le=500), offset: int = Query(0, ge=0),
                     user: dict = Depends(any_admin)):
    org_id = None if is_super_admin(user) else user["organizationId"]
    return query_audit_logs(get_db(), organization_id=org_id, entity=entity, entity_id=entityId,
                            user_id=userId, date_from=dateFrom, date_to=dateTo,
                            limit=limit, offset=offset)

@app.post("/api/cache/clear")
async def clear_cache(user: dict = Depends(any_admin), cache: TTLCache = Depends(get_cache)):
    cache.clear_all()
    logger.info("Cache cleared by %s", user["email"])
    return {"success": True, "message": "Cache cleared"}


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting BudgetDesk v%s on port %s", VERSION, PORT)
    uvicorn.run(app, host="0.0.0.0", port=PORT)
