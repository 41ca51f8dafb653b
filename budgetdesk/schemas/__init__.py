"""
BudgetDesk — Request Schemas
Pydantic models for every write body. Update models are partial: handlers
read them with model_dump(exclude_unset=True) so that only the fields the
client sent are applied. An explicit null clears a nullable field; sending
null for any other field is a 400 naming that field.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from budgetdesk.config import (
    ROLE_MATRIX, DEFAULT_ROLE, MIN_PASSWORD_LENGTH, INVOICE_STATUSES, CONTRACT_STATUSES,
    NATURES, NATURE_OPERATING, PURCHASE_ORDER_STATUSES
)
from budgetdesk.db import parse_date

Role = Literal[tuple(ROLE_MATRIX)]
InvoiceStatus = Literal[INVOICE_STATUSES]
ContractStatus = Literal[CONTRACT_STATUSES]
Nature = Literal[NATURES]
PurchaseOrderStatus = Literal[PURCHASE_ORDER_STATUSES]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
SLUG_PATTERN = r"^[a-z0-9-]+$"


class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _valid_date(value):
    if value is not None and parse_date(value) is None:
        raise ValueError("Invalid date")
    return value


def _not_null(value):
    # Only runs on fields the client sent; defaults are not validated
    if value is None:
        raise ValueError("Field cannot be null")
    return value


# ============================================================
# AUTH
# ============================================================
class LoginBody(_Body):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


# ============================================================
# BUDGET LINES
# ============================================================
class BudgetLineCreate(_Body):
    label: str = Field(min_length=1)
    description: Optional[str] = None
    typeId: str = Field(min_length=1)
    domainId: str = Field(min_length=1)
    accountingCode: Optional[str] = None
    allocationCode: Optional[str] = None
    nature: Nature = NATURE_OPERATING
    year: int
    budget: Optional[float] = Field(default=None, ge=0)
    poleId: Optional[str] = None


class BudgetLineUpdate(_Body):
    label: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0)
    accountingCode: Optional[str] = None
    allocationCode: Optional[str] = None
    nature: Optional[Nature] = None
    poleId: Optional[str] = None

    @field_validator("label", "budget", "nature")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class CommentCreate(_Body):
    content: str = Field(min_length=1)


class PoleAllocationItem(_Body):
    poleId: str = Field(min_length=1)
    percentage: float = Field(ge=0, le=100)


class PoleAllocationsBody(_Body):
    allocations: List[PoleAllocationItem]


# ============================================================
# YEARLY / ANNUAL BUDGETS
# ============================================================
class YearlyBudgetUpsert(_Body):
    lineId: Optional[str] = None
    budgetLineId: Optional[str] = None
    year: int
    budget: Optional[float] = None
    engineered: Optional[float] = None
    invoiced: Optional[float] = None


class YearlyBudgetUpdate(_Body):
    budget: float = Field(ge=0)


class AnnualBudgetBody(_Body):
    year: int = Field(gt=0)
    budgetFonctionnement: float
    budgetInvestissement: float


class BudgetYearCreate(_Body):
    year: int = Field(gt=0)
    copyFrom: Optional[int] = None


# ============================================================
# CONTRACTS
# ============================================================
class ContractYearAmount(_Body):
    year: int
    amount: float


class ContractCreate(_Body):
    number: str = Field(min_length=1)
    label: str = Field(min_length=1)
    vendor: str = Field(min_length=1)
    providerName: Optional[str] = None
    startDate: str
    endDate: str
    amount: float = Field(gt=0)
    typeId: str = Field(min_length=1)
    domainId: str = Field(min_length=1)
    budgetLineId: Optional[str] = None
    status: ContractStatus
    description: Optional[str] = None
    constraints: Optional[str] = None
    accountingCode: Optional[str] = None
    allocationCode: Optional[str] = None
    yearlyAmounts: List[ContractYearAmount] = []

    @field_validator("startDate", "endDate")
    @classmethod
    def check_dates(cls, value):
        return _valid_date(value)


class ContractUpdate(_Body):
    number: Optional[str] = Field(default=None, min_length=1)
    label: Optional[str] = Field(default=None, min_length=1)
    vendor: Optional[str] = Field(default=None, min_length=1)
    providerName: Optional[str] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    typeId: Optional[str] = None
    domainId: Optional[str] = None
    budgetLineId: Optional[str] = None
    status: Optional[ContractStatus] = None
    description: Optional[str] = None
    constraints: Optional[str] = None
    accountingCode: Optional[str] = None
    allocationCode: Optional[str] = None
    yearlyAmounts: Optional[List[ContractYearAmount]] = None

    @field_validator("number", "label", "vendor", "startDate", "endDate", "amount",
                     "typeId", "domainId", "status", "yearlyAmounts")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)

    @field_validator("startDate", "endDate")
    @classmethod
    def check_dates(cls, value):
        return _valid_date(value)


# ============================================================
# INVOICES
# ============================================================
class InvoiceCreate(_Body):
    number: str = Field(min_length=1)
    lineNumber: Optional[str] = None
    contractId: Optional[str] = None
    vendor: str = Field(min_length=1)
    supplierCode: Optional[str] = None
    description: str = Field(min_length=1)
    amount: float = Field(gt=0)
    amountHT: Optional[float] = Field(default=None, gt=0)
    isCredit: bool = False
    dueDate: str
    invoiceDate: str
    paymentDate: Optional[str] = None
    status: InvoiceStatus
    tags: List[str] = []
    comment: Optional[str] = None
    domainId: str = Field(min_length=1)
    typeId: str = Field(min_length=1)
    nature: Nature
    budgetLineId: Optional[str] = None
    accountingCode: Optional[str] = None
    allocationCode: Optional[str] = None
    commandNumber: Optional[str] = None
    pointed: bool = False

    @field_validator("dueDate", "invoiceDate", "paymentDate")
    @classmethod
    def check_dates(cls, value):
        return _valid_date(value)


class InvoiceUpdate(_Body):
    number: Optional[str] = Field(default=None, min_length=1)
    lineNumber: Optional[str] = None
    contractId: Optional[str] = None
    vendor: Optional[str] = Field(default=None, min_length=1)
    supplierCode: Optional[str] = None
    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[float] = Field(default=None, gt=0)
    amountHT: Optional[float] = Field(default=None, gt=0)
    isCredit: Optional[bool] = None
    dueDate: Optional[str] = None
    invoiceDate: Optional[str] = None
    paymentDate: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    tags: Optional[List[str]] = None
    comment: Optional[str] = None
    domainId: Optional[str] = None
    typeId: Optional[str] = None
    nature: Optional[Nature] = None
    budgetLineId: Optional[str] = None
    accountingCode: Optional[str] = None
    allocationCode: Optional[str] = None
    commandNumber: Optional[str] = None
    pointed: Optional[bool] = None

    @field_validator("number", "vendor", "description", "amount", "isCredit", "dueDate",
                     "invoiceDate", "status", "tags", "domainId", "typeId", "nature", "pointed")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)

    @field_validator("dueDate", "invoiceDate", "paymentDate")
    @classmethod
    def check_dates(cls, value):
        return _valid_date(value)


class ForecastLink(_Body):
    # Required key; null unlinks
    forecastExpenseId: Optional[str]


# ============================================================
# PURCHASE ORDERS
# ============================================================
class PurchaseOrderCreate(_Body):
    number: str = Field(min_length=1)
    vendor: str = Field(min_length=1)
    orderDate: str
    expectedDeliveryDate: Optional[str] = None
    amount: float = Field(gt=0)
    description: Optional[str] = None
    status: PurchaseOrderStatus = "DRAFT"
    linkedForecastExpenseId: Optional[str] = None
    tags: List[str] = []
    attachments: List[str] = []

    @field_validator("orderDate", "expectedDeliveryDate")
    @classmethod
    def check_dates(cls, value):
        return _valid_date(value)


class PurchaseOrderUpdate(_Body):
    number: Optional[str] = Field(default=None, min_length=1)
    vendor: Optional[str] = Field(default=None, min_length=1)
    orderDate: Optional[str] = None
    expectedDeliveryDate: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = None
    status: Optional[PurchaseOrderStatus] = None
    linkedForecastExpenseId: Optional[str] = None
    tags: Optional[List[str]] = None
    attachments: Optional[List[str]] = None

    @field_validator("number", "vendor", "orderDate", "amount", "status", "tags", "attachments")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)

    @field_validator("orderDate", "expectedDeliveryDate")
    @classmethod
    def check_dates(cls, value):
        return _valid_date(value)


# ============================================================
# FORECASTS
# ============================================================
class ForecastLineCreate(_Body):
    typeId: str = Field(min_length=1)
    domainId: str = Field(min_length=1)
    label: str = Field(min_length=1)
    description: Optional[str] = None
    budget: float = Field(ge=0)
    accountingCode: Optional[str] = None
    nature: Optional[Nature] = None
    year: int = Field(gt=0)
    poleId: Optional[str] = None


class ForecastLineUpdate(_Body):
    id: str = Field(min_length=1)
    label: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0)
    accountingCode: Optional[str] = None
    poleId: Optional[str] = None

    @field_validator("label", "budget")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class ForecastExpenseCreate(_Body):
    forecastBudgetLineId: str = Field(min_length=1)
    year: int = Field(gt=0)
    label: str = Field(min_length=1)
    description: Optional[str] = None
    amount: float = Field(ge=0)


class ForecastExpenseUpdate(_Body):
    id: str = Field(min_length=1)
    label: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0)

    @field_validator("label", "amount")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


# ============================================================
# ORGANIZATIONS / USERS / INVITATIONS
# ============================================================
class OrganizationCreate(_Body):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1, pattern=SLUG_PATTERN)


class OrganizationUpdate(_Body):
    name: str = Field(min_length=1)


class JoinBody(_Body):
    inviteCode: str = Field(min_length=1)


class UserCreate(_Body):
    name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=MIN_PASSWORD_LENGTH)
    role: Role = DEFAULT_ROLE
    isActive: Optional[bool] = None


class UserUpdate(_Body):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=MIN_PASSWORD_LENGTH)
    role: Optional[Role] = None
    isActive: Optional[bool] = None


class InvitationCreate(_Body):
    email: str = Field(pattern=EMAIL_PATTERN)
    role: Role
    name: Optional[str] = Field(default=None, min_length=1)
    note: Optional[str] = None


# ============================================================
# STRUCTURE
# ============================================================
class ServiceCreate(_Body):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None


class ServiceUpdate(_Body):
    id: str = Field(min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class PoleCreate(_Body):
    serviceId: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None


class PoleUpdate(_Body):
    id: str = Field(min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class BudgetTypeCreate(_Body):
    name: str = Field(min_length=1)
    color: Optional[str] = None


class BudgetDomainCreate(_Body):
    typeId: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: Optional[str] = None
