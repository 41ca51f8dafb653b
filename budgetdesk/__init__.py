"""
BudgetDesk — Multi-tenant Budget Tracking Backend (v1.4.0)

Architecture:
  budgetdesk/
  ├── config/        — Constants, feature flags, role matrix
  ├── logger/        — Logging setup
  ├── errors/        — Error taxonomy + FastAPI exception handlers
  ├── db/            — Database abstraction (JSON file / PostgreSQL)
  ├── auth/          — JWT, bcrypt, RBAC dependencies
  ├── cache/         — Short-TTL read-through cache service
  ├── audit/         — Audit log writer and query
  ├── schemas/       — Request body validation
  ├── alerts/        — Expiring contracts, overdue invoices, overspent lines
  ├── budget/        — Budget lines, yearly/annual budgets, reporting
  ├── contracts/     — Contracts + engaged amounts
  ├── invoices/      — Invoices + invoiced amounts
  ├── structure/     — Services, poles, budget types and domains
  ├── organizations/ — Organizations, users, invitations
  └── server.py      — FastAPI routing layer

Each module is self-contained with clear imports and no circular dependencies.
"""
