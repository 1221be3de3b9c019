"""Finance-account map: business roles and categories to ledger account ids."""

from dataclasses import dataclass, field
from typing import Any, Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.errors import ConfigurationError, missing_mapping

SETTINGS_KEY = "app_settings"
FINANCE_ACCOUNTS_FIELD = "financeAccounts"

DEFAULT_REVENUE_KEYS = (
    "tickets",
    "visas",
    "subscriptions",
    "segments",
    "profit_distribution",
    "other",
)

DEFAULT_EXPENSE_KEYS = (
    "tickets",
    "visas",
    "subscriptions",
    "partners",
    "operating",
    "cost_tickets",
    "cost_visas",
    "operating_salaries",
    "operating_rent",
    "operating_utilities",
    "marketing",
    "discounts",
)

# Role name -> attribute, for require()
ROLES = {
    "receivable": "receivable_account_id",
    "payable": "payable_account_id",
    "clearing": "clearing_account_id",
    "default_cash": "default_cash_id",
    "default_bank": "default_bank_id",
    "general_revenue": "general_revenue_id",
    "general_expense": "general_expense_id",
    "discount_expense": "discount_expense_id",
}


def _sanitize(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _ensure_keys(source: Optional[dict[str, Any]], defaults: tuple[str, ...]) -> dict[str, str]:
    source = source or {}
    keys = list(dict.fromkeys([*defaults, *source.keys()]))
    return {key: _sanitize(source.get(key)) for key in keys}


def _first_non_empty(mapping: dict[str, str]) -> str:
    return next((v for v in mapping.values() if v), "")


@dataclass(frozen=True)
class FinanceAccounts:
    """Normalised finance-account map.

    Empty strings mean "not configured"; use ``require`` to turn an unset
    role into a ConfigurationError.
    """

    receivable_account_id: str = ""
    payable_account_id: str = ""
    clearing_account_id: str = ""
    default_cash_id: str = ""
    default_bank_id: str = ""
    general_revenue_id: str = ""
    general_expense_id: str = ""
    discount_expense_id: str = ""
    prevent_direct_cash_revenue: bool = False
    revenue_map: dict[str, str] = field(default_factory=dict)
    expense_map: dict[str, str] = field(default_factory=dict)

    @classmethod
    def normalize(cls, raw: Optional[dict[str, Any]]) -> "FinanceAccounts":
        """Build a map from the stored settings document.

        Legacy ``arAccountId``/``apAccountId`` stand in for the receivable and
        payable roles, ``customRevenues``/``customExpenses`` extend the
        category maps, and the general accounts fall back to the first
        configured category account.
        """
        raw = raw or {}
        revenue_map = _ensure_keys(
            {**(raw.get("revenueMap") or {}), **(raw.get("customRevenues") or {})},
            DEFAULT_REVENUE_KEYS,
        )
        expense_map = _ensure_keys(
            {**(raw.get("expenseMap") or {}), **(raw.get("customExpenses") or {})},
            DEFAULT_EXPENSE_KEYS,
        )
        general_expense = _sanitize(raw.get("generalExpenseId")) or _first_non_empty(expense_map)
        return cls(
            receivable_account_id=_sanitize(raw.get("receivableAccountId") or raw.get("arAccountId")),
            payable_account_id=_sanitize(raw.get("payableAccountId") or raw.get("apAccountId")),
            clearing_account_id=_sanitize(raw.get("clearingAccountId")),
            default_cash_id=_sanitize(raw.get("defaultCashId")),
            default_bank_id=_sanitize(raw.get("defaultBankId")),
            general_revenue_id=_sanitize(raw.get("generalRevenueId")) or _first_non_empty(revenue_map),
            general_expense_id=general_expense,
            discount_expense_id=_sanitize(raw.get("discountExpenseId")),
            prevent_direct_cash_revenue=bool(raw.get("preventDirectCashRevenue")),
            revenue_map=revenue_map,
            expense_map=expense_map,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise back into the stored settings shape."""
        return {
            "receivableAccountId": self.receivable_account_id,
            "payableAccountId": self.payable_account_id,
            "clearingAccountId": self.clearing_account_id,
            "defaultCashId": self.default_cash_id,
            "defaultBankId": self.default_bank_id,
            "generalRevenueId": self.general_revenue_id,
            "generalExpenseId": self.general_expense_id,
            "discountExpenseId": self.discount_expense_id,
            "preventDirectCashRevenue": self.prevent_direct_cash_revenue,
            "revenueMap": dict(self.revenue_map),
            "expenseMap": dict(self.expense_map),
        }

    def require(self, role: str) -> str:
        """Return the account id configured for a role.

        Raises:
            ConfigurationError: If the role is unknown or unset
        """
        attribute = ROLES.get(role)
        value = getattr(self, attribute) if attribute else ""
        if not value:
            raise ConfigurationError(missing_mapping(role))
        return value

    def revenue_account(self, key: str) -> str:
        """Return the revenue account for a category, falling back to general revenue.

        Raises:
            ConfigurationError: If neither is configured
        """
        account_id = self.revenue_map.get(key) or self.general_revenue_id
        if not account_id:
            raise ConfigurationError(missing_mapping(f"revenueMap.{key}"))
        return account_id

    def expense_account(self, key: str) -> str:
        """Return the expense account for a category, falling back to general expense.

        Raises:
            ConfigurationError: If neither is configured
        """
        account_id = self.expense_map.get(key) or self.general_expense_id
        if not account_id:
            raise ConfigurationError(missing_mapping(f"expenseMap.{key}"))
        return account_id

    def discount_account(self) -> str:
        """Return the account debited for payment discounts.

        Raises:
            ConfigurationError: If no discount or general expense account is set
        """
        if self.discount_expense_id:
            return self.discount_expense_id
        return self.expense_account("discounts")


def load_finance_accounts(db: Database) -> FinanceAccounts:
    """Read and normalise the finance-account map from settings.

    Read on every call; there is no cache to invalidate.
    """
    settings = db.get_setting(SETTINGS_KEY) or {}
    return FinanceAccounts.normalize(settings.get(FINANCE_ACCOUNTS_FIELD))


def save_finance_accounts(db: Database, raw: dict[str, Any]) -> FinanceAccounts:
    """Normalise and store a finance-account map, keeping other settings intact."""
    accounts = FinanceAccounts.normalize(raw)
    settings = db.get_setting(SETTINGS_KEY) or {}
    settings[FINANCE_ACCOUNTS_FIELD] = accounts.to_dict()
    db.set_setting(SETTINGS_KEY, settings)
    return accounts
