"""Tests for the finance-account map."""

import pytest

from ledgerflow.domain.errors import ConfigurationError
from ledgerflow.domain.finance_accounts import (
    DEFAULT_EXPENSE_KEYS,
    DEFAULT_REVENUE_KEYS,
    FinanceAccounts,
    load_finance_accounts,
    save_finance_accounts,
)


def test_empty_map_has_every_default_key():
    accounts = FinanceAccounts.normalize(None)
    assert set(DEFAULT_REVENUE_KEYS) <= set(accounts.revenue_map)
    assert set(DEFAULT_EXPENSE_KEYS) <= set(accounts.expense_map)
    assert all(value == "" for value in accounts.revenue_map.values())
    assert accounts.receivable_account_id == ""


def test_legacy_keys_and_custom_categories():
    accounts = FinanceAccounts.normalize(
        {
            "arAccountId": "  ar-1 ",
            "apAccountId": "ap-1",
            "revenueMap": {"tickets": "rev-t"},
            "customRevenues": {"consulting": "rev-c"},
            "customExpenses": {"fuel": 42},
        }
    )
    assert accounts.receivable_account_id == "ar-1"
    assert accounts.payable_account_id == "ap-1"
    assert accounts.revenue_map["consulting"] == "rev-c"
    assert accounts.expense_map["fuel"] == "42"
    # General accounts fall back to the first configured category account
    assert accounts.general_revenue_id == "rev-t"
    assert accounts.general_expense_id == "42"


def test_current_keys_win_over_legacy():
    accounts = FinanceAccounts.normalize({"receivableAccountId": "new", "arAccountId": "old"})
    assert accounts.receivable_account_id == "new"


def test_require_roles():
    accounts = FinanceAccounts.normalize({"clearingAccountId": "clr"})
    assert accounts.require("clearing") == "clr"
    with pytest.raises(ConfigurationError, match="default_cash"):
        accounts.require("default_cash")
    with pytest.raises(ConfigurationError):
        accounts.require("no_such_role")


def test_category_lookup_falls_back_to_general():
    accounts = FinanceAccounts.normalize({"generalRevenueId": "gen-rev", "revenueMap": {"segments": "seg"}})
    assert accounts.revenue_account("segments") == "seg"
    assert accounts.revenue_account("visas") == "gen-rev"
    with pytest.raises(ConfigurationError, match="expenseMap.subscriptions"):
        accounts.expense_account("subscriptions")


def test_discount_account():
    assert FinanceAccounts.normalize({"discountExpenseId": "disc"}).discount_account() == "disc"
    assert FinanceAccounts.normalize({"expenseMap": {"discounts": "d2"}}).discount_account() == "d2"
    with pytest.raises(ConfigurationError):
        FinanceAccounts.normalize({}).discount_account()


def test_round_trip_through_settings(temp_db):
    temp_db.set_setting("app_settings", {"theme": "dark"})
    save_finance_accounts(temp_db, {"defaultCashId": "cash-1", "preventDirectCashRevenue": True})

    accounts = load_finance_accounts(temp_db)
    assert accounts.default_cash_id == "cash-1"
    assert accounts.prevent_direct_cash_revenue is True
    assert temp_db.get_setting("app_settings")["theme"] == "dark"
    assert FinanceAccounts.normalize(accounts.to_dict()) == accounts


def test_load_without_settings(temp_db):
    assert load_finance_accounts(temp_db) == FinanceAccounts.normalize({})
