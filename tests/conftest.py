"""Shared pytest fixtures for ledgerflow tests."""

import tempfile
import os
from datetime import date
from decimal import Decimal
import pytest

from ledgerflow.database.factories import create_sqlite_database
from ledgerflow.domain.audit import DatabaseAuditLog
from ledgerflow.domain.chart import ChartService
from ledgerflow.domain.entities import Actor
from ledgerflow.domain.finance_accounts import save_finance_accounts
from ledgerflow.domain.lifecycle import VoucherLifecycleService
from ledgerflow.domain.posting import PostingService
from ledgerflow.domain.segments import SegmentPeriodService
from ledgerflow.domain.subscriptions import SubscriptionInput, SubscriptionService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def admin():
    """Administrator allowed to do everything."""
    return Actor(user_id="u-admin", name="Admin", is_admin=True)


@pytest.fixture
def clerk():
    """Regular user without permanent-delete rights."""
    return Actor(user_id="u-clerk", name="Clerk")


@pytest.fixture
def audit(temp_db):
    return DatabaseAuditLog(temp_db)


@pytest.fixture
def chart(temp_db):
    """Seed a chart of accounts, relations, a box and the finance-account map.

    Returns a dict of ids keyed by a short name.
    """
    service = ChartService(temp_db)
    ids = {
        "receivable": service.create_account("1100", "Receivables", "asset"),
        "cash": service.create_account("1000", "Cash", "asset"),
        "clearing": service.create_account("2900", "Segment clearing", "liability"),
        "payable": service.create_account("2000", "Payables", "liability"),
        "segment_revenue": service.create_account("4100", "Segment revenue", "revenue"),
        "subscription_revenue": service.create_account("4200", "Subscription revenue", "revenue"),
        "subscription_cost": service.create_account("5200", "Subscription cost", "expense"),
        "discounts": service.create_account("5900", "Discounts granted", "expense"),
        "client": service.create_relation("Acme Travel", "client"),
        "client2": service.create_relation("Globe Tours", "client"),
        "supplier": service.create_relation("Hosting Co", "supplier"),
        "partner": service.create_relation("Partner One", "partner"),
        "partner2": service.create_relation("Partner Two", "partner"),
        "box": service.create_box("Main box", "USD"),
    }
    save_finance_accounts(
        temp_db,
        {
            "receivableAccountId": ids["receivable"],
            "payableAccountId": ids["payable"],
            "clearingAccountId": ids["clearing"],
            "defaultCashId": ids["cash"],
            "discountExpenseId": ids["discounts"],
            "revenueMap": {
                "segments": ids["segment_revenue"],
                "subscriptions": ids["subscription_revenue"],
            },
            "expenseMap": {"subscriptions": ids["subscription_cost"]},
        },
    )
    return ids


@pytest.fixture
def posting_service(temp_db, audit):
    """Create a PostingService with a temporary database."""
    return PostingService(temp_db, audit)


@pytest.fixture
def subscription_service(temp_db, audit):
    """Create a SubscriptionService with a temporary database."""
    return SubscriptionService(temp_db, audit)


@pytest.fixture
def lifecycle_service(temp_db, audit):
    """Create a VoucherLifecycleService with a temporary database."""
    return VoucherLifecycleService(temp_db, audit)


@pytest.fixture
def segment_service(temp_db, audit):
    """Create a SegmentPeriodService with a temporary database."""
    return SegmentPeriodService(temp_db, audit)


@pytest.fixture
def make_subscription(subscription_service, chart, admin):
    """Factory creating a subscription sold at ``unit_price`` in ``installments`` parts."""

    def _make(unit_price="300", installments=3, purchase_price="0", currency="USD"):
        data = SubscriptionInput(
            client_id=chart["client"],
            supplier_id=chart["supplier"],
            service_name="Hosting",
            unit_price=Decimal(unit_price),
            purchase_price=Decimal(purchase_price),
            currency=currency,
            purchase_date=date(2024, 1, 1),
            start_date=date(2024, 1, 15),
            number_of_installments=installments,
        )
        return subscription_service.create_subscription(data, admin)

    return _make


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
