"""
Pytest fixtures for shopledger backend tests.

Provides the in-memory database, a test client, registered entities and
draft builders.
"""

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.services import entity_service
from shopledger.services.document_service import ensure_sequence_counters
from shopledger.validation import DocumentDraft, DraftLine


PRINCIPAL = "clerk@shop"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_LOCATION': 'MAIN',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()
        ensure_sequence_counters()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def entities(db_session):
    """One of each entity type the posting rules touch."""
    return {
        "item": entity_service.register_entity("stock_item", "ITEM-1", "Claw hammer"),
        "item2": entity_service.register_entity("stock_item", "ITEM-2", "Box of nails"),
        "customer": entity_service.register_entity("customer", "CUST-1", "Builder Ltd"),
        "supplier": entity_service.register_entity("supplier", "SUP-1", "Acme Tools"),
        "bank": entity_service.register_entity("bank_account", "BANK-1", "Current account"),
        "bank2": entity_service.register_entity("bank_account", "BANK-2", "Savings account"),
    }


def goods(ref: str, quantity: int, unit_price: int = 0, discount: int = 0) -> DraftLine:
    return DraftLine(
        tracked_entity_ref=ref,
        quantity=quantity,
        unit_price_cents=unit_price,
        discount_cents=discount,
    )


def money(amount: int) -> DraftLine:
    return DraftLine(amount_cents=amount)


def make_draft(kind: str, lines=None, header=None, **kwargs) -> DocumentDraft:
    return DocumentDraft(kind=kind, header=dict(header or {}), lines=list(lines or []), **kwargs)


def auth_headers(principal: str = PRINCIPAL, **extra) -> dict:
    """Helper to create the upstream-auth header."""
    headers = {'X-Authenticated-User': principal}
    headers.update(extra)
    return headers
