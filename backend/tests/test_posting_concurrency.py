"""
Concurrent posting against a file-backed SQLite database.

In-memory SQLite shares one connection across threads, so these tests run
their own app on a temporary database file.
"""

import threading

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.errors import InsufficientStockError
from shopledger.services import entity_service, ledger_service, posting_service
from shopledger.services.document_service import ensure_sequence_counters

from conftest import goods, make_draft


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30}},
    })
    with app.app_context():
        db.create_all()
        ensure_sequence_counters()
        entity_service.register_entity("stock_item", "ITEM-1")
        db.session.remove()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_concurrently(app, drafts):
    barrier = threading.Barrier(len(drafts))
    outcomes = []
    lock = threading.Lock()

    def worker(index, draft):
        with app.app_context():
            try:
                barrier.wait()
                result = posting_service.post_document(draft, posted_by=f"clerk-{index}")
                outcome = ("posted", result.to_dict())
            except InsufficientStockError as e:
                outcome = ("short", e.to_dict())
            except Exception as e:  # surfaced through the assertion below
                outcome = ("error", repr(e))
            finally:
                db.session.remove()
            with lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(i, d)) for i, d in enumerate(drafts)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_two_sales_against_shared_stock(file_app):
    with file_app.app_context():
        posting_service.post_document(
            make_draft("goods_receipt", [goods("ITEM-1", 10)]), posted_by="setup"
        )
        db.session.remove()

    outcomes = _run_concurrently(file_app, [
        make_draft("sale_retail", [goods("ITEM-1", 6, 100)]),
        make_draft("sale_retail", [goods("ITEM-1", 6, 100)]),
    ])

    kinds = sorted(kind for kind, _ in outcomes)
    assert kinds == ["posted", "short"], outcomes

    short = next(body for kind, body in outcomes if kind == "short")
    assert short["error_kind"] == "insufficient_stock"
    assert short["details"]["on_hand"] == 4
    assert short["details"]["shortfall"] == 2

    with file_app.app_context():
        assert ledger_service.get_balance("stock_item", "ITEM-1") == 4
        assert all(r.ok for r in ledger_service.reconcile_all())
        db.session.remove()


def test_concurrent_numbers_are_unique_and_gapless(file_app):
    count = 6
    outcomes = _run_concurrently(file_app, [
        make_draft("goods_receipt", [goods("ITEM-1", 1)]) for _ in range(count)
    ])

    assert all(kind == "posted" for kind, _ in outcomes), outcomes
    numbers = sorted(body["document_number"] for _, body in outcomes)
    assert numbers == [f"GRN-{n:04d}" for n in range(1, count + 1)]

    with file_app.app_context():
        assert ledger_service.get_balance("stock_item", "ITEM-1") == count
        db.session.remove()


def test_concurrent_replays_post_once(file_app):
    outcomes = _run_concurrently(file_app, [
        make_draft("goods_receipt", [goods("ITEM-1", 5)], idempotency_key="same-request") for _ in range(4)
    ])

    assert all(kind == "posted" for kind, _ in outcomes), outcomes
    assert len({body["id"] for _, body in outcomes}) == 1

    with file_app.app_context():
        assert ledger_service.get_balance("stock_item", "ITEM-1") == 5
        db.session.remove()
