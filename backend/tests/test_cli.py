from sqlalchemy import update

from shopledger.extensions import db
from shopledger.models import BalanceProjection
from shopledger.services import posting_service

from conftest import goods, make_draft


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0
    assert "0 new" in result.output


def test_entities_create_and_list(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["entities", "create", "--type", "supplier", "--ref", "SUP-9", "--name", "Bolt Co"])
    assert result.exit_code == 0
    assert "SUP-9" in result.output

    duplicate = runner.invoke(args=["entities", "create", "--type", "supplier", "--ref", "SUP-9"])
    assert duplicate.exit_code != 0

    listed = runner.invoke(args=["entities", "list", "--type", "supplier"])
    assert "Bolt Co" in listed.output


def test_ledger_balance_and_reconcile(app, entities):
    posting_service.post_document(make_draft("goods_receipt", [goods("ITEM-1", 9)]), posted_by="cli-test")
    runner = app.test_cli_runner()

    balance = runner.invoke(args=["ledger", "balance", "--type", "stock_item", "--ref", "ITEM-1"])
    assert balance.exit_code == 0
    assert balance.output.strip().endswith(": 9")

    clean = runner.invoke(args=["ledger", "reconcile"])
    assert clean.exit_code == 0
    assert "PASS" in clean.output

    db.session.execute(update(BalanceProjection).values(current_balance=1))
    db.session.commit()

    drifted = runner.invoke(args=["ledger", "reconcile", "--type", "stock_item", "--ref", "ITEM-1"])
    assert drifted.exit_code == 1
    assert "drift -8" in drifted.output
