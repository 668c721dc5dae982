"""Sign rules per document kind."""

import pytest

from shopledger.services.posting_rules import derive_movements
from shopledger.validation import validate_draft

from conftest import goods, money, make_draft


def _movements(draft):
    header, total = validate_draft(draft, default_location="MAIN")
    return [
        (m.entity_type, m.ref, m.location, m.delta)
        for m in derive_movements(draft.kind, header, draft.lines,
                                  counterparty_ref=draft.counterparty_ref, total_cents=total)
    ]


def test_goods_receipt_paid_moves_stock_only():
    draft = make_draft("goods_receipt", [goods("ITEM-1", 100, 50)])
    assert _movements(draft) == [("stock_item", "ITEM-1", "MAIN", 100)]


def test_goods_receipt_unpaid_accrues_payable():
    draft = make_draft(
        "goods_receipt",
        [goods("ITEM-1", 10, 200, 100)],
        header={"payment_status": "unpaid"},
        counterparty_ref="SUP-1",
    )
    assert _movements(draft) == [
        ("stock_item", "ITEM-1", "MAIN", 10),
        ("supplier", "SUP-1", "", 1900),
    ]


@pytest.mark.parametrize("kind", ["sale_retail", "sale_wholesale"])
def test_credit_sale_accrues_receivable(kind):
    draft = make_draft(
        kind,
        [goods("ITEM-1", 3, 1000)],
        header={"payment_status": "credit", "location": "SHOP"},
        counterparty_ref="CUST-1",
    )
    assert _movements(draft) == [
        ("stock_item", "ITEM-1", "SHOP", -3),
        ("customer", "CUST-1", "", 3000),
    ]


def test_paid_sale_with_customer_does_not_accrue():
    draft = make_draft("sale_retail", [goods("ITEM-1", 1, 1000)], counterparty_ref="CUST-1")
    assert _movements(draft) == [("stock_item", "ITEM-1", "MAIN", -1)]


def test_purchase_order_has_no_effect():
    assert _movements(make_draft("purchase_order", [goods("ITEM-1", 5, 10)], counterparty_ref="SUP-1")) == []


def test_transfer_moves_between_locations():
    draft = make_draft("stock_transfer", [goods("ITEM-1", 4)], header={"from_location": "MAIN", "to_location": "YARD"})
    assert _movements(draft) == [
        ("stock_item", "ITEM-1", "MAIN", -4),
        ("stock_item", "ITEM-1", "YARD", 4),
    ]


@pytest.mark.parametrize("adjustment_type,sign", [
    ("increase", 1), ("found", 1), ("decrease", -1), ("damage", -1), ("loss", -1),
])
def test_adjustment_sign_follows_type(adjustment_type, sign):
    draft = make_draft("stock_adjustment", [goods("ITEM-1", 2)], header={"adjustment_type": adjustment_type})
    assert _movements(draft) == [("stock_item", "ITEM-1", "MAIN", 2 * sign)]


def test_sales_return_refunds_named_customer():
    draft = make_draft("sales_return", [goods("ITEM-1", 1, 800)], counterparty_ref="CUST-1")
    assert _movements(draft) == [
        ("stock_item", "ITEM-1", "MAIN", 1),
        ("customer", "CUST-1", "", -800),
    ]


def test_anonymous_sales_return_moves_stock_only():
    draft = make_draft("sales_return", [goods("ITEM-1", 1, 800)])
    assert _movements(draft) == [("stock_item", "ITEM-1", "MAIN", 1)]


def test_purchase_return_reduces_payable():
    draft = make_draft("purchase_return", [goods("ITEM-1", 2, 500)], counterparty_ref="SUP-1")
    assert _movements(draft) == [
        ("stock_item", "ITEM-1", "MAIN", -2),
        ("supplier", "SUP-1", "", -1000),
    ]


def test_payments_reduce_balances():
    assert _movements(make_draft("customer_payment", [money(250)], counterparty_ref="CUST-1")) == [
        ("customer", "CUST-1", "", -250),
    ]
    assert _movements(make_draft("supplier_payment", header={"amount": 900}, counterparty_ref="SUP-1")) == [
        ("supplier", "SUP-1", "", -900),
    ]


@pytest.mark.parametrize("tx_type,sign", [
    ("deposit", 1), ("interest", 1), ("withdrawal", -1), ("charge", -1),
])
def test_bank_entry_sign_follows_type(tx_type, sign):
    draft = make_draft("bank_entry", header={"transaction_type": tx_type, "account_ref": "BANK-1", "amount": 500})
    assert _movements(draft) == [("bank_account", "BANK-1", "", 500 * sign)]


def test_bank_transfer_moves_between_accounts():
    draft = make_draft("bank_entry", header={
        "transaction_type": "transfer", "from_account_ref": "BANK-1", "to_account_ref": "BANK-2", "amount": 700,
    })
    assert _movements(draft) == [
        ("bank_account", "BANK-1", "", -700),
        ("bank_account", "BANK-2", "", 700),
    ]


def test_opening_stock_and_balance():
    assert _movements(make_draft("opening_stock", [goods("ITEM-1", 12)])) == [("stock_item", "ITEM-1", "MAIN", 12)]

    credit = make_draft(
        "opening_balance",
        header={"account_type": "supplier", "balance_type": "credit", "amount": 300},
        counterparty_ref="SUP-1",
    )
    assert _movements(credit) == [("supplier", "SUP-1", "", -300)]


def test_only_stock_decrements_are_guarded():
    draft = make_draft(
        "sale_retail", [goods("ITEM-1", 1, 100)], header={"payment_status": "unpaid"}, counterparty_ref="CUST-1"
    )
    header, total = validate_draft(draft, default_location="MAIN")
    planned = derive_movements(draft.kind, header, draft.lines, counterparty_ref="CUST-1", total_cents=total)
    assert [move.guarded for move in planned] == [True, False]
