"""Draft parsing and validation (no database)."""

import pytest

from shopledger.errors import ValidationError
from shopledger.validation import parse_draft_payload, validate_draft

from conftest import goods, money, make_draft


def _validate(draft):
    return validate_draft(draft, default_location="MAIN")


def test_goods_total_is_sum_of_line_nets():
    draft = make_draft("sale_retail", [goods("ITEM-1", 3, 1000, 500), goods("ITEM-2", 2, 250)])
    header, total = _validate(draft)
    assert total == 3 * 1000 - 500 + 2 * 250
    assert header["location"] == "MAIN"
    assert header["payment_status"] == "paid"


def test_lines_required_for_goods_kinds():
    for kind in ("sale_retail", "sale_wholesale", "purchase_order", "goods_receipt",
                 "stock_transfer", "stock_adjustment", "sales_return", "purchase_return", "opening_stock"):
        with pytest.raises(ValidationError):
            _validate(make_draft(kind, [], header={"adjustment_type": "increase"}))


def test_unknown_kind_rejected():
    with pytest.raises(ValidationError) as exc:
        _validate(make_draft("invoice", [goods("ITEM-1", 1)]))
    assert exc.value.details["kind"] == "invoice"


def test_non_positive_quantity_rejected():
    with pytest.raises(ValidationError, match="quantity must be > 0"):
        _validate(make_draft("goods_receipt", [goods("ITEM-1", 0)]))


def test_discount_cannot_exceed_line_value():
    with pytest.raises(ValidationError, match="discount"):
        _validate(make_draft("sale_retail", [goods("ITEM-1", 1, 100, 101)]))


def test_unpaid_sale_requires_customer():
    with pytest.raises(ValidationError, match="customer"):
        _validate(make_draft("sale_wholesale", [goods("ITEM-1", 1, 100)], header={"payment_status": "credit"}))


def test_invalid_payment_status_rejected():
    with pytest.raises(ValidationError, match="payment_status"):
        _validate(make_draft("goods_receipt", [goods("ITEM-1", 1)], header={"payment_status": "later"}))


@pytest.mark.parametrize("kind,field,value", [
    ("goods_receipt", "payment_status", ["paid"]),
    ("stock_adjustment", "adjustment_type", {"x": 1}),
    ("bank_entry", "transaction_type", ["deposit"]),
])
def test_non_string_header_choice_rejected(kind, field, value):
    lines = [money(500)] if kind == "bank_entry" else [goods("ITEM-1", 1)]
    header = {field: value, "account_ref": "BANK-1"}
    with pytest.raises(ValidationError, match=field):
        _validate(make_draft(kind, lines, header=header))


def test_transfer_locations_must_differ():
    draft = make_draft("stock_transfer", [goods("ITEM-1", 1)], header={"from_location": "MAIN", "to_location": "MAIN"})
    with pytest.raises(ValidationError, match="different"):
        _validate(draft)


def test_transfer_drops_single_location():
    draft = make_draft(
        "stock_transfer",
        [goods("ITEM-1", 1)],
        header={"from_location": "MAIN", "to_location": "YARD", "location": "MAIN"},
    )
    header, _ = _validate(draft)
    assert "location" not in header


def test_adjustment_type_required():
    with pytest.raises(ValidationError, match="adjustment_type"):
        _validate(make_draft("stock_adjustment", [goods("ITEM-1", 1)]))


def test_payment_uses_header_amount_without_lines():
    draft = make_draft("customer_payment", header={"amount": "2500"}, counterparty_ref="CUST-1")
    header, total = _validate(draft)
    assert total == 2500
    assert header["amount"] == 2500


def test_payment_amount_must_match_lines():
    draft = make_draft("supplier_payment", [money(1000), money(500)], header={"amount": 1000}, counterparty_ref="SUP-1")
    with pytest.raises(ValidationError, match="does not match"):
        _validate(draft)


def test_payment_requires_counterparty():
    with pytest.raises(ValidationError, match="counterparty_ref"):
        _validate(make_draft("customer_payment", header={"amount": 100}))


def test_payment_amount_must_be_positive():
    with pytest.raises(ValidationError):
        _validate(make_draft("customer_payment", header={"amount": 0}, counterparty_ref="CUST-1"))


def test_bank_transfer_needs_two_accounts():
    draft = make_draft("bank_entry", header={"transaction_type": "transfer", "amount": 100, "from_account_ref": "BANK-1"})
    with pytest.raises(ValidationError, match="to_account_ref"):
        _validate(draft)


def test_opening_balance_defaults_to_debit():
    draft = make_draft("opening_balance", header={"account_type": "customer", "amount": 700}, counterparty_ref="CUST-1")
    header, total = _validate(draft)
    assert header["balance_type"] == "debit"
    assert total == 700


def test_parse_rejects_decimal_quantity():
    with pytest.raises(ValidationError, match="no decimals"):
        parse_draft_payload({"kind": "goods_receipt", "lines": [{"tracked_entity_ref": "ITEM-1", "quantity": "1.5"}]})


def test_parse_rejects_float_and_bool():
    with pytest.raises(ValidationError):
        parse_draft_payload({"kind": "goods_receipt", "lines": [{"tracked_entity_ref": "ITEM-1", "quantity": 2.0}]})
    with pytest.raises(ValidationError):
        parse_draft_payload({"kind": "goods_receipt", "lines": [{"tracked_entity_ref": "ITEM-1", "quantity": True}]})


def test_parse_header_key_wins_over_request_id():
    draft = parse_draft_payload({"kind": "goods_receipt", "request_id": "body-key"}, idempotency_key="header-key")
    assert draft.idempotency_key == "header-key"
    draft = parse_draft_payload({"kind": "goods_receipt", "request_id": "body-key"})
    assert draft.idempotency_key == "body-key"


def test_parse_occurred_at():
    draft = parse_draft_payload({"kind": "goods_receipt", "occurred_at": "2026-03-01T10:00:00Z"})
    assert draft.occurred_at.isoformat() == "2026-03-01T10:00:00"
    with pytest.raises(ValidationError, match="occurred_at"):
        parse_draft_payload({"kind": "goods_receipt", "occurred_at": "yesterday"})


def test_parse_requires_object_payload():
    with pytest.raises(ValidationError):
        parse_draft_payload(None)
    with pytest.raises(ValidationError, match="kind"):
        parse_draft_payload({"lines": []})
