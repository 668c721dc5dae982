# Overview: Catalogue of document kinds, their number prefixes and line requirements.

from __future__ import annotations

from dataclasses import dataclass


SALE_RETAIL = "sale_retail"
SALE_WHOLESALE = "sale_wholesale"
PURCHASE_ORDER = "purchase_order"
GOODS_RECEIPT = "goods_receipt"
STOCK_TRANSFER = "stock_transfer"
STOCK_ADJUSTMENT = "stock_adjustment"
SALES_RETURN = "sales_return"
PURCHASE_RETURN = "purchase_return"
CUSTOMER_PAYMENT = "customer_payment"
SUPPLIER_PAYMENT = "supplier_payment"
BANK_ENTRY = "bank_entry"
OPENING_STOCK = "opening_stock"
OPENING_BALANCE = "opening_balance"

# Lines carry quantity x unit price; or a plain money amount
LINES_GOODS = "goods"
LINES_MONEY = "money"

PAYMENT_STATUSES = {"paid", "unpaid", "credit"}
ACCRUING_PAYMENT_STATUSES = {"unpaid", "credit"}

ADJUSTMENT_INCREASE_TYPES = {"increase", "found"}
ADJUSTMENT_DECREASE_TYPES = {"decrease", "damage", "loss"}
ADJUSTMENT_TYPES = ADJUSTMENT_INCREASE_TYPES | ADJUSTMENT_DECREASE_TYPES

BANK_INFLOW_TYPES = {"deposit", "interest"}
BANK_OUTFLOW_TYPES = {"withdrawal", "charge"}
BANK_TRANSFER = "transfer"
BANK_TRANSACTION_TYPES = BANK_INFLOW_TYPES | BANK_OUTFLOW_TYPES | {BANK_TRANSFER}

BALANCE_TYPES = {"debit", "credit"}


@dataclass(frozen=True)
class KindRule:
    kind: str
    prefix: str
    requires_lines: bool
    line_mode: str
    moves_stock: bool


KIND_RULES: dict[str, KindRule] = {
    rule.kind: rule
    for rule in (
        KindRule(SALE_RETAIL, "RS", True, LINES_GOODS, True),
        KindRule(SALE_WHOLESALE, "SW", True, LINES_GOODS, True),
        KindRule(PURCHASE_ORDER, "PO", True, LINES_GOODS, False),
        KindRule(GOODS_RECEIPT, "GRN", True, LINES_GOODS, True),
        KindRule(STOCK_TRANSFER, "ST", True, LINES_GOODS, True),
        KindRule(STOCK_ADJUSTMENT, "SA", True, LINES_GOODS, True),
        KindRule(SALES_RETURN, "SR", True, LINES_GOODS, True),
        KindRule(PURCHASE_RETURN, "PR", True, LINES_GOODS, True),
        KindRule(CUSTOMER_PAYMENT, "CP", False, LINES_MONEY, False),
        KindRule(SUPPLIER_PAYMENT, "SP", False, LINES_MONEY, False),
        KindRule(BANK_ENTRY, "BE", False, LINES_MONEY, False),
        KindRule(OPENING_STOCK, "OS", True, LINES_GOODS, True),
        KindRule(OPENING_BALANCE, "OB", False, LINES_MONEY, False),
    )
}

DOCUMENT_KINDS = tuple(KIND_RULES)


def get_kind_rule(kind: str) -> KindRule | None:
    return KIND_RULES.get(kind)
