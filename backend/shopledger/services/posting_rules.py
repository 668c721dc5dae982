# Overview: Sign rules; maps a validated document onto the ledger movements it causes.

from __future__ import annotations

from dataclasses import dataclass

from ..models import ENTITY_STOCK_ITEM, ENTITY_CUSTOMER, ENTITY_SUPPLIER, ENTITY_BANK_ACCOUNT
from . import document_kinds as kinds
"""
Sign rules (authoritative)

- Stock: inbound documents add quantity at their location, outbound documents
  subtract it. A transfer is one outbound and one inbound movement per line.
- Counterparty balances are receivable/payable style: positive means the
  customer owes the shop, or the shop owes the supplier.
- Money documents move only balances, never stock.
- Only stock decrements are guarded against going negative.
"""


@dataclass(frozen=True)
class PlannedMovement:
    entity_type: str
    ref: str
    location: str
    delta: int
    note: str | None = None

    @property
    def guarded(self) -> bool:
        return self.entity_type == ENTITY_STOCK_ITEM and self.delta < 0


def _stock(lines, location: str, sign: int, note: str | None = None) -> list[PlannedMovement]:
    return [
        PlannedMovement(ENTITY_STOCK_ITEM, line.tracked_entity_ref, location, sign * line.quantity, note)
        for line in lines
    ]


def _balance(entity_type: str, ref: str, delta: int, note: str | None = None) -> PlannedMovement:
    return PlannedMovement(entity_type, ref, "", delta, note)


def derive_movements(kind: str, header: dict, lines, *, counterparty_ref: str | None, total_cents: int) -> list[PlannedMovement]:
    """
    Movements implied by a document of `kind`.

    `header` must already be normalized by validate_draft(); lines may be
    DraftLine or DocumentLine objects (both expose tracked_entity_ref/quantity).
    """
    location = header.get("location")
    movements: list[PlannedMovement] = []

    if kind in (kinds.SALE_RETAIL, kinds.SALE_WHOLESALE):
        movements += _stock(lines, location, -1)
        if header.get("payment_status") in kinds.ACCRUING_PAYMENT_STATUSES:
            movements.append(_balance(ENTITY_CUSTOMER, counterparty_ref, total_cents, header["payment_status"]))

    elif kind == kinds.GOODS_RECEIPT:
        movements += _stock(lines, location, 1)
        if header.get("payment_status") in kinds.ACCRUING_PAYMENT_STATUSES:
            movements.append(_balance(ENTITY_SUPPLIER, counterparty_ref, total_cents, header["payment_status"]))

    elif kind == kinds.STOCK_TRANSFER:
        movements += _stock(lines, header["from_location"], -1, f"to {header['to_location']}")
        movements += _stock(lines, header["to_location"], 1, f"from {header['from_location']}")

    elif kind == kinds.STOCK_ADJUSTMENT:
        adjustment_type = header["adjustment_type"]
        sign = 1 if adjustment_type in kinds.ADJUSTMENT_INCREASE_TYPES else -1
        movements += _stock(lines, location, sign, adjustment_type)

    elif kind == kinds.SALES_RETURN:
        movements += _stock(lines, location, 1)
        if counterparty_ref:
            movements.append(_balance(ENTITY_CUSTOMER, counterparty_ref, -total_cents, "refund"))

    elif kind == kinds.PURCHASE_RETURN:
        movements += _stock(lines, location, -1)
        movements.append(_balance(ENTITY_SUPPLIER, counterparty_ref, -total_cents, "return"))

    elif kind == kinds.CUSTOMER_PAYMENT:
        movements.append(_balance(ENTITY_CUSTOMER, counterparty_ref, -total_cents))

    elif kind == kinds.SUPPLIER_PAYMENT:
        movements.append(_balance(ENTITY_SUPPLIER, counterparty_ref, -total_cents))

    elif kind == kinds.BANK_ENTRY:
        tx_type = header["transaction_type"]
        if tx_type == kinds.BANK_TRANSFER:
            movements.append(_balance(ENTITY_BANK_ACCOUNT, header["from_account_ref"], -total_cents, tx_type))
            movements.append(_balance(ENTITY_BANK_ACCOUNT, header["to_account_ref"], total_cents, tx_type))
        elif tx_type in kinds.BANK_INFLOW_TYPES:
            movements.append(_balance(ENTITY_BANK_ACCOUNT, header["account_ref"], total_cents, tx_type))
        else:
            movements.append(_balance(ENTITY_BANK_ACCOUNT, header["account_ref"], -total_cents, tx_type))

    elif kind == kinds.OPENING_STOCK:
        movements += _stock(lines, location, 1, "opening")

    elif kind == kinds.OPENING_BALANCE:
        sign = 1 if header["balance_type"] == "debit" else -1
        movements.append(_balance(header["account_type"], counterparty_ref, sign * total_cents, "opening"))

    # purchase_order: document only
    return movements
