"""
Draft parsing and validation.

Everything here is pure: no database access. A draft that passes
validate_draft() is well-formed; whether the entities it names exist, and
whether stock suffices, is decided later inside the posting transaction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from shopledger.errors import ValidationError
from shopledger.time_utils import normalize_occurred_at
from shopledger.services import document_kinds as kinds


# Maximum single money value: 9,999,999,999.99 in minor units
MAX_AMOUNT_CENTS = 999_999_999_999
MAX_QUANTITY = 10_000_000
MAX_REF_LENGTH = 64


@dataclass
class DraftLine:
    tracked_entity_ref: str | None = None
    quantity: int | None = None
    unit_price_cents: int = 0
    discount_cents: int = 0
    amount_cents: int | None = None
    description: str | None = None

    @property
    def net_amount_cents(self) -> int:
        if self.amount_cents is not None:
            return self.amount_cents
        return (self.quantity or 0) * self.unit_price_cents - self.discount_cents


@dataclass
class DocumentDraft:
    kind: str
    header: dict = field(default_factory=dict)
    lines: list[DraftLine] = field(default_factory=list)
    counterparty_ref: str | None = None
    occurred_at: datetime | None = None
    idempotency_key: str | None = None


def _coerce_int(name: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def _coerce_ref(name: str, value: Any, *, required: bool = False) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{name} must be a string")
    ref = str(value).strip()
    if len(ref) > MAX_REF_LENGTH:
        raise ValidationError(f"{name} exceeds max length {MAX_REF_LENGTH}")
    return ref


def _parse_line(index: int, raw: Any) -> DraftLine:
    if not isinstance(raw, dict):
        raise ValidationError(f"lines[{index}] must be an object")

    line = DraftLine(
        tracked_entity_ref=_coerce_ref(f"lines[{index}].tracked_entity_ref", raw.get("tracked_entity_ref")),
        description=(str(raw["description"]).strip()[:255] if raw.get("description") is not None else None),
    )
    if raw.get("quantity") is not None:
        line.quantity = _coerce_int(f"lines[{index}].quantity", raw["quantity"])
    if raw.get("unit_price") is not None:
        line.unit_price_cents = _coerce_int(f"lines[{index}].unit_price", raw["unit_price"])
    if raw.get("discount") is not None:
        line.discount_cents = _coerce_int(f"lines[{index}].discount", raw["discount"])
    if raw.get("amount") is not None:
        line.amount_cents = _coerce_int(f"lines[{index}].amount", raw["amount"])
    return line


def parse_draft_payload(payload: Any, *, idempotency_key: str | None = None) -> DocumentDraft:
    """
    Build a DocumentDraft from the JSON body of a posting request.

    Shape:
        {kind, header: {...}, lines: [{tracked_entity_ref, quantity, unit_price,
         discount, amount, description}], counterparty_ref?, occurred_at?, request_id?}

    The Idempotency-Key header wins over a request_id in the body.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    kind = payload.get("kind")
    if not kind or not isinstance(kind, str):
        raise ValidationError("kind is required")

    header = payload.get("header") or {}
    if not isinstance(header, dict):
        raise ValidationError("header must be an object")

    raw_lines = payload.get("lines") or []
    if not isinstance(raw_lines, list):
        raise ValidationError("lines must be a list")

    occurred_at = None
    if payload.get("occurred_at") is not None:
        try:
            occurred_at = normalize_occurred_at(payload["occurred_at"])
        except ValueError:
            raise ValidationError("occurred_at must be an ISO-8601 date or datetime")

    key = idempotency_key or payload.get("request_id")
    key = _coerce_ref("request_id", key) if key is not None else None

    return DocumentDraft(
        kind=kind.strip(),
        header=dict(header),
        lines=[_parse_line(i, raw) for i, raw in enumerate(raw_lines)],
        counterparty_ref=_coerce_ref("counterparty_ref", payload.get("counterparty_ref")),
        occurred_at=occurred_at,
        idempotency_key=key,
    )


def _validate_goods_line(index: int, line: DraftLine) -> None:
    if not line.tracked_entity_ref:
        raise ValidationError(f"lines[{index}].tracked_entity_ref is required")
    if line.quantity is None or line.quantity <= 0:
        raise ValidationError(f"lines[{index}].quantity must be > 0")
    if line.quantity > MAX_QUANTITY:
        raise ValidationError(f"lines[{index}].quantity cannot exceed {MAX_QUANTITY}")
    if line.amount_cents is not None:
        raise ValidationError(f"lines[{index}].amount is not allowed on goods lines")
    if line.unit_price_cents < 0:
        raise ValidationError(f"lines[{index}].unit_price must be >= 0")
    if line.unit_price_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"lines[{index}].unit_price cannot exceed {MAX_AMOUNT_CENTS}")
    if line.discount_cents < 0:
        raise ValidationError(f"lines[{index}].discount must be >= 0")
    if line.discount_cents > line.quantity * line.unit_price_cents:
        raise ValidationError(f"lines[{index}].discount cannot exceed the line value")


def _validate_money_line(index: int, line: DraftLine) -> None:
    if line.amount_cents is None or line.amount_cents <= 0:
        raise ValidationError(f"lines[{index}].amount must be > 0")
    if line.amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"lines[{index}].amount cannot exceed {MAX_AMOUNT_CENTS}")
    if line.quantity is not None:
        raise ValidationError(f"lines[{index}].quantity is not allowed on money lines")


def _require_choice(header: dict, name: str, choices: set[str], default: str | None = None) -> str:
    value = header.get(name, default)
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(f"header.{name} must be one of: {', '.join(sorted(choices))}")
    return value


def _normalize_header(draft: DocumentDraft, default_location: str) -> dict:
    kind = draft.kind
    header = dict(draft.header)

    if kind == kinds.STOCK_TRANSFER:
        source = _coerce_ref("header.from_location", header.get("from_location"), required=True)
        destination = _coerce_ref("header.to_location", header.get("to_location"), required=True)
        if source == destination:
            raise ValidationError("Source and destination locations must be different")
        header["from_location"] = source
        header["to_location"] = destination
        header.pop("location", None)
    elif kinds.KIND_RULES[kind].line_mode == kinds.LINES_GOODS:
        header["location"] = _coerce_ref("header.location", header.get("location")) or default_location

    if kind in (kinds.SALE_RETAIL, kinds.SALE_WHOLESALE, kinds.GOODS_RECEIPT):
        header["payment_status"] = _require_choice(header, "payment_status", kinds.PAYMENT_STATUSES, "paid")
        if header["payment_status"] in kinds.ACCRUING_PAYMENT_STATUSES and not draft.counterparty_ref:
            party = "supplier" if kind == kinds.GOODS_RECEIPT else "customer"
            raise ValidationError(f"counterparty_ref ({party}) is required when payment_status is {header['payment_status']}")

    if kind == kinds.STOCK_ADJUSTMENT:
        header["adjustment_type"] = _require_choice(header, "adjustment_type", kinds.ADJUSTMENT_TYPES)

    if kind in (kinds.PURCHASE_RETURN, kinds.CUSTOMER_PAYMENT, kinds.SUPPLIER_PAYMENT, kinds.OPENING_BALANCE):
        if not draft.counterparty_ref:
            raise ValidationError("counterparty_ref is required")

    if kind == kinds.BANK_ENTRY:
        tx_type = _require_choice(header, "transaction_type", kinds.BANK_TRANSACTION_TYPES)
        if tx_type == kinds.BANK_TRANSFER:
            source = _coerce_ref("header.from_account_ref", header.get("from_account_ref"), required=True)
            destination = _coerce_ref("header.to_account_ref", header.get("to_account_ref"), required=True)
            if source == destination:
                raise ValidationError("Source and destination accounts must be different")
            header["from_account_ref"] = source
            header["to_account_ref"] = destination
        else:
            header["account_ref"] = _coerce_ref("header.account_ref", header.get("account_ref"), required=True)

    if kind == kinds.OPENING_BALANCE:
        header["account_type"] = _require_choice(header, "account_type", {"customer", "supplier", "bank_account"})
        header["balance_type"] = _require_choice(header, "balance_type", kinds.BALANCE_TYPES, "debit")

    if "amount" in header and header["amount"] is not None:
        header["amount"] = _coerce_int("header.amount", header["amount"])

    return header


def validate_draft(draft: DocumentDraft, *, default_location: str) -> tuple[dict, int]:
    """
    Validate a draft against its kind.

    Returns (normalized_header, total_amount_cents).
    Raises ValidationError on the first problem found.
    """
    rule = kinds.get_kind_rule(draft.kind)
    if rule is None:
        raise ValidationError(
            f"Invalid kind. Must be one of: {', '.join(kinds.DOCUMENT_KINDS)}",
            details={"kind": draft.kind},
        )

    if rule.requires_lines and not draft.lines:
        raise ValidationError(f"At least one line is required for {draft.kind}")

    for index, line in enumerate(draft.lines):
        if rule.line_mode == kinds.LINES_GOODS:
            _validate_goods_line(index, line)
        else:
            _validate_money_line(index, line)

    header = _normalize_header(draft, default_location)

    if rule.line_mode == kinds.LINES_MONEY:
        if draft.lines:
            total = sum(line.amount_cents for line in draft.lines)
            if header.get("amount") is not None and header["amount"] != total:
                raise ValidationError("header.amount does not match the sum of line amounts")
        else:
            total = header.get("amount")
            if total is None:
                raise ValidationError("header.amount or at least one line is required")
        if total <= 0:
            raise ValidationError("amount must be > 0")
        if total > MAX_AMOUNT_CENTS:
            raise ValidationError(f"amount cannot exceed {MAX_AMOUNT_CENTS}")
        header["amount"] = total
    else:
        total = sum(line.net_amount_cents for line in draft.lines)

    return header, total
