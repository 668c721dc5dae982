from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


ENTITY_STOCK_ITEM = "stock_item"
ENTITY_CUSTOMER = "customer"
ENTITY_SUPPLIER = "supplier"
ENTITY_BANK_ACCOUNT = "bank_account"

ENTITY_TYPES = (ENTITY_STOCK_ITEM, ENTITY_CUSTOMER, ENTITY_SUPPLIER, ENTITY_BANK_ACCOUNT)


class TrackedEntity(db.Model):
    """
    Anything that carries a running balance.

    Stock items are tracked per location: one TrackedEntity row for the item,
    one BalanceProjection row per (item, location) it has ever moved through.
    Customers, suppliers and bank accounts use the empty location.
    """
    __tablename__ = "tracked_entities"
    __table_args__ = (
        db.UniqueConstraint("entity_type", "ref", name="uq_tracked_entities_type_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(32), nullable=False, index=True)
    ref = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_stock(self) -> bool:
        return self.entity_type == ENTITY_STOCK_ITEM

    def __repr__(self) -> str:
        return f"<TrackedEntity {self.entity_type}:{self.ref}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "ref": self.ref,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
