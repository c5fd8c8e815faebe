from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from stockledger.time_utils import to_iso_date, to_utc_z


# Movement types
MOVEMENT_OPENING = "opening_stock"
MOVEMENT_RESTOCK = "restock"
MOVEMENT_SALE = "sale"
MOVEMENT_CLOSING = "closing_stock"

MOVEMENT_TYPES = (MOVEMENT_OPENING, MOVEMENT_RESTOCK, MOVEMENT_SALE, MOVEMENT_CLOSING)

# Types that move stock in; sale moves it out; closing is a count snapshot
STOCK_IN_TYPES = (MOVEMENT_OPENING, MOVEMENT_RESTOCK)


class ImmutableMovementError(RuntimeError):
    """Raised when something tries to update or delete a persisted movement."""


class Item(db.Model):
    """
    Tenant-scoped product.

    CODE: the SKU. Unique per tenant when present; items auto-created by a
    restock import may arrive without one.

    Prices are stored in cents. Items are soft-updated and deactivated,
    never deleted while movements reference them.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_items_tenant_code"),
        db.Index("ix_items_tenant_name", "tenant_id", "name"),
        db.Index("ix_items_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(120), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="PCS")

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<Item id={self.id} code={self.code!r} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "code": self.code,
            "name": self.name,
            "brand": self.brand,
            "unit": self.unit,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "reorder_level": self.reorder_level,
            "category": self.category,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Immutable stock ledger fact.

    quantity is always stored positive (closing counts may be zero); the
    movement_type decides the sign when stock is derived:
    opening_stock/restock add, sale subtracts, closing_stock is a physical
    count and never changes the balance.

    Rows are never updated or deleted. Corrections are new movements.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_moves_tenant_item_counter", "tenant_id", "item_id", "counter_id"),
        db.Index("ix_moves_tenant_date_type", "tenant_id", "movement_date", "movement_type"),
        db.CheckConstraint("quantity >= 0", name="ck_moves_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("daily_sessions.id"), nullable=True, index=True)
    counter_id = db.Column(db.Integer, db.ForeignKey("counters.id"), nullable=True, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    movement_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("movements", lazy=True))
    counter = db.relationship("Counter")
    session = db.relationship("DailySession", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "session_id": self.session_id,
            "counter_id": self.counter_id,
            "item_id": self.item_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "movement_date": to_iso_date(self.movement_date),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableMovementError(f"Stock movement {target.id} is immutable; record a correcting movement instead")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(f"Stock movement {target.id} cannot be deleted")
