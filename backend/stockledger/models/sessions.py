from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_iso_date, to_utc_z

class DailySession(db.Model):
    """
    Open/close accounting day per tenant.

    LIFECYCLE (per tenant and date):
    - no row: day not started
    - is_open=True: counts and sales for the day are being recorded
    - is_open=False: closed, terminal for that date

    STORAGE GUARDS:
    - uq_daily_sessions_tenant_date: one session per tenant per date
    - uq_daily_sessions_tenant_open: at most one open session per tenant
      (partial unique index; two concurrent opens cannot both insert)
    """
    __tablename__ = "daily_sessions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "session_date", name="uq_daily_sessions_tenant_date"),
        db.Index(
            "uq_daily_sessions_tenant_open",
            "tenant_id",
            unique=True,
            sqlite_where=db.text("is_open = 1"),
            postgresql_where=db.text("is_open"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    session_date = db.Column(db.Date, nullable=False)

    opened_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    opening_time = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closing_time = db.Column(db.DateTime(timezone=True), nullable=True)

    is_open = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("daily_sessions", lazy=True))
    opener = db.relationship("User", foreign_keys=[opened_by])
    closer = db.relationship("User", foreign_keys=[closed_by])

    def __repr__(self) -> str:
        return f"<DailySession id={self.id} tenant_id={self.tenant_id} date={self.session_date} open={self.is_open}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "session_date": to_iso_date(self.session_date),
            "opened_by": self.opened_by,
            "opening_time": to_utc_z(self.opening_time),
            "closed_by": self.closed_by,
            "closing_time": to_utc_z(self.closing_time),
            "is_open": self.is_open,
        }
