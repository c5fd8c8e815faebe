# backend/stockledger/services/catalog_service.py
"""
Catalog Service (tenants, users, items, counters)

MULTI-TENANT: Every item and counter operation takes tenant_id explicitly
and only ever touches rows of that tenant.
- Item codes (SKUs) are unique per tenant
- Counter names are unique per tenant, compared case-insensitively
- Items are soft-updated and deactivated; deleting an item that has
  movements is refused so the ledger never loses its references
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Counter, Item, StockMovement, Tenant, User
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_item,
    validate_payload,
)
from .movement_service import ensure_item_in_tenant, get_tenant


ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "code",
        "name",
        "brand",
        "unit",
        "cost_price_cents",
        "selling_price_cents",
        "reorder_level",
        "category",
        "is_active",
    },
    required_on_create={"name"},
)

COUNTER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "is_active"},
    required_on_create={"name"},
)


def normalize_category(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text.upper() if text else None


def _normalize_code(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# -----------------------------------------------------------------------------
# Tenants and users
# -----------------------------------------------------------------------------

def create_tenant(*, name: str, code: str | None = None, timezone: str = "UTC") -> Tenant:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    code = _normalize_code(code)
    if code and db.session.query(Tenant).filter_by(code=code).first():
        raise ConflictError(f"Tenant code already exists: {code}")

    tenant = Tenant(name=name, code=code, timezone=(timezone or "UTC").strip())
    db.session.add(tenant)
    db.session.commit()
    current_app.logger.info("Created tenant %s (%s)", tenant.id, tenant.name)
    return tenant


def list_tenants() -> list[Tenant]:
    return db.session.query(Tenant).order_by(Tenant.id.asc()).all()


def create_user(*, tenant_id: int, username: str) -> User:
    get_tenant(tenant_id)
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    exists = db.session.query(User).filter_by(tenant_id=tenant_id, username=username).first()
    if exists:
        raise ConflictError(f"Username already exists: {username}")

    user = User(tenant_id=tenant_id, username=username)
    db.session.add(user)
    db.session.commit()
    return user


def get_active_user(tenant_id: int, user_id: int) -> User | None:
    return db.session.query(User).filter_by(id=user_id, tenant_id=tenant_id, is_active=True).first()


# -----------------------------------------------------------------------------
# Items
# -----------------------------------------------------------------------------

def _check_code_free(tenant_id: int, code: str | None, exclude_id: int | None = None) -> None:
    if not code:
        return
    q = db.session.query(Item.id).filter(Item.tenant_id == tenant_id, Item.code == code)
    if exclude_id is not None:
        q = q.filter(Item.id != exclude_id)
    if q.first():
        raise ConflictError(f"Item code already exists: {code}")


def _apply_item_patch(item: Item, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ITEM_POLICY.writable_fields:
            continue
        setattr(item, k, v)


def get_item_for_tenant(tenant_id: int, item_id: int) -> Item:
    return ensure_item_in_tenant(tenant_id, item_id)


def find_item(tenant_id: int, *, code: str | None = None, name: str | None = None) -> Item | None:
    """By code when given, else by exact name. Tenant scoped."""
    code = _normalize_code(code)
    if code:
        return db.session.query(Item).filter_by(tenant_id=tenant_id, code=code).first()
    name = (name or "").strip()
    if name:
        return db.session.query(Item).filter_by(tenant_id=tenant_id, name=name).order_by(Item.id.asc()).first()
    return None


def check_item_payload(payload: dict) -> dict:
    """Validated item patch for a new item; raises ValidationError."""
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
    enforce_rules_item(patch)
    return patch


def create_item(*, tenant_id: int, payload: dict, actor_id: int | None = None, commit: bool = True) -> Item:
    """
    Create an item from a JSON-style payload.

    Raises:
        ValidationError: bad fields or values
        ConflictError: code already used in this tenant
    """
    get_tenant(tenant_id)
    patch = check_item_payload(payload)

    patch["code"] = _normalize_code(patch.get("code"))
    patch["category"] = normalize_category(patch.get("category"))
    if not patch.get("unit"):
        patch["unit"] = current_app.config.get("STOCK_DEFAULT_UNIT", "PCS")
    _check_code_free(tenant_id, patch["code"])

    item = Item(tenant_id=tenant_id, created_by=actor_id, updated_by=actor_id)
    _apply_item_patch(item, patch)
    db.session.add(item)
    db.session.flush()

    if commit:
        db.session.commit()
        current_app.logger.info("Created item %s (%s) for tenant %s", item.id, item.name, tenant_id)
    return item


def update_item(*, tenant_id: int, item_id: int, payload: dict, actor_id: int | None = None) -> Item:
    item = get_item_for_tenant(tenant_id, item_id)
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
    enforce_rules_item(patch)

    if "code" in patch:
        patch["code"] = _normalize_code(patch["code"])
        _check_code_free(tenant_id, patch["code"], exclude_id=item.id)
    if "category" in patch:
        patch["category"] = normalize_category(patch["category"])

    _apply_item_patch(item, patch)
    item.updated_by = actor_id
    db.session.commit()
    return item


def deactivate_item(*, tenant_id: int, item_id: int, actor_id: int | None = None) -> Item:
    item = get_item_for_tenant(tenant_id, item_id)
    if item.is_active:
        item.is_active = False
        item.updated_by = actor_id
        db.session.commit()
    return item


def delete_item(*, tenant_id: int, item_id: int) -> None:
    """Hard delete, only for items that never moved."""
    item = get_item_for_tenant(tenant_id, item_id)
    has_movements = db.session.query(StockMovement.id).filter_by(
        tenant_id=tenant_id, item_id=item.id
    ).first()
    if has_movements:
        raise ConflictError("Item has stock movements; deactivate it instead")
    db.session.delete(item)
    db.session.commit()


def list_items(tenant_id: int, *, include_inactive: bool = False, search: str | None = None) -> list[Item]:
    q = db.session.query(Item).filter(Item.tenant_id == tenant_id)
    if not include_inactive:
        q = q.filter(Item.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter((Item.name.ilike(like)) | (Item.code.ilike(like)))
    return q.order_by(Item.name.asc(), Item.id.asc()).all()


# -----------------------------------------------------------------------------
# Counters
# -----------------------------------------------------------------------------

def find_counter_by_name(tenant_id: int, name: str | None) -> Counter | None:
    """Trimmed, case-insensitive exact match."""
    key = (name or "").strip().lower()
    if not key:
        return None
    return db.session.query(Counter).filter(
        Counter.tenant_id == tenant_id,
        func.lower(Counter.name) == key,
    ).first()


def create_counter(*, tenant_id: int, name: str) -> Counter:
    get_tenant(tenant_id)
    patch = validate_payload(model=Counter, payload={"name": name}, policy=COUNTER_POLICY, partial=False)
    if find_counter_by_name(tenant_id, patch["name"]) is not None:
        raise ConflictError(f"Counter already exists: {patch['name']}")

    counter = Counter(tenant_id=tenant_id, name=patch["name"])
    db.session.add(counter)
    db.session.commit()
    return counter


def list_counters(tenant_id: int, *, include_inactive: bool = False) -> list[Counter]:
    q = db.session.query(Counter).filter(Counter.tenant_id == tenant_id)
    if not include_inactive:
        q = q.filter(Counter.is_active.is_(True))
    return q.order_by(Counter.name.asc(), Counter.id.asc()).all()
