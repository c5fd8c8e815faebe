# Overview: Request-context decorator for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Tenant
from .services.catalog_service import get_active_user


class TenantContextError(Exception):
    """Missing or invalid tenant / actor context (401)."""


def _header_int(name: str) -> int:
    raw = (request.headers.get(name) or "").strip()
    if not raw:
        raise TenantContextError(f"{name} header is required")
    try:
        return int(raw)
    except ValueError:
        raise TenantContextError(f"{name} must be an integer")


def resolve_context() -> tuple[Tenant, int]:
    """
    Read the trusted tenant and actor headers.

    Authentication happens upstream; this only checks that the tenant is
    active and the actor is an active user of that tenant.
    """
    tenant_id = _header_int("X-Tenant-ID")
    user_id = _header_int("X-User-ID")

    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None or not tenant.is_active:
        raise TenantContextError("Unknown or inactive tenant")
    if get_active_user(tenant_id, user_id) is None:
        raise TenantContextError("Unknown or inactive user for this tenant")
    return tenant, user_id


def require_context(f):
    """
    Establish tenant context for the request.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.tenant: the Tenant row
    - g.tenant_id: the tenant id every service call receives
    - g.user_id: the acting user (created_by / opened_by / closed_by)

    Returns 401 when either header is missing, malformed or names an
    unknown / inactive tenant or user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            tenant, user_id = resolve_context()
        except TenantContextError as e:
            return jsonify({"error": str(e)}), 401

        g.tenant = tenant
        g.tenant_id = tenant.id
        g.user_id = user_id
        return f(*args, **kwargs)

    return decorated_function
