"""
Multi-Tenant Service: Tenant-bound query scope

WHY: Every read and write in the inventory/order core is scoped to one
organization. Rather than each call appending an org filter by convention,
services receive a TenantScope bound to an org_id at construction and issue
every query through it.

SECURITY INVARIANTS:
1. scope.query(Model) always filters Model.org_id == scope.org_id
2. scope.get(...) fails closed: missing and cross-tenant rows both raise
   NotFoundError with the same message (existence is never revealed)
3. Cross-tenant probes are logged as warnings

USAGE:
    scope = TenantScope(org_id)
    location = scope.require_location(location_id)
    products = scope.query(Product).filter_by(is_active=True).all()
"""

from __future__ import annotations

from flask import current_app

from ..cache import CacheBackend
from ..errors import NotFoundError
from ..extensions import db, tenant_cache
from ..models import Location, Organization


class TenantScope:
    """Tenant-bound repository entry point."""

    def __init__(self, org_id: int, cache: CacheBackend | None = None):
        if org_id is None:
            raise NotFoundError("Organization not found")
        self.org_id = org_id
        self.cache = cache if cache is not None else tenant_cache

    def __repr__(self) -> str:
        return f"<TenantScope org_id={self.org_id}>"

    def query(self, model):
        """Base query for a tenant-owned model (must carry org_id)."""
        return db.session.query(model).filter(model.org_id == self.org_id)

    def get(self, model, entity_id, label: str | None = None, *, lock: bool = False):
        """
        Load a tenant-owned row by id or raise NotFoundError.

        A row owned by another tenant is reported exactly like a missing one.
        """
        label = label or model.__name__
        if entity_id is None:
            raise NotFoundError(f"{label} not found")
        query = self.query(model).filter(model.id == entity_id)
        if lock:
            query = query.with_for_update()
        row = query.first()
        if row is None:
            if db.session.query(model.id).filter(model.id == entity_id).first() is not None:
                _log_cross_tenant_attempt(self.org_id, label, entity_id)
            raise NotFoundError(f"{label} {entity_id} not found")
        return row

    def owns_location(self, location_id: int) -> bool:
        owner = self.cache.get_or_set(("location_org", location_id), lambda: _load_location_owner(location_id))
        return owner == self.org_id

    def require_location(self, location_id: int, *, active_only: bool = False) -> Location:
        """
        Validate that a location belongs to this tenant.

        Ownership is memoised in the injected cache; the row itself is always
        reloaded so is_active is current.
        """
        if location_id is None or not self.owns_location(location_id):
            if location_id is not None and _load_location_owner(location_id) is not None:
                _log_cross_tenant_attempt(self.org_id, "Location", location_id)
            raise NotFoundError(f"Location {location_id} not found")
        location = self.get(Location, location_id)
        if active_only and not location.is_active:
            raise NotFoundError(f"Location {location_id} not found")
        return location

    def default_location(self) -> Location | None:
        """Oldest active location of the tenant (fallback for orders without one)."""
        return (
            self.query(Location)
            .filter(Location.is_active.is_(True))
            .order_by(Location.created_at.asc(), Location.id.asc())
            .first()
        )


def require_active_tenant(org_id: int) -> TenantScope:
    """
    Validate that an organization exists and is active, and return its scope.

    Raises:
        NotFoundError if org doesn't exist or is inactive
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org or not org.is_active:
        raise NotFoundError("Organization not found")

    return TenantScope(org.id)


def _load_location_owner(location_id: int) -> int | None:
    row = db.session.query(Location.org_id).filter(Location.id == location_id).first()
    return row[0] if row else None


def _log_cross_tenant_attempt(org_id: int, label: str, entity_id) -> None:
    """
    Log a cross-tenant access attempt.

    SECURITY: Audit trail for detecting probing. The caller still receives a
    plain NotFoundError.
    """
    current_app.logger.warning(
        "Cross-tenant access denied: org %s requested %s %s", org_id, label, entity_id
    )
