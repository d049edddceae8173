"""
Multi-Tenant Service: Tenant Scoping Helpers

WHY: Centralize tenant scoping so every service resolves entities the same
way. A row in another shop (or another branch, for branch-bound users) is
reported exactly like a missing row, so ids from other tenants cannot be
probed.

SCOPING RULES:
1. Every row carries shop_id; every lookup filters on it.
2. Shop-wide callers (branch_id None) see every branch of their shop.
3. Branch-bound callers see their own branch plus shop-wide rows
   (branch_id NULL).
4. Writes are stamped with the caller's branch; shop-wide callers may name
   a branch of their own shop explicitly.

USAGE:
    from shopbooks.services.tenant_service import get_scoped

    customer = get_scoped(Customer, customer_id, shop_id=g.shop_id, branch_id=g.branch_id)
"""

from __future__ import annotations

from flask import g

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch
from .concurrency import lock_for_update


def scope_query(query, model, *, shop_id: int, branch_id: int | None = None):
    """Filter a query on `model` down to the caller's tenant."""
    query = query.filter(model.shop_id == shop_id)
    if branch_id is not None and hasattr(model, "branch_id"):
        query = query.filter(db.or_(model.branch_id == branch_id, model.branch_id.is_(None)))
    return query


def get_scoped(
    model,
    entity_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    label: str | None = None,
    for_update: bool = False,
):
    """
    Load one row by id within the caller's tenant.

    Raises NotFoundError when the row is missing or belongs to another tenant.
    for_update=True takes a row lock (and refreshes any stale identity-map copy).
    """
    query = scope_query(db.session.query(model), model, shop_id=shop_id, branch_id=branch_id)
    query = query.filter(model.id == entity_id)
    if for_update:
        query = lock_for_update(query).populate_existing()
    entity = query.first()
    if entity is None:
        raise NotFoundError(f"{label or model.__name__} not found")
    return entity


def resolve_write_branch(*, shop_id: int, branch_id: int | None, requested_branch_id: int | None = None) -> int | None:
    """
    Pick the branch_id a new row is stamped with.

    Branch-bound callers always write into their own branch.
    """
    if branch_id is not None:
        return branch_id
    if requested_branch_id is None:
        return None
    branch = db.session.query(Branch).filter_by(id=requested_branch_id, shop_id=shop_id).first()
    if branch is None:
        raise ValidationError("branch_id does not belong to this shop")
    return branch.id


def current_scope() -> dict:
    """Tenant kwargs (shop_id, branch_id) for the authenticated request."""
    if getattr(g, "shop_id", None) is None:
        raise NotFoundError("Tenant context not established")
    return {"shop_id": g.shop_id, "branch_id": getattr(g, "branch_id", None)}
