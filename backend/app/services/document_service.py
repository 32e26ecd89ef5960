# Overview: Per-tenant document numbering (order numbers).

from __future__ import annotations

from sqlalchemy import update

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence
from .concurrency import dialect_insert
from .tenant_service import TenantScope


def next_document_number(
    scope: TenantScope,
    *,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a tenant/type.

    The increment is a single UPDATE on the (org_id, document_type) row, so
    two concurrent callers can never receive the same number. Runs inside the
    caller's transaction.
    """
    if not document_type:
        raise ValidationError("document_type is required")

    insert = dialect_insert()
    if insert is not None:
        db.session.execute(
            insert(DocumentSequence)
            .values(org_id=scope.org_id, document_type=document_type, next_number=1)
            .on_conflict_do_nothing(index_elements=["org_id", "document_type"])
        )
    elif not scope.query(DocumentSequence).filter_by(document_type=document_type).first():
        db.session.add(DocumentSequence(org_id=scope.org_id, document_type=document_type, next_number=1))
        db.session.flush()

    db.session.execute(
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == scope.org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(org_id=scope.org_id, document_type=document_type)
        .scalar()
    )
    return f"{prefix}-{current - 1:0{pad}d}"
