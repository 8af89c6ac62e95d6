"""
Shared case lookups.

Per-case writes go through `get_case(..., for_update=True)` so concurrent
writers to one case serialize on its row lock.
"""
from typing import List

from sqlalchemy.orm import Session

from ...models.db_models import CaseDB, PanelistDB
from ..errors import NotFound


def get_case(db: Session, case_id: str, for_update: bool = False) -> CaseDB:
    """Fetch a case or raise NotFound. With for_update, lock the row and refresh it."""
    query = db.query(CaseDB).filter(CaseDB.id == case_id)
    if for_update:
        query = query.with_for_update().populate_existing()

    case = query.first()
    if case is None:
        raise NotFound(f"Case {case_id} not found", ref=case_id)
    return case


def get_panelists_for_update(db: Session, panelist_ids: List[str]) -> List[PanelistDB]:
    """Lock panelist rows in id order so two batches never deadlock each other."""
    if not panelist_ids:
        return []
    return (
        db.query(PanelistDB)
        .filter(PanelistDB.id.in_(panelist_ids))
        .order_by(PanelistDB.id)
        .with_for_update()
        .populate_existing()
        .all()
    )
