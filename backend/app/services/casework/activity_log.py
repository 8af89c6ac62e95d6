"""
Case Activity Log

Append-only timeline sink. Every lifecycle event on a case lands here as
{case_id, type, actor, timestamp, description}; entries are never edited.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...models.db_models import ActivityType, ActorType, CaseActivityDB


@dataclass(frozen=True)
class Actor:
    """Who performed an action, resolved by the identity layer."""
    actor_type: ActorType
    actor_id: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(ActorType.SYSTEM, None)

    @classmethod
    def admin(cls, admin_id: str) -> "Actor":
        return cls(ActorType.ADMIN, admin_id)

    @classmethod
    def panelist(cls, panelist_id: str) -> "Actor":
        return cls(ActorType.PANELIST, panelist_id)

    @classmethod
    def client(cls, user_id: Optional[str]) -> "Actor":
        return cls(ActorType.CLIENT, user_id)


class CaseActivityLog:
    """Writes and pages the case timeline. Does not commit; callers own the transaction."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        case_id: str,
        activity_type: ActivityType,
        actor: Actor,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        is_important: bool = False,
    ) -> CaseActivityDB:
        entry = CaseActivityDB(
            id=str(uuid4()),
            case_id=case_id,
            activity_type=activity_type,
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
            description=description,
            event_metadata=metadata or {},
            is_important=is_important,
        )
        self.db.add(entry)
        return entry

    def timeline(
        self,
        case_id: str,
        activity_type: Optional[ActivityType] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Newest-first page of a case's activities with pagination info."""
        query = self.db.query(CaseActivityDB).filter(CaseActivityDB.case_id == case_id)
        if activity_type:
            query = query.filter(CaseActivityDB.activity_type == activity_type)

        total = query.count()
        page = max(page, 1)
        activities: List[CaseActivityDB] = (
            query.order_by(CaseActivityDB.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        return {
            "activities": [serialize_activity(a) for a in activities],
            "pagination": {
                "current": page,
                "pages": math.ceil(total / limit) if limit else 0,
                "total": total,
                "has_next": page * limit < total,
                "has_prev": page > 1,
            },
        }


def serialize_activity(activity: CaseActivityDB) -> Dict[str, Any]:
    return {
        "id": activity.id,
        "case_id": activity.case_id,
        "type": activity.activity_type.value,
        "actor": {
            "type": activity.actor_type.value,
            "id": activity.actor_id,
        },
        "description": activity.description,
        "timestamp": activity.created_at.isoformat() if activity.created_at else None,
        "metadata": activity.event_metadata,
        "is_important": activity.is_important,
    }
