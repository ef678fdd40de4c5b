from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from labbooking.core.entities.recurring_pattern import RecurringPattern
from labbooking.core.repositories.recurring_pattern_repository import RecurringPatternRepository
from labbooking.infrastructure.models.models import RecurringPatternModel


class RecurringPatternRepositoryImpl(RecurringPatternRepository):
    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, recurring_group_id: UUID) -> RecurringPattern | None:
        row = self._db.get(RecurringPatternModel, str(recurring_group_id))
        if row is None:
            return None

        return RecurringPattern(
            recurring_group_id=UUID(row.recurring_group_id),
            pattern_type=row.pattern_type,
            interval_days=row.interval_days,
            end_date=row.end_date,
            occurrences=row.occurrences,
        )

    def add(self, pattern: RecurringPattern) -> None:
        self._db.add(RecurringPatternModel(
            recurring_group_id=str(pattern.recurring_group_id),
            pattern_type=pattern.pattern_type,
            interval_days=pattern.interval_days,
            end_date=pattern.end_date,
            occurrences=pattern.occurrences,
        ))
        self._db.flush()
