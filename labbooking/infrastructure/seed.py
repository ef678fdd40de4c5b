from __future__ import annotations

import logging
from datetime import date, time
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy.orm import Session

from labbooking.core.entities.user import Role
from labbooking.infrastructure.models.models import (
    LabClosedDayModel,
    LabManagerModel,
    LabModel,
    LabOperatingHoursModel,
    UserModel,
    WorkstationModel,
)

logger = logging.getLogger(__name__)


def _parse_time(value: Any) -> time | None:
    if value is None or isinstance(value, time):
        return value
    if not isinstance(value, str):
        # Unquoted HH:MM is read by YAML as a base-60 integer
        raise ValueError(f"Times must be quoted strings like '08:00', got {value!r}")
    return time.fromisoformat(value)


def _parse_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def load_catalog_file(path: str | Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def seed_catalog(db: Session, catalog: dict[str, Any]) -> None:
    """
    Upsert users, labs (with workstations, hours and managers) and closed days from a catalog mapping.

    Shape:
      users: [{id, email, first_name, last_name, role}]
      labs: [{id, name, default_open_time, default_close_time,
              workstations: [{id, identifier, active}],
              operating_hours: [{day_of_week, open_time, close_time, is_closed}],
              managers: [{user_id, is_primary}]}]
      closed_days: [{lab_id, specific_date, recurring_day_of_week, reason}]
    """
    for user in catalog.get("users") or []:
        db.merge(UserModel(
            user_id=user["id"],
            email=user["email"],
            first_name=user.get("first_name", ""),
            last_name=user.get("last_name", ""),
            role=Role(user["role"]) if user.get("role") else None,
        ))

    for lab in catalog.get("labs") or []:
        lab_id = lab["id"]
        db.merge(LabModel(
            lab_id=lab_id,
            name=lab["name"],
            default_open_time=_parse_time(lab.get("default_open_time")),
            default_close_time=_parse_time(lab.get("default_close_time")),
        ))
        for ws in lab.get("workstations") or []:
            db.merge(WorkstationModel(
                workstation_id=ws["id"],
                lab_id=lab_id,
                identifier=ws["identifier"],
                active=ws.get("active", True),
            ))

        db.query(LabOperatingHoursModel).filter(LabOperatingHoursModel.lab_id == lab_id).delete()
        for hours in lab.get("operating_hours") or []:
            db.add(LabOperatingHoursModel(
                lab_id=lab_id,
                day_of_week=hours["day_of_week"],
                open_time=_parse_time(hours.get("open_time")),
                close_time=_parse_time(hours.get("close_time")),
                is_closed=hours.get("is_closed", False),
            ))

        for manager in lab.get("managers") or []:
            db.merge(LabManagerModel(
                user_id=manager["user_id"],
                lab_id=lab_id,
                is_primary=manager.get("is_primary", False),
            ))

    if "closed_days" in catalog:
        db.query(LabClosedDayModel).delete()
    for closure in catalog.get("closed_days") or []:
        db.add(LabClosedDayModel(
            lab_id=closure.get("lab_id"),
            specific_date=_parse_date(closure.get("specific_date")),
            recurring_day_of_week=closure.get("recurring_day_of_week"),
            reason=closure.get("reason"),
        ))

    db.commit()
    logger.info(
        "Seeded catalog: %d users, %d labs, %d closed days",
        len(catalog.get("users") or []),
        len(catalog.get("labs") or []),
        len(catalog.get("closed_days") or []),
    )
