from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from labbooking.core.entities.lab import Lab, LabClosedDay, LabManagerAssignment, LabOperatingHours, Workstation


class LabRepository(ABC):
    """Read-only access to the lab catalog (labs, workstations, hours, closures, manager assignments)."""

    @abstractmethod
    def get(self, lab_id: int) -> Lab | None:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[Lab]:
        raise NotImplementedError

    @abstractmethod
    def get_workstation(self, workstation_id: int) -> Workstation | None:
        raise NotImplementedError

    @abstractmethod
    def get_operating_hours(self, lab_id: int, day_of_week: int) -> LabOperatingHours | None:
        raise NotImplementedError

    @abstractmethod
    def list_closed_days(self, lab_id: int, day: date) -> list[LabClosedDay]:
        """Closures for `lab_id` (and global ones) that may apply to `day`."""
        raise NotImplementedError

    @abstractmethod
    def list_manager_assignments(self, *, user_id: int | None = None, lab_id: int | None = None) -> list[LabManagerAssignment]:
        raise NotImplementedError

    def is_manager_of(self, user_id: int, lab_id: int) -> bool:
        return bool(self.list_manager_assignments(user_id=user_id, lab_id=lab_id))
