"""Directory module — read-only User / Department records consumed by the leave core."""

from leaveflow.directory.models import Department, DepartmentManager, User

__all__ = ["Department", "DepartmentManager", "User"]
