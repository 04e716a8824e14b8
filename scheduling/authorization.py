"""
Who may schedule whom.

The scheduling services only depend on the small ``SchedulingAuthorization``
contract. ``RoleAuthorization`` is the default, role-based implementation:

- admins manage every employee,
- managers manage themselves and the members of their ``managed_teams``,
- team members manage only themselves.
"""
from abc import ABC, abstractmethod

from .models import Employee, EmployeeRole, Team


class SchedulingAuthorization(ABC):

    @abstractmethod
    def can_manage_employee(self, user_id: int, employee_id: int) -> bool:
        ...

    @abstractmethod
    def get_managed_employees(self, user_id: int) -> list[Employee]:
        ...

    @abstractmethod
    def can_view_team(self, user_id: int, team_id: int) -> bool:
        ...

    def manages_team(self, user_id: int, team_id: int) -> bool:
        managed_ids = {e.id for e in self.get_managed_employees(user_id)}
        member_ids = set(Employee.objects.filter(team_id=team_id).values_list("id", flat=True))
        return bool(member_ids) and member_ids <= managed_ids


class RoleAuthorization(SchedulingAuthorization):

    @staticmethod
    def _user(user_id: int) -> Employee | None:
        return Employee.objects.filter(id=user_id).first()

    def can_manage_employee(self, user_id: int, employee_id: int) -> bool:
        return any(e.id == employee_id for e in self.get_managed_employees(user_id))

    def get_managed_employees(self, user_id: int) -> list[Employee]:
        user = self._user(user_id)
        if user is None:
            return []

        if user.role == EmployeeRole.ADMIN:
            return list(Employee.objects.all())

        if user.role == EmployeeRole.MANAGER:
            team_ids = list(user.managed_teams.values_list("id", flat=True))
            managed = Employee.objects.filter(team_id__in=team_ids) | Employee.objects.filter(id=user.id)
            return list(managed.distinct())

        return [user]

    def can_view_team(self, user_id: int, team_id: int) -> bool:
        user = self._user(user_id)
        if user is None:
            return False
        if user.role in (EmployeeRole.ADMIN, EmployeeRole.MANAGER):
            return Team.objects.filter(id=team_id, is_active=True).exists()
        return user.team_id == team_id

    def manages_team(self, user_id: int, team_id: int) -> bool:
        user = self._user(user_id)
        if user is None:
            return False
        if user.role == EmployeeRole.ADMIN:
            return True
        if user.role == EmployeeRole.MANAGER:
            return user.managed_teams.filter(id=team_id).exists()
        return False
