from collections import defaultdict
from datetime import date, timedelta

import numpy as np
from django.db import transaction
from django.db.models import Count, Max
from django.utils import timezone
from inequality import gini  # type: ignore

from .authorization import RoleAuthorization, SchedulingAuthorization
from .calendar_window import business_days_between, is_weekend, view_window
from .capacity import CapacityService, max_tasks_per_slot
from .conf import scheduling_setting
from .exceptions import NotFoundError, ValidationError
from .models import (
    Assignment, Employee, EmployeeRole, Project, Slot, Task, TaskPriority, TaskStatus, TaskType, Team
)
from .observability import get_logger
from .schemas import (
    AssignmentTaskSchema, CalendarDaySchema, CalendarViewSchema, CreateAssignmentSchema,
    DayAssignmentSchema, EmployeeScheduleSchema, GlobalCalendarViewSchema, ScheduleRequestSchema,
    TaskTypeSchema, TeamScheduleSchema, TeamSummarySchema, TimeSlotAssignmentSchema,
    UpdateAssignmentSchema, WorkloadSummarySchema
)

UNASSIGNED_TEAM = "Unassigned"
DEFAULT_TEAM_COLOR = "#6b7280"

# Fields that live on the Task and are therefore shared by every assignment of it.
TASK_FIELDS = ("priority", "due_date", "status", "task_type_id")

# Nullable fields a sparse patch may clear by sending an explicit null.
CLEARABLE_FIELDS = {"hours", "column_start", "absence_type", "due_date"}


def _patch_fields(patch: UpdateAssignmentSchema) -> dict:
    """Fields the client actually sent, minus nulls for non-nullable fields."""
    sent = patch.model_dump(exclude_unset=True)
    return {
        name: value for name, value in sent.items()
        if value is not None or name in CLEARABLE_FIELDS
    }


class AssignmentService:
    """Places, edits, moves and soft-deletes assignments."""

    def __init__(self, capacity=CapacityService, logger=None):
        self.capacity = capacity
        self.logger = logger or get_logger(__name__)

    # Validation

    def placement_conflicts(self, employee_id: int, assigned_date: date, slot: str,
                            task_id: int | None = None, exclude_id: int | None = None,
                            new_task: tuple[int, int] | None = None) -> list[str]:
        conflicts = []

        if not Employee.objects.filter(id=employee_id).exists():
            conflicts.append("Employee not found")

        if not scheduling_setting("ALLOW_WEEKEND_ASSIGNMENTS") and is_weekend(assigned_date):
            conflicts.append("Assignments on weekends are not allowed")

        if task_id:
            if not Task.objects.filter(id=task_id, is_active=True).exists():
                conflicts.append("Task not found or inactive")
        elif new_task:
            project_id, task_type_id = new_task
            if not Project.objects.filter(id=project_id).exists():
                conflicts.append("Project not found")
            if not TaskType.objects.filter(id=task_type_id).exists():
                conflicts.append("Task type not found")
        else:
            conflicts.append("Task not found or inactive")

        current = self.capacity.slot_count(employee_id, assigned_date, slot, exclude_id=exclude_id)
        if current >= max_tasks_per_slot():
            slot_name = Slot(slot).label
            conflicts.append(
                f"Employee has no available capacity for {slot_name} slot on {assigned_date:%Y-%m-%d}"
            )

        return conflicts

    def get_conflicts(self, spec: CreateAssignmentSchema) -> list[str]:
        new_task = None
        if not spec.task_id and spec.project_id and spec.task_type_id:
            new_task = (spec.project_id, spec.task_type_id)
        return self.placement_conflicts(
            spec.employee_id, spec.assigned_date, spec.slot,
            task_id=spec.task_id, new_task=new_task
        )

    def validate(self, spec: CreateAssignmentSchema) -> bool:
        return not self.get_conflicts(spec)

    def validate_employee_availability(self, employee_id: int, assigned_date: date, slot: str) -> bool:
        return self.capacity.check_capacity(employee_id, assigned_date, slot).is_available

    # Placement

    @staticmethod
    def next_slot_order(employee_id: int, assigned_date: date, slot: str, exclude_id: int | None = None) -> int:
        """One past the highest active slot order in the group, 0 for an empty group."""
        queryset = Assignment.objects.active().in_slot(employee_id, assigned_date, slot)
        if exclude_id is not None:
            queryset = queryset.exclude(id=exclude_id)
        highest = queryset.aggregate(highest=Max("slot_order"))["highest"]
        return 0 if highest is None else highest + 1

    @staticmethod
    def _lock_employee(employee_id: int) -> None:
        # Serialises capacity-check-then-insert for one employee's slots.
        list(Employee.objects.select_for_update().filter(id=employee_id))

    def create(self, spec: CreateAssignmentSchema) -> AssignmentTaskSchema:
        log = self.logger.bind(
            employee_id=spec.employee_id, assigned_date=str(spec.assigned_date), slot=spec.slot
        )
        log.info("assignment.create.start", task_id=spec.task_id)

        with transaction.atomic():
            self._lock_employee(spec.employee_id)

            conflicts = self.get_conflicts(spec)
            if conflicts:
                log.warning("assignment.validation_failed", conflicts=conflicts)
                raise ValidationError("Assignment validation failed", conflicts)

            task_id = spec.task_id
            if not task_id:
                task = Task.objects.create(
                    project_id=spec.project_id,
                    task_type_id=spec.task_type_id,
                    title=spec.title or "New Task",
                    description=spec.description or "",
                    priority=spec.priority or TaskPriority.MEDIUM,
                    status=spec.status or TaskStatus.NOT_STARTED,
                    estimated_hours=scheduling_setting("DEFAULT_TASK_ESTIMATED_HOURS"),
                )
                task_id = task.id
                log.info("task.created", task_id=task_id)

            assignment = Assignment.objects.create(
                task_id=task_id,
                employee_id=spec.employee_id,
                assigned_date=spec.assigned_date,
                slot=spec.slot,
                slot_order=self.next_slot_order(spec.employee_id, spec.assigned_date, spec.slot),
                notes=spec.notes or "",
                hours=spec.hours,
                column_start=spec.column_start,
                absence_type=spec.absence_type,
                is_active=True,
            )

        log.info("assignment.create.done", assignment_id=assignment.id, slot_order=assignment.slot_order)
        return self.to_schema(assignment.id)

    def _apply_assignment_fields(self, assignment: Assignment, fields: dict) -> None:
        if "task_id" in fields:
            if not Task.objects.filter(id=fields["task_id"], is_active=True).exists():
                raise NotFoundError("Task", fields["task_id"], f"Task {fields['task_id']} not found or inactive")
            assignment.task_id = fields["task_id"]
        if "employee_id" in fields:
            if not Employee.objects.filter(id=fields["employee_id"]).exists():
                raise NotFoundError("Employee", fields["employee_id"])
            assignment.employee_id = fields["employee_id"]
        if "assigned_date" in fields:
            if not scheduling_setting("ALLOW_WEEKEND_ASSIGNMENTS") and is_weekend(fields["assigned_date"]):
                raise ValidationError(
                    "Assignment validation failed", ["Assignments on weekends are not allowed"]
                )
            assignment.assigned_date = fields["assigned_date"]
        # A patch that changes employee, date or slot keeps slot_order as is;
        # only move() appends to the end of the destination group.
        for name in ("slot", "notes", "hours", "column_start", "absence_type"):
            if name in fields:
                setattr(assignment, name, fields[name])

    @staticmethod
    def _apply_task_fields(task: Task, fields: dict) -> None:
        for name in TASK_FIELDS:
            if name in fields:
                setattr(task, name, fields[name])

    def _get_for_update(self, assignment_id: int) -> Assignment:
        assignment = Assignment.objects.select_for_update().filter(id=assignment_id, is_active=True).first()
        if assignment is None:
            self.logger.warning("assignment.not_found", assignment_id=assignment_id)
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    def update(self, assignment_id: int, patch: UpdateAssignmentSchema) -> AssignmentTaskSchema:
        """
        Apply a sparse patch. Task-level fields change the shared task in
        place, so every assignment of that task sees them.
        """
        fields = _patch_fields(patch)
        self.logger.info("assignment.update.start", assignment_id=assignment_id, fields=sorted(fields))

        with transaction.atomic():
            assignment = self._get_for_update(assignment_id)
            self._apply_assignment_fields(assignment, fields)
            assignment.save()

            task_changes = {k: v for k, v in fields.items() if k in TASK_FIELDS}
            if task_changes:
                task = Task.objects.select_for_update().get(id=assignment.task_id)
                self._apply_task_fields(task, task_changes)
                task.save()

        self.logger.info("assignment.update.done", assignment_id=assignment_id)
        return self.to_schema(assignment_id)

    def _fork_task(self, task: Task, changes: dict) -> Task:
        fork = Task(
            project_id=task.project_id,
            task_type_id=task.task_type_id,
            title=task.title,
            description=task.description,
            priority=task.priority,
            status=task.status,
            due_date=task.due_date,
            estimated_hours=task.estimated_hours,
            actual_hours=task.actual_hours,
            is_active=task.is_active,
        )
        self._apply_task_fields(fork, changes)
        fork.save()
        return fork

    def bulk_update(self, assignment_ids: list[int], patch: UpdateAssignmentSchema) -> list[AssignmentTaskSchema]:
        """
        Apply one patch to many assignments.

        A task-level change on a task that another active assignment still
        references is written to a fresh copy of the task, and only the
        current assignment is repointed to it.
        """
        fields = _patch_fields(patch)
        task_changes = {k: v for k, v in fields.items() if k in TASK_FIELDS}
        self.logger.info("assignment.bulk_update.start", count=len(assignment_ids), fields=sorted(fields))

        with transaction.atomic():
            assignments = list(
                Assignment.objects.select_for_update()
                .filter(id__in=assignment_ids, is_active=True)
                .order_by("id")
            )
            if not assignments:
                raise NotFoundError("Assignment", assignment_ids, "No assignments found")

            for assignment in assignments:
                self._apply_assignment_fields(assignment, fields)

                if task_changes:
                    task = Task.objects.select_for_update().get(id=assignment.task_id)
                    shared = (
                        Assignment.objects.active()
                        .filter(task_id=task.id)
                        .exclude(id=assignment.id)
                        .exists()
                    )
                    if shared:
                        fork = self._fork_task(task, task_changes)
                        assignment.task_id = fork.id
                        self.logger.info(
                            "task.forked", assignment_id=assignment.id, task_id=task.id, fork_id=fork.id
                        )
                    else:
                        self._apply_task_fields(task, task_changes)
                        task.save()

                assignment.save()

        self.logger.info("assignment.bulk_update.done", count=len(assignments))
        return [self.to_schema(a.id) for a in assignments]

    def delete(self, assignment_id: int) -> bool:
        """Soft-delete. Returns False when no active assignment has this id."""
        with transaction.atomic():
            updated = (
                Assignment.objects.active()
                .filter(id=assignment_id)
                .update(is_active=False, updated_at=timezone.now())
            )
        self.logger.info("assignment.deleted", assignment_id=assignment_id, found=bool(updated))
        return bool(updated)

    def bulk_create(self, specs: list[CreateAssignmentSchema], allow_overbooking: bool = False,
                    validate_conflicts: bool = True) -> list[AssignmentTaskSchema]:
        self.logger.info(
            "assignment.bulk_create.start", count=len(specs),
            allow_overbooking=allow_overbooking, validate_conflicts=validate_conflicts
        )

        if validate_conflicts and not allow_overbooking:
            for spec in specs:
                conflicts = self.get_conflicts(spec)
                if conflicts:
                    self.logger.warning(
                        "assignment.validation_failed", task_id=spec.task_id, conflicts=conflicts
                    )
                    raise ValidationError(
                        f"Assignment validation failed for task {spec.task_id}", conflicts
                    )

        results = []
        with transaction.atomic():
            for spec in specs:
                try:
                    results.append(self.create(spec))
                except ValidationError:
                    if not allow_overbooking:
                        raise

        self.logger.info("assignment.bulk_create.done", created=len(results), requested=len(specs))
        return results

    def move(self, assignment_id: int, employee_id: int, assigned_date: date, slot: str) -> AssignmentTaskSchema:
        """Re-validate the destination, then place the assignment at its end."""
        log = self.logger.bind(assignment_id=assignment_id)
        log.info("assignment.move.start", employee_id=employee_id, assigned_date=str(assigned_date), slot=slot)

        with transaction.atomic():
            assignment = self._get_for_update(assignment_id)
            self._lock_employee(employee_id)

            conflicts = self.placement_conflicts(
                employee_id, assigned_date, slot, task_id=assignment.task_id, exclude_id=assignment.id
            )
            if conflicts:
                log.warning("assignment.validation_failed", conflicts=conflicts)
                raise ValidationError("Assignment validation failed", conflicts)

            same_group = (
                assignment.employee_id == employee_id
                and assignment.assigned_date == assigned_date
                and assignment.slot == slot
            )
            if not same_group:
                assignment.slot_order = self.next_slot_order(
                    employee_id, assigned_date, slot, exclude_id=assignment.id
                )
                assignment.employee_id = employee_id
                assignment.assigned_date = assigned_date
                assignment.slot = slot
                assignment.save()

        log.info("assignment.move.done", slot_order=assignment.slot_order)
        return self.to_schema(assignment_id)

    @staticmethod
    def to_schema(assignment_id: int) -> AssignmentTaskSchema:
        assignment = Assignment.objects.with_details().get(id=assignment_id)
        slot_task_count = Assignment.objects.active().in_slot(
            assignment.employee_id, assignment.assigned_date, assignment.slot
        ).count()
        return AssignmentTaskSchema.from_assignment(assignment, slot_task_count)


class ScheduleService:
    """Builds calendar views, assignment listings and schedule rollups."""

    def __init__(self, authorization: SchedulingAuthorization | None = None, logger=None):
        self.authorization = authorization or RoleAuthorization()
        self.logger = logger or get_logger(__name__)

    # Queries

    @staticmethod
    def get_assignments_in_range(start_date: date, end_date: date, employee_id: int | None = None,
                                 team_id: int | None = None):
        """Active assignments in the range, in placement order."""
        queryset = Assignment.objects.active().in_range(start_date, end_date)
        if employee_id is not None:
            queryset = queryset.filter(employee_id=employee_id)
        if team_id is not None:
            queryset = queryset.filter(employee__team_id=team_id)
        return queryset.with_details().in_placement_order()

    @staticmethod
    def map_with_slot_counts(assignments) -> list[AssignmentTaskSchema]:
        """Map assignments, computing hours from the size of each slot group."""
        assignments = list(assignments)
        group_sizes = defaultdict(int)
        for assignment in assignments:
            group_sizes[(assignment.employee_id, assignment.assigned_date, assignment.slot)] += 1
        return [
            AssignmentTaskSchema.from_assignment(
                a, group_sizes[(a.employee_id, a.assigned_date, a.slot)]
            )
            for a in assignments
        ]

    def get_assignments_by_date_range(self, start_date: date, end_date: date,
                                      employee_id: int | None = None) -> list[AssignmentTaskSchema]:
        return self.map_with_slot_counts(self.get_assignments_in_range(start_date, end_date, employee_id))

    def get_employee_assignments(self, employee_id: int, start_date: date, end_date: date) -> list[AssignmentTaskSchema]:
        return self.get_assignments_by_date_range(start_date, end_date, employee_id)

    @staticmethod
    def get_assignment(assignment_id: int, include_inactive: bool = False) -> AssignmentTaskSchema | None:
        queryset = Assignment.objects.with_details()
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        assignment = queryset.filter(id=assignment_id).first()
        if assignment is None:
            return None
        slot_task_count = Assignment.objects.active().in_slot(
            assignment.employee_id, assignment.assigned_date, assignment.slot
        ).count()
        return AssignmentTaskSchema.from_assignment(assignment, slot_task_count)

    @staticmethod
    def get_employees_for_view(employee_id: int | None = None, team_id: int | None = None,
                               include_inactive: bool = False) -> list[Employee]:
        queryset = Employee.objects.select_related("team")
        if employee_id is not None:
            queryset = queryset.filter(id=employee_id)
        else:
            # The general calendar only shows team members, not their managers.
            queryset = queryset.filter(role=EmployeeRole.TEAM_MEMBER)
        if team_id is not None:
            queryset = queryset.filter(team_id=team_id)
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        return list(queryset.order_by("name", "id"))

    @staticmethod
    def generate_calendar_days(start_date: date, end_date: date) -> list[CalendarDaySchema]:
        return [
            CalendarDaySchema(
                date=day.date,
                is_today=day.is_today,
                display_date=day.display_date,
                day_name=day.day_name,
            )
            for day in business_days_between(start_date, end_date)
        ]

    @staticmethod
    def get_task_types() -> list[TaskTypeSchema]:
        return [
            TaskTypeSchema(id=t.id, name=t.name, color=t.color)
            for t in TaskType.objects.filter(is_active=True).order_by("name")
        ]

    # View building

    @staticmethod
    def _slot_view(slot: str, tasks: list[AssignmentTaskSchema]) -> TimeSlotAssignmentSchema | None:
        if not tasks:
            return None
        max_capacity = max_tasks_per_slot()
        return TimeSlotAssignmentSchema(
            slot=slot,
            tasks=tasks,
            available_capacity=max(0, max_capacity - len(tasks)),
            is_overbooked=len(tasks) > max_capacity,
        )

    @classmethod
    def build_employee_schedules(cls, employees, assignments, days,
                                 team_name: str | None = None) -> list[EmployeeScheduleSchema]:
        """
        Nest assignments as employee -> day -> morning/afternoon -> tasks.

        ``assignments`` must already be in placement order; the order within a
        slot is the left-to-right order on the calendar and is kept as given.
        """
        max_capacity = max_tasks_per_slot()
        by_cell = defaultdict(list)
        for assignment in assignments:
            by_cell[(assignment.employee_id, assignment.assigned_date, assignment.slot)].append(assignment)

        schedules = []
        for employee in employees:
            day_assignments = []
            for day in days:
                morning = by_cell.get((employee.id, day.date, Slot.MORNING.value), [])
                afternoon = by_cell.get((employee.id, day.date, Slot.AFTERNOON.value), [])

                morning_tasks = [AssignmentTaskSchema.from_assignment(a, len(morning)) for a in morning]
                afternoon_tasks = [AssignmentTaskSchema.from_assignment(a, len(afternoon)) for a in afternoon]

                day_assignments.append(DayAssignmentSchema(
                    date=day.date,
                    morning_slot=cls._slot_view(Slot.MORNING, morning_tasks),
                    afternoon_slot=cls._slot_view(Slot.AFTERNOON, afternoon_tasks),
                    total_assignments=len(morning) + len(afternoon),
                    has_conflicts=len(morning) > max_capacity or len(afternoon) > max_capacity,
                ))

            if team_name is not None:
                employee_team = team_name
            else:
                employee_team = employee.team.name if employee.team else UNASSIGNED_TEAM

            schedules.append(EmployeeScheduleSchema(
                employee_id=employee.id,
                employee_name=employee.name,
                role=employee.position or "Employee",
                team=employee_team,
                team_id=employee.team_id,
                is_active=employee.is_active,
                day_assignments=day_assignments,
            ))

        return schedules

    def _calendar_view(self, request: ScheduleRequestSchema, employees: list[Employee],
                       team_id: int | None = None, team_name: str | None = None) -> CalendarViewSchema:
        start_date, end_date = view_window(request.start_date, request.view_type)
        employee_ids = {e.id for e in employees}
        assignments = [
            a for a in self.get_assignments_in_range(start_date, end_date, request.employee_id, team_id)
            if a.employee_id in employee_ids
        ]
        days = list(business_days_between(start_date, end_date))

        self.logger.debug(
            "calendar_view.built", start_date=str(start_date), end_date=str(end_date),
            employees=len(employees), assignments=len(assignments)
        )
        return CalendarViewSchema(
            start_date=start_date,
            end_date=end_date,
            view_type=request.view_type,
            days=self.generate_calendar_days(start_date, end_date),
            employees=self.build_employee_schedules(employees, assignments, days, team_name),
            task_types=self.get_task_types(),
        )

    def get_calendar_view(self, request: ScheduleRequestSchema) -> CalendarViewSchema:
        employees = self.get_employees_for_view(request.employee_id, request.team_id, request.include_inactive)
        return self._calendar_view(request, employees, team_id=request.team_id)

    def get_employee_schedule(self, employee_id: int, start_date: date, view_type: str) -> CalendarViewSchema:
        if not Employee.objects.filter(id=employee_id).exists():
            raise NotFoundError("Employee", employee_id)
        request = ScheduleRequestSchema(employee_id=employee_id, start_date=start_date, view_type=view_type)
        return self.get_calendar_view(request)

    def get_team_calendar_view(self, request: ScheduleRequestSchema) -> CalendarViewSchema:
        team = Team.objects.filter(id=request.team_id).first()
        if team is None:
            raise NotFoundError("Team", request.team_id)
        employees = self.get_employees_for_view(team_id=team.id, include_inactive=request.include_inactive)
        return self._calendar_view(request, employees, team_id=team.id, team_name=team.name)

    def get_managed_calendar_view(self, user_id: int, request: ScheduleRequestSchema) -> CalendarViewSchema:
        """Calendar restricted to the employees ``user_id`` manages."""
        managed = self.authorization.get_managed_employees(user_id)
        employees = sorted(
            (e for e in managed if request.include_inactive or e.is_active),
            key=lambda e: (e.name, e.id),
        )
        return self._calendar_view(request, employees)

    def get_global_calendar_view(self, user_id: int, request: ScheduleRequestSchema) -> GlobalCalendarViewSchema:
        """Every team member, grouped by team, plus an "Unassigned" bucket."""
        start_date, end_date = view_window(request.start_date, request.view_type)
        assignments = list(self.get_assignments_in_range(start_date, end_date))
        days = list(business_days_between(start_date, end_date))

        employees_by_team = defaultdict(list)
        for employee in self.get_employees_for_view(include_inactive=request.include_inactive):
            employees_by_team[employee.team_id].append(employee)

        def team_assignments(members):
            member_ids = {m.id for m in members}
            return [a for a in assignments if a.employee_id in member_ids]

        teams = []
        for team in Team.objects.order_by("name", "id"):
            members = employees_by_team.get(team.id, [])
            teams.append(TeamScheduleSchema(
                id=team.id,
                name=team.name,
                code=team.code,
                color=DEFAULT_TEAM_COLOR,
                is_managed=self.authorization.manages_team(user_id, team.id),
                employees=self.build_employee_schedules(members, team_assignments(members), days, team.name),
            ))

        unassigned = employees_by_team.get(None, [])
        if unassigned:
            teams.append(TeamScheduleSchema(
                id=None,
                name=UNASSIGNED_TEAM,
                code="",
                color=DEFAULT_TEAM_COLOR,
                is_managed=False,
                employees=self.build_employee_schedules(
                    unassigned, team_assignments(unassigned), days, UNASSIGNED_TEAM
                ),
            ))

        return GlobalCalendarViewSchema(
            start_date=start_date,
            end_date=end_date,
            view_type=request.view_type,
            days=self.generate_calendar_days(start_date, end_date),
            teams=teams,
        )

    # Rollups

    @staticmethod
    def get_employee_workload(start_date: date, end_date: date) -> dict[int, int]:
        rows = (
            Assignment.objects.active().in_range(start_date, end_date)
            .values("employee_id").annotate(count=Count("id"))
        )
        return {row["employee_id"]: row["count"] for row in rows}

    @staticmethod
    def get_daily_capacity_utilization(start_date: date, end_date: date) -> dict[date, int]:
        rows = (
            Assignment.objects.active().in_range(start_date, end_date)
            .values("assigned_date").annotate(count=Count("id"))
        )
        return {row["assigned_date"]: row["count"] for row in rows}

    @staticmethod
    def _calculate_gini_coefficient(values) -> float:
        """Calculate Gini coefficient for a list of values."""
        if len(values) < 2 or not any(values):
            return 0.0
        return float(gini.Gini(np.asarray(values, dtype=float)).g)

    @classmethod
    def get_workload_summary(cls, start_date: date, end_date: date) -> WorkloadSummarySchema:
        """Assignment counts per active employee and how evenly they are spread."""
        workload = cls.get_employee_workload(start_date, end_date)
        employee_ids = list(Employee.objects.filter(is_active=True).values_list("id", flat=True))
        counts = {employee_id: workload.get(employee_id, 0) for employee_id in employee_ids}
        total = sum(counts.values())

        slot_capacity = (
            len(employee_ids)
            * len(business_days_between(start_date, end_date).dates())
            * len(Slot)
            * max_tasks_per_slot()
        )
        utilization_rate = total / slot_capacity if slot_capacity else 0.0

        return WorkloadSummarySchema(
            start_date=start_date,
            end_date=end_date,
            total_assignments=total,
            employee_counts=counts,
            max_employee_load=max(counts.values(), default=0),
            utilization_rate=round(utilization_rate, 3),
            gini_coefficient=round(cls._calculate_gini_coefficient(list(counts.values())), 3),
        )

    @staticmethod
    def _open_task_assignments():
        return (
            Assignment.objects.active()
            .filter(task__due_date__isnull=False)
            .exclude(task__status=TaskStatus.DONE)
            .with_details()
            .in_placement_order()
        )

    def get_overdue_assignments(self, today: date | None = None) -> list[AssignmentTaskSchema]:
        today = today or date.today()
        assignments = self._open_task_assignments().filter(task__due_date__lt=today)
        # Listed outside of a slot, so each one is shown as a single-task slot.
        return [AssignmentTaskSchema.from_assignment(a, 1) for a in assignments]

    def get_upcoming_deadlines(self, days: int = 7, today: date | None = None) -> list[AssignmentTaskSchema]:
        today = today or date.today()
        assignments = self._open_task_assignments().filter(
            task__due_date__gte=today,
            task__due_date__lte=today + timedelta(days=days),
        )
        return [AssignmentTaskSchema.from_assignment(a, 1) for a in assignments]

    # Teams

    def _team_summaries(self, user_id: int, managed_only: bool) -> list[TeamSummarySchema]:
        teams = Team.objects.filter(is_active=True).annotate(member_count=Count("members")).order_by("name")
        summaries = []
        for team in teams:
            is_managed = self.authorization.manages_team(user_id, team.id)
            if managed_only and not is_managed:
                continue
            summaries.append(TeamSummarySchema(
                id=team.id,
                name=team.name,
                code=team.code,
                description=team.description,
                color=DEFAULT_TEAM_COLOR,
                member_count=team.member_count,
                is_managed=is_managed,
            ))
        return summaries

    def get_manager_teams(self, user_id: int) -> list[TeamSummarySchema]:
        return self._team_summaries(user_id, managed_only=True)

    def get_all_teams_with_managed_status(self, user_id: int) -> list[TeamSummarySchema]:
        return self._team_summaries(user_id, managed_only=False)

    def user_can_view_team(self, user_id: int, team_id: int) -> bool:
        return self.authorization.can_view_team(user_id, team_id)
