from datetime import date
from typing import Optional

from ninja import Field, Schema

from .hours import compute_hours
from .models import AbsenceType, CalendarViewType, Slot, TaskPriority, TaskStatus


class CalendarDaySchema(Schema):
    """One business day column in a calendar view."""
    date: date
    is_today: bool
    display_date: str
    day_name: str


class TaskTypeSchema(Schema):
    id: int
    name: str
    color: str = ""


class AssignmentTaskSchema(Schema):
    """A task placed in a slot, with everything the calendar needs to render it."""
    assignment_id: int
    task_id: int
    task_title: str
    task_type_name: str
    project_code: str
    project_name: str
    client_code: str
    client_name: str
    client_color: str
    assigned_date: date
    slot: Slot
    task_status: TaskStatus
    priority: TaskPriority
    due_date: Optional[date] = None
    notes: str = ""
    is_active: bool
    employee_id: int
    employee_name: str
    hours: float
    slot_order: int
    column_start: Optional[int] = None
    absence_type: Optional[AbsenceType] = None

    @classmethod
    def from_assignment(cls, assignment, slot_task_count: int = 1) -> "AssignmentTaskSchema":
        task = assignment.task
        project = task.project
        client = project.client
        employee_name = (assignment.employee.name or "").strip() or f"Employee {assignment.employee_id}"

        return cls(
            assignment_id=assignment.id,
            task_id=task.id,
            task_title=task.title,
            task_type_name=task.task_type.name if task.task_type else "Task",
            project_code=project.code,
            project_name=project.name,
            client_code=client.code,
            client_name=client.name,
            client_color=client.color,
            assigned_date=assignment.assigned_date,
            slot=assignment.slot,
            task_status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            notes=assignment.notes,
            is_active=assignment.is_active,
            employee_id=assignment.employee_id,
            employee_name=employee_name,
            hours=compute_hours(slot_task_count, assignment.hours),
            slot_order=assignment.slot_order,
            column_start=assignment.column_start,
            absence_type=assignment.absence_type,
        )


class TimeSlotAssignmentSchema(Schema):
    slot: Slot
    tasks: list[AssignmentTaskSchema]
    available_capacity: int
    is_overbooked: bool


class DayAssignmentSchema(Schema):
    date: date
    morning_slot: Optional[TimeSlotAssignmentSchema] = None
    afternoon_slot: Optional[TimeSlotAssignmentSchema] = None
    total_assignments: int
    has_conflicts: bool


class EmployeeScheduleSchema(Schema):
    employee_id: int
    employee_name: str
    role: str
    team: str
    team_id: Optional[int] = None
    is_active: bool
    day_assignments: list[DayAssignmentSchema]


class CalendarViewSchema(Schema):
    """Response schema for the calendar endpoints."""
    start_date: date
    end_date: date
    view_type: CalendarViewType
    days: list[CalendarDaySchema]
    employees: list[EmployeeScheduleSchema]
    task_types: list[TaskTypeSchema]


class TeamScheduleSchema(Schema):
    id: Optional[int] = None
    name: str
    code: str
    color: str
    is_managed: bool
    employees: list[EmployeeScheduleSchema]


class GlobalCalendarViewSchema(Schema):
    """Calendar view with employees grouped by team."""
    start_date: date
    end_date: date
    view_type: CalendarViewType
    days: list[CalendarDaySchema]
    teams: list[TeamScheduleSchema]


class TeamSummarySchema(Schema):
    id: int
    name: str
    code: str
    description: str
    color: str
    member_count: int
    is_managed: bool


class ScheduleRequestSchema(Schema):
    start_date: date
    view_type: CalendarViewType = CalendarViewType.WEEK
    employee_id: Optional[int] = None
    team_id: Optional[int] = None
    include_inactive: bool = False


class CreateAssignmentSchema(Schema):
    """
    Request to place a task in a slot.

    Either ``task_id`` names an existing task, or ``project_id`` and
    ``task_type_id`` describe a new task to create first.
    """
    task_id: Optional[int] = None
    employee_id: int
    assigned_date: date
    slot: Slot
    notes: str = Field("", max_length=500)
    hours: Optional[float] = Field(None, ge=0)
    column_start: Optional[int] = Field(None, ge=0, le=3)
    absence_type: Optional[AbsenceType] = None
    project_id: Optional[int] = None
    task_type_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None


class UpdateAssignmentSchema(Schema):
    """Sparse patch: only the fields sent by the client are applied."""
    task_id: Optional[int] = None
    employee_id: Optional[int] = None
    assigned_date: Optional[date] = None
    slot: Optional[Slot] = None
    notes: Optional[str] = Field(None, max_length=500)
    hours: Optional[float] = Field(None, ge=0)
    column_start: Optional[int] = Field(None, ge=0, le=3)
    absence_type: Optional[AbsenceType] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    status: Optional[TaskStatus] = None
    task_type_id: Optional[int] = None


class BulkUpdateAssignmentSchema(Schema):
    assignment_ids: list[int]
    updates: UpdateAssignmentSchema


class BulkAssignmentSchema(Schema):
    assignments: list[CreateAssignmentSchema]
    validate_conflicts: bool = True
    allow_overbooking: bool = False


class MoveAssignmentSchema(Schema):
    employee_id: int
    assigned_date: date
    slot: Slot


class CapacityResponseSchema(Schema):
    employee_id: int
    date: date
    slot: Slot
    current_assignments: int
    max_capacity: int
    is_available: bool
    is_overbooked: bool
    existing_tasks: list[AssignmentTaskSchema]


class ValidationResultSchema(Schema):
    is_valid: bool
    conflicts: list[str]


class WorkloadSummarySchema(Schema):
    """Schema for workload KPIs over a date range."""
    start_date: date
    end_date: date
    total_assignments: int
    employee_counts: dict[int, int]
    max_employee_load: int
    utilization_rate: float
    gini_coefficient: float


class ErrorSchema(Schema):
    type: str
    message: str
    details: dict
