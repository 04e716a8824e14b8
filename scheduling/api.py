from datetime import date

from django.http import HttpRequest
from ninja import NinjaAPI, Status, Swagger

from . import exceptions
from .authorization import RoleAuthorization
from .capacity import CapacityService
from .models import Assignment, CalendarViewType, EmployeeRole, Employee, Slot
from .schemas import (
    AssignmentTaskSchema, BulkAssignmentSchema, BulkUpdateAssignmentSchema, CalendarViewSchema,
    CapacityResponseSchema, CreateAssignmentSchema, ErrorSchema, GlobalCalendarViewSchema,
    MoveAssignmentSchema, ScheduleRequestSchema, TeamSummarySchema, UpdateAssignmentSchema,
    ValidationResultSchema, WorkloadSummarySchema
)
from .services import AssignmentService, ScheduleService

api = NinjaAPI(docs=Swagger(settings={"persistAuthorization": True}))

authorization = RoleAuthorization()
assignment_service = AssignmentService()
schedule_service = ScheduleService(authorization=authorization)

ERRORS = {400: ErrorSchema, 403: ErrorSchema, 404: ErrorSchema}


def _error_response(request, exc: exceptions.SchedulingError, status: int):
    return api.create_response(request, exc.to_dict(), status=status)


@api.exception_handler(exceptions.ValidationError)
def on_validation_error(request, exc):
    return _error_response(request, exc, 400)


@api.exception_handler(exceptions.PermissionDeniedError)
def on_permission_denied(request, exc):
    return _error_response(request, exc, 403)


@api.exception_handler(exceptions.NotFoundError)
def on_not_found(request, exc):
    return _error_response(request, exc, 404)


@api.exception_handler(exceptions.ConflictError)
def on_conflict(request, exc):
    return _error_response(request, exc, 409)


def current_user_id(request: HttpRequest) -> int:
    """The caller, as identified by the authentication layer in front of this API."""
    raw = request.headers.get("X-User-Id", "")
    if not raw.isdigit():
        raise exceptions.PermissionDeniedError("Missing or invalid X-User-Id header")
    return int(raw)


def require_manage(request: HttpRequest, *employee_ids: int) -> None:
    user_id = current_user_id(request)
    for employee_id in employee_ids:
        if not authorization.can_manage_employee(user_id, employee_id):
            raise exceptions.PermissionDeniedError(
                f"User {user_id} may not schedule employee {employee_id}",
                {"employee_id": employee_id},
            )


def active_assignment_employee(assignment_id: int) -> int:
    employee_id = (
        Assignment.objects.active().filter(id=assignment_id)
        .values_list("employee_id", flat=True).first()
    )
    if employee_id is None:
        raise exceptions.NotFoundError("Assignment", assignment_id)
    return employee_id


# Calendar views

@api.get("/schedule/calendar", response={200: CalendarViewSchema, **ERRORS})
def get_calendar_view(request: HttpRequest, start_date: date | None = None,
                      view_type: CalendarViewType = CalendarViewType.WEEK,
                      employee_id: int | None = None, team_id: int | None = None,
                      include_inactive: bool = False) -> CalendarViewSchema:
    """
    Calendar for all team members, one team, or one employee.

    Team members only ever see their own schedule.
    """
    user_id = current_user_id(request)
    user = Employee.objects.filter(id=user_id).first()
    if user is None or user.role == EmployeeRole.TEAM_MEMBER:
        if employee_id is not None and employee_id != user_id:
            raise exceptions.PermissionDeniedError("You can only view your own schedule")
        employee_id = user_id

    schedule_request = ScheduleRequestSchema(
        start_date=start_date or date.today(),
        view_type=view_type,
        employee_id=employee_id,
        team_id=team_id,
        include_inactive=include_inactive,
    )
    return schedule_service.get_calendar_view(schedule_request)


@api.get("/schedule/calendar/global", response={200: GlobalCalendarViewSchema, **ERRORS})
def get_global_calendar_view(request: HttpRequest, start_date: date | None = None,
                             view_type: CalendarViewType = CalendarViewType.WEEK,
                             include_inactive: bool = False) -> GlobalCalendarViewSchema:
    schedule_request = ScheduleRequestSchema(
        start_date=start_date or date.today(), view_type=view_type, include_inactive=include_inactive
    )
    return schedule_service.get_global_calendar_view(current_user_id(request), schedule_request)


@api.get("/schedule/calendar/managed", response={200: CalendarViewSchema, **ERRORS})
def get_managed_calendar_view(request: HttpRequest, start_date: date | None = None,
                              view_type: CalendarViewType = CalendarViewType.WEEK) -> CalendarViewSchema:
    schedule_request = ScheduleRequestSchema(start_date=start_date or date.today(), view_type=view_type)
    return schedule_service.get_managed_calendar_view(current_user_id(request), schedule_request)


@api.get("/schedule/employee/{int:employee_id}", response={200: CalendarViewSchema, **ERRORS})
def get_employee_schedule(request: HttpRequest, employee_id: int, start_date: date | None = None,
                          view_type: CalendarViewType = CalendarViewType.WEEK) -> CalendarViewSchema:
    return schedule_service.get_employee_schedule(employee_id, start_date or date.today(), view_type)


@api.get("/schedule/employee/{int:employee_id}/assignments", response=list[AssignmentTaskSchema])
def get_employee_assignments(request: HttpRequest, employee_id: int, start_date: date,
                             end_date: date) -> list[AssignmentTaskSchema]:
    return schedule_service.get_employee_assignments(employee_id, start_date, end_date)


@api.get("/schedule/team/{int:team_id}/calendar", response={200: CalendarViewSchema, **ERRORS})
def get_team_calendar_view(request: HttpRequest, team_id: int, start_date: date | None = None,
                           view_type: CalendarViewType = CalendarViewType.WEEK) -> CalendarViewSchema:
    user_id = current_user_id(request)
    if not schedule_service.user_can_view_team(user_id, team_id):
        raise exceptions.PermissionDeniedError(f"User {user_id} may not view team {team_id}")
    schedule_request = ScheduleRequestSchema(
        start_date=start_date or date.today(), view_type=view_type, team_id=team_id
    )
    return schedule_service.get_team_calendar_view(schedule_request)


# Assignments

@api.get("/schedule/assignments", response=list[AssignmentTaskSchema])
def get_assignments_by_date_range(request: HttpRequest, start_date: date, end_date: date,
                                  employee_id: int | None = None) -> list[AssignmentTaskSchema]:
    return schedule_service.get_assignments_by_date_range(start_date, end_date, employee_id)


@api.get("/schedule/assignments/{int:assignment_id}", response={200: AssignmentTaskSchema, **ERRORS})
def get_assignment(request: HttpRequest, assignment_id: int, include_inactive: bool = False) -> AssignmentTaskSchema:
    assignment = schedule_service.get_assignment(assignment_id, include_inactive)
    if assignment is None:
        raise exceptions.NotFoundError("Assignment", assignment_id)
    return assignment


@api.post("/schedule/assignments", response={201: AssignmentTaskSchema, **ERRORS})
def create_assignment(request: HttpRequest, payload: CreateAssignmentSchema):
    require_manage(request, payload.employee_id)
    return Status(201, assignment_service.create(payload))


@api.put("/schedule/assignments/{int:assignment_id}", response={200: AssignmentTaskSchema, **ERRORS})
def update_assignment(request: HttpRequest, assignment_id: int, payload: UpdateAssignmentSchema) -> AssignmentTaskSchema:
    employee_ids = [active_assignment_employee(assignment_id)]
    if payload.employee_id is not None:
        employee_ids.append(payload.employee_id)
    require_manage(request, *employee_ids)
    return assignment_service.update(assignment_id, payload)


@api.post("/schedule/assignments/{int:assignment_id}/move", response={200: AssignmentTaskSchema, **ERRORS})
def move_assignment(request: HttpRequest, assignment_id: int, payload: MoveAssignmentSchema) -> AssignmentTaskSchema:
    require_manage(request, active_assignment_employee(assignment_id), payload.employee_id)
    return assignment_service.move(assignment_id, payload.employee_id, payload.assigned_date, payload.slot)


@api.delete("/schedule/assignments/{int:assignment_id}", response={204: None, **ERRORS})
def delete_assignment(request: HttpRequest, assignment_id: int):
    require_manage(request, active_assignment_employee(assignment_id))
    if not assignment_service.delete(assignment_id):
        raise exceptions.NotFoundError("Assignment", assignment_id)
    return Status(204, None)


@api.post("/schedule/assignments/bulk", response={200: list[AssignmentTaskSchema], **ERRORS})
def create_bulk_assignments(request: HttpRequest, payload: BulkAssignmentSchema) -> list[AssignmentTaskSchema]:
    require_manage(request, *{spec.employee_id for spec in payload.assignments})
    return assignment_service.bulk_create(
        payload.assignments,
        allow_overbooking=payload.allow_overbooking,
        validate_conflicts=payload.validate_conflicts,
    )


@api.post("/schedule/assignments/bulk-update", response={200: list[AssignmentTaskSchema], **ERRORS})
def bulk_update_assignments(request: HttpRequest, payload: BulkUpdateAssignmentSchema) -> list[AssignmentTaskSchema]:
    employee_ids = set(
        Assignment.objects.active().filter(id__in=payload.assignment_ids)
        .values_list("employee_id", flat=True)
    )
    if payload.updates.employee_id is not None:
        employee_ids.add(payload.updates.employee_id)
    require_manage(request, *employee_ids)
    return assignment_service.bulk_update(payload.assignment_ids, payload.updates)


@api.post("/schedule/validate", response=ValidationResultSchema)
def validate_assignment(request: HttpRequest, payload: CreateAssignmentSchema) -> ValidationResultSchema:
    conflicts = assignment_service.get_conflicts(payload)
    return ValidationResultSchema(is_valid=not conflicts, conflicts=conflicts)


# Capacity

@api.get("/schedule/capacity/check", response=CapacityResponseSchema)
def check_capacity(request: HttpRequest, employee_id: int, date: date, slot: Slot) -> CapacityResponseSchema:
    return CapacityService.check_capacity(employee_id, date, slot)


@api.get("/schedule/capacity/employee/{int:employee_id}", response=list[CapacityResponseSchema])
def get_employee_capacity(request: HttpRequest, employee_id: int, start_date: date,
                          end_date: date) -> list[CapacityResponseSchema]:
    return CapacityService.capacity_for_range(employee_id, start_date, end_date)


@api.get("/schedule/availability/{int:employee_id}", response=dict[str, dict[str, bool]])
def get_availability_matrix(request: HttpRequest, employee_id: int, start_date: date, end_date: date):
    matrix = CapacityService.availability_matrix(employee_id, start_date, end_date)
    return {day.isoformat(): slots for day, slots in matrix.items()}


# Rollups

@api.get("/schedule/workload", response=dict[int, int])
def get_employee_workload(request: HttpRequest, start_date: date, end_date: date):
    return schedule_service.get_employee_workload(start_date, end_date)


@api.get("/schedule/workload/summary", response=WorkloadSummarySchema)
def get_workload_summary(request: HttpRequest, start_date: date, end_date: date) -> WorkloadSummarySchema:
    """
    Workload KPIs for a date range.

    - utilization_rate: assignments / (active employees x business days x 2 slots x slot capacity)
    - max_employee_load: highest assignment count for one employee
    - gini_coefficient: spread of assignments across employees (0 = perfectly even)
    """
    return schedule_service.get_workload_summary(start_date, end_date)


@api.get("/schedule/utilization", response=dict[str, int])
def get_daily_capacity_utilization(request: HttpRequest, start_date: date, end_date: date):
    utilization = schedule_service.get_daily_capacity_utilization(start_date, end_date)
    return {day.isoformat(): count for day, count in utilization.items()}


@api.get("/schedule/overdue", response=list[AssignmentTaskSchema])
def get_overdue_assignments(request: HttpRequest) -> list[AssignmentTaskSchema]:
    return schedule_service.get_overdue_assignments()


@api.get("/schedule/deadlines", response=list[AssignmentTaskSchema])
def get_upcoming_deadlines(request: HttpRequest, days: int = 7) -> list[AssignmentTaskSchema]:
    return schedule_service.get_upcoming_deadlines(days)


# Teams

@api.get("/schedule/teams", response={200: list[TeamSummarySchema], **ERRORS})
def get_manager_teams(request: HttpRequest) -> list[TeamSummarySchema]:
    return schedule_service.get_manager_teams(current_user_id(request))


@api.get("/schedule/teams/all", response={200: list[TeamSummarySchema], **ERRORS})
def get_all_teams(request: HttpRequest) -> list[TeamSummarySchema]:
    return schedule_service.get_all_teams_with_managed_status(current_user_id(request))
