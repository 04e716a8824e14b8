from datetime import date

import structlog
from django.test import override_settings
from structlog.testing import capture_logs

from .authorization import RoleAuthorization
from .capacity import CapacityService
from .exceptions import NotFoundError, ValidationError
from .models import Assignment, Slot, Task, TaskPriority, TaskStatus
from .schemas import ScheduleRequestSchema, UpdateAssignmentSchema
from .services import AssignmentService, ScheduleService
from .tests import SchedulingTestBase


class CapacityServiceTest(SchedulingTestBase):
    """Slot capacity boundaries."""

    def test_three_tasks_leave_room(self):
        self.place(count=3)

        result = CapacityService.check_capacity(self.alice.id, self.monday, Slot.MORNING)

        self.assertEqual(result.current_assignments, 3)
        self.assertTrue(result.is_available)
        self.assertFalse(result.is_overbooked)

    def test_four_tasks_fill_the_slot(self):
        self.place(count=4)

        result = CapacityService.check_capacity(self.alice.id, self.monday, Slot.MORNING)

        self.assertFalse(result.is_available)
        self.assertFalse(result.is_overbooked)

    def test_five_tasks_are_overbooked(self):
        self.place(count=5)

        result = CapacityService.check_capacity(self.alice.id, self.monday, Slot.MORNING)

        self.assertFalse(result.is_available)
        self.assertTrue(result.is_overbooked)
        self.assertEqual([t.hours for t in result.existing_tasks], [0.8] * 5)

    def test_inactive_assignments_do_not_count(self):
        self.place(count=4, is_active=False)

        self.assertEqual(CapacityService.slot_count(self.alice.id, self.monday, Slot.MORNING), 0)
        self.assertTrue(CapacityService.check_capacity(self.alice.id, self.monday, Slot.MORNING).is_available)

    @override_settings(SCHEDULING={"MAX_TASKS_PER_SLOT": 2})
    def test_capacity_follows_settings(self):
        self.place(count=2)

        result = CapacityService.check_capacity(self.alice.id, self.monday, Slot.MORNING)

        self.assertEqual(result.max_capacity, 2)
        self.assertFalse(result.is_available)


class AssignmentCreateTest(SchedulingTestBase):
    """Placement, validation and slot ordering."""

    def setUp(self):
        super().setUp()
        self.service = AssignmentService()

    def test_slot_order_increments(self):
        created = [self.service.create(self.spec()) for _ in range(3)]

        self.assertEqual([a.slot_order for a in created], [0, 1, 2])

    def test_fifth_assignment_is_rejected(self):
        for _ in range(4):
            self.service.create(self.spec())

        with self.assertRaises(ValidationError) as ctx:
            self.service.create(self.spec())

        self.assertEqual(
            ctx.exception.conflicts,
            ["Employee has no available capacity for Morning slot on 2024-06-03"]
        )
        self.assertEqual(Assignment.objects.count(), 4)

    def test_unknown_employee_and_inactive_task(self):
        inactive = self.create_task("Archived", is_active=False)

        conflicts = self.service.get_conflicts(self.spec(employee_id=999, task_id=inactive.id))

        self.assertIn("Employee not found", conflicts)
        self.assertIn("Task not found or inactive", conflicts)
        self.assertFalse(self.service.validate(self.spec(task_id=inactive.id)))
        self.assertTrue(self.service.validate(self.spec()))

    def test_create_with_new_task(self):
        result = self.service.create(self.spec(
            task_id=None, project_id=self.project.id, task_type_id=self.task_type.id, title="Spike"
        ))

        task = Task.objects.get(id=result.task_id)
        self.assertEqual(task.title, "Spike")
        self.assertEqual(task.priority, TaskPriority.MEDIUM)
        self.assertEqual(task.status, TaskStatus.NOT_STARTED)
        self.assertEqual(task.estimated_hours, 4)

    def test_new_task_with_unknown_project_creates_nothing(self):
        task_count = Task.objects.count()

        with self.assertRaises(ValidationError) as ctx:
            self.service.create(self.spec(task_id=None, project_id=999, task_type_id=self.task_type.id))

        self.assertEqual(ctx.exception.conflicts, ["Project not found"])
        self.assertEqual(Task.objects.count(), task_count)

    def test_weekends_allowed_by_default(self):
        result = self.service.create(self.spec(assigned_date=self.saturday))

        self.assertEqual(result.assigned_date, self.saturday)

    @override_settings(SCHEDULING={"ALLOW_WEEKEND_ASSIGNMENTS": False})
    def test_weekends_can_be_blocked(self):
        with self.assertRaises(ValidationError) as ctx:
            self.service.create(self.spec(assigned_date=self.saturday))

        self.assertEqual(ctx.exception.conflicts, ["Assignments on weekends are not allowed"])

    def test_availability_helper(self):
        self.place(count=4)

        self.assertFalse(self.service.validate_employee_availability(self.alice.id, self.monday, Slot.MORNING))
        self.assertTrue(self.service.validate_employee_availability(self.alice.id, self.monday, Slot.AFTERNOON))

    def test_create_is_logged(self):
        with capture_logs() as logs:
            service = AssignmentService(logger=structlog.get_logger("scheduling.test"))
            service.create(self.spec())

        events = [entry["event"] for entry in logs]
        self.assertIn("assignment.create.start", events)
        self.assertIn("assignment.create.done", events)


class AssignmentUpdateTest(SchedulingTestBase):
    """Sparse patches, task sharing and soft deletes."""

    def setUp(self):
        super().setUp()
        self.service = AssignmentService()
        self.first, self.second, self.third = (self.service.create(self.spec()) for _ in range(3))

    def test_notes_edit_keeps_order(self):
        self.service.update(self.first.assignment_id, UpdateAssignmentSchema(notes="edited"))

        listed = ScheduleService().get_assignments_by_date_range(self.monday, self.monday, self.alice.id)
        self.assertEqual(
            [a.assignment_id for a in listed],
            [self.first.assignment_id, self.second.assignment_id, self.third.assignment_id]
        )
        self.assertEqual([a.slot_order for a in listed], [0, 1, 2])
        self.assertEqual(listed[0].notes, "edited")

    def test_hours_override_and_clear(self):
        updated = self.service.update(self.first.assignment_id, UpdateAssignmentSchema(hours=2.5))
        self.assertEqual(updated.hours, 2.5)

        # Unset fields are left alone.
        updated = self.service.update(self.first.assignment_id, UpdateAssignmentSchema(notes="x"))
        self.assertEqual(updated.hours, 2.5)

        updated = self.service.update(self.first.assignment_id, UpdateAssignmentSchema(hours=None))
        self.assertEqual(updated.hours, 1.33)

    def test_update_changes_shared_task_in_place(self):
        self.service.update(self.first.assignment_id, UpdateAssignmentSchema(status=TaskStatus.IN_PROGRESS))

        second = ScheduleService.get_assignment(self.second.assignment_id)
        self.assertEqual(second.task_id, self.task.id)
        self.assertEqual(second.task_status, TaskStatus.IN_PROGRESS)

    def test_update_unknown_assignment(self):
        with self.assertRaises(NotFoundError):
            self.service.update(999, UpdateAssignmentSchema(notes="x"))

    def test_bulk_update_forks_shared_task(self):
        result = self.service.bulk_update(
            [self.first.assignment_id], UpdateAssignmentSchema(priority=TaskPriority.HIGH)
        )

        forked_task_id = result[0].task_id
        self.assertNotEqual(forked_task_id, self.task.id)
        self.assertEqual(result[0].priority, TaskPriority.HIGH)

        self.task.refresh_from_db()
        self.assertEqual(self.task.priority, TaskPriority.MEDIUM)
        self.assertEqual(ScheduleService.get_assignment(self.second.assignment_id).priority, TaskPriority.MEDIUM)

        # The fork is no longer shared, so the next change is made in place.
        result = self.service.bulk_update(
            [self.first.assignment_id], UpdateAssignmentSchema(priority=TaskPriority.LOW)
        )
        self.assertEqual(result[0].task_id, forked_task_id)
        self.assertEqual(Task.objects.get(id=forked_task_id).priority, TaskPriority.LOW)

    def test_bulk_update_in_place_once_sibling_is_sole_holder(self):
        self.service.delete(self.third.assignment_id)

        forked = self.service.bulk_update(
            [self.first.assignment_id], UpdateAssignmentSchema(priority=TaskPriority.HIGH)
        )[0]
        self.assertNotEqual(forked.task_id, self.task.id)

        # Only the second assignment still holds the original task.
        result = self.service.bulk_update(
            [self.second.assignment_id], UpdateAssignmentSchema(priority=TaskPriority.CRITICAL)
        )[0]
        self.assertEqual(result.task_id, self.task.id)
        self.task.refresh_from_db()
        self.assertEqual(self.task.priority, TaskPriority.CRITICAL)
        self.assertEqual(Task.objects.get(id=forked.task_id).priority, TaskPriority.HIGH)

    def test_update_rejects_inactive_task(self):
        archived = self.create_task("Archived", is_active=False)

        with self.assertRaises(NotFoundError):
            self.service.update(self.first.assignment_id, UpdateAssignmentSchema(task_id=archived.id))
        with self.assertRaises(NotFoundError):
            self.service.bulk_update([self.first.assignment_id], UpdateAssignmentSchema(task_id=archived.id))

        self.assertEqual(ScheduleService.get_assignment(self.first.assignment_id).task_id, self.task.id)

    def test_slot_change_by_update_keeps_slot_order(self):
        afternoon = self.service.create(self.spec(slot=Slot.AFTERNOON))

        updated = self.service.update(afternoon.assignment_id, UpdateAssignmentSchema(slot=Slot.MORNING))

        self.assertEqual(updated.slot, Slot.MORNING)
        self.assertEqual(updated.slot_order, 0)
        listed = ScheduleService().get_assignments_by_date_range(self.monday, self.monday, self.alice.id)
        self.assertEqual(
            [a.assignment_id for a in listed],
            [self.first.assignment_id, afternoon.assignment_id,
             self.second.assignment_id, self.third.assignment_id]
        )

    def test_bulk_update_without_matches(self):
        with self.assertRaises(NotFoundError):
            self.service.bulk_update([999], UpdateAssignmentSchema(notes="x"))

    def test_soft_delete(self):
        self.assertTrue(self.service.delete(self.second.assignment_id))

        schedule = ScheduleService()
        listed = schedule.get_assignments_by_date_range(self.monday, self.monday)
        self.assertEqual([a.slot_order for a in listed], [0, 2])
        self.assertEqual([a.hours for a in listed], [2.0, 2.0])
        self.assertEqual(CapacityService.slot_count(self.alice.id, self.monday, Slot.MORNING), 2)

        self.assertIsNone(schedule.get_assignment(self.second.assignment_id))
        deleted = schedule.get_assignment(self.second.assignment_id, include_inactive=True)
        self.assertFalse(deleted.is_active)

        self.assertFalse(self.service.delete(self.second.assignment_id))
        self.assertFalse(self.service.delete(999))

        with self.assertRaises(NotFoundError):
            self.service.update(self.second.assignment_id, UpdateAssignmentSchema(notes="x"))

    def test_new_assignment_goes_after_deleted_gap(self):
        self.service.delete(self.third.assignment_id)
        self.service.delete(self.second.assignment_id)

        created = self.service.create(self.spec())

        self.assertEqual(created.slot_order, 1)


class AssignmentBulkCreateTest(SchedulingTestBase):
    """Bulk placement modes."""

    def setUp(self):
        super().setUp()
        self.service = AssignmentService()
        self.place(count=3)

    def test_strict_mode_rolls_back(self):
        with self.assertRaises(ValidationError):
            self.service.bulk_create([self.spec(), self.spec()])

        self.assertEqual(Assignment.objects.count(), 3)

    def test_overbooking_mode_skips_full_slots(self):
        created = self.service.bulk_create(
            [self.spec(), self.spec(), self.spec(slot=Slot.AFTERNOON)], allow_overbooking=True
        )

        self.assertEqual(len(created), 2)
        self.assertEqual(CapacityService.slot_count(self.alice.id, self.monday, Slot.MORNING), 4)
        self.assertEqual(CapacityService.slot_count(self.alice.id, self.monday, Slot.AFTERNOON), 1)

    def test_prevalidation_reports_task(self):
        with self.assertRaises(ValidationError) as ctx:
            self.service.bulk_create([self.spec(employee_id=999)])

        self.assertEqual(ctx.exception.message, f"Assignment validation failed for task {self.task.id}")

    def test_without_prevalidation(self):
        with self.assertRaises(ValidationError):
            self.service.bulk_create([self.spec(), self.spec()], validate_conflicts=False)

        self.assertEqual(Assignment.objects.count(), 3)


class AssignmentMoveTest(SchedulingTestBase):
    """Moving assignments between slots."""

    def setUp(self):
        super().setUp()
        self.service = AssignmentService()
        self.moving = self.place(count=2)[1]

    def test_move_to_end_of_destination(self):
        self.place(employee=self.bob, assigned_date=self.tuesday, slot=Slot.AFTERNOON)

        result = self.service.move(self.moving.id, self.bob.id, self.tuesday, Slot.AFTERNOON)

        self.assertEqual(result.employee_id, self.bob.id)
        self.assertEqual(result.slot_order, 1)
        self.assertEqual(CapacityService.slot_count(self.alice.id, self.monday, Slot.MORNING), 1)

    def test_move_into_full_slot(self):
        self.place(assigned_date=self.tuesday, count=4)

        with self.assertRaises(ValidationError):
            self.service.move(self.moving.id, self.alice.id, self.tuesday, Slot.MORNING)

        self.moving.refresh_from_db()
        self.assertEqual(self.moving.assigned_date, self.monday)

    def test_move_within_same_full_slot(self):
        self.place(count=2)

        result = self.service.move(self.moving.id, self.alice.id, self.monday, Slot.MORNING)

        self.assertEqual(result.slot_order, 1)


class ScheduleViewTest(SchedulingTestBase):
    """Calendar view building."""

    def setUp(self):
        super().setUp()
        self.schedule = ScheduleService()

    def week(self, **kwargs):
        return ScheduleRequestSchema(start_date=self.monday, **kwargs)

    def test_week_view_shape(self):
        view = self.schedule.get_calendar_view(self.week())

        self.assertEqual(view.end_date, date(2024, 6, 7))
        self.assertEqual(len(view.days), 5)
        self.assertEqual([e.employee_name for e in view.employees], ["Alice", "Bob", "Carol"])
        self.assertEqual([t.name for t in view.task_types], ["Development"])

        alice = view.employees[0]
        self.assertEqual(alice.team, "Platform")
        self.assertEqual(alice.role, "Engineer")
        self.assertEqual(view.employees[2].team, "Unassigned")
        self.assertIsNone(alice.day_assignments[0].morning_slot)

    def test_slot_contents_keep_placement_order(self):
        urgent = self.create_task("Urgent", priority=TaskPriority.CRITICAL)
        self.place(count=1)
        self.place(task=urgent)

        view = self.schedule.get_calendar_view(self.week(employee_id=self.alice.id))

        morning = view.employees[0].day_assignments[0].morning_slot
        self.assertEqual([t.task_title for t in morning.tasks], ["Build login", "Urgent"])
        self.assertEqual(morning.available_capacity, 2)
        self.assertFalse(morning.is_overbooked)

    def test_overbooked_slot_is_flagged(self):
        self.place(count=5)

        view = self.schedule.get_calendar_view(self.week(employee_id=self.alice.id))

        monday = view.employees[0].day_assignments[0]
        self.assertTrue(monday.has_conflicts)
        self.assertEqual(monday.total_assignments, 5)
        self.assertTrue(monday.morning_slot.is_overbooked)
        self.assertEqual(monday.morning_slot.available_capacity, 0)

    def test_inactive_employees_are_optional(self):
        self.carol.is_active = False
        self.carol.save()

        self.assertEqual(len(self.schedule.get_calendar_view(self.week()).employees), 2)
        self.assertEqual(len(self.schedule.get_calendar_view(self.week(include_inactive=True)).employees), 3)

    def test_team_view_uses_team_name(self):
        view = self.schedule.get_team_calendar_view(self.week(team_id=self.platform.id))
        self.assertEqual([e.employee_name for e in view.employees], ["Alice"])

        with self.assertRaises(NotFoundError):
            self.schedule.get_team_calendar_view(self.week(team_id=999))

    def test_managed_view(self):
        view = self.schedule.get_managed_calendar_view(self.manager.id, self.week())

        self.assertEqual([e.employee_name for e in view.employees], ["Alice", "Mia Manager"])

    def test_global_view_groups_by_team(self):
        self.place(employee=self.carol)

        view = self.schedule.get_global_calendar_view(self.manager.id, self.week())

        self.assertEqual([t.name for t in view.teams], ["Data", "Platform", "Unassigned"])
        self.assertEqual([t.is_managed for t in view.teams], [False, True, False])
        unassigned = view.teams[-1]
        self.assertIsNone(unassigned.id)
        self.assertEqual(unassigned.employees[0].day_assignments[0].total_assignments, 1)


class RollupTest(SchedulingTestBase):
    """Workload and deadline rollups."""

    def setUp(self):
        super().setUp()
        self.schedule = ScheduleService()

    def test_workload_summary(self):
        self.place(count=2)

        summary = self.schedule.get_workload_summary(self.monday, date(2024, 6, 7))

        self.assertEqual(summary.total_assignments, 2)
        self.assertEqual(summary.max_employee_load, 2)
        self.assertEqual(summary.employee_counts[self.bob.id], 0)
        self.assertEqual(summary.utilization_rate, 0.01)
        self.assertAlmostEqual(summary.gini_coefficient, 0.8, places=3)

    def test_workload_summary_ignores_inactive_employees(self):
        self.place(count=2)
        self.place(employee=self.bob, assigned_date=self.tuesday)
        self.bob.is_active = False
        self.bob.save()

        summary = self.schedule.get_workload_summary(self.monday, date(2024, 6, 7))

        self.assertNotIn(self.bob.id, summary.employee_counts)
        self.assertEqual(summary.total_assignments, sum(summary.employee_counts.values()))
        self.assertEqual(summary.total_assignments, 2)
        # 2 / (4 active employees x 5 days x 2 slots x 4)
        self.assertEqual(summary.utilization_rate, round(2 / 160, 3))

    def test_even_workload_has_zero_gini(self):
        self.assertEqual(self.schedule._calculate_gini_coefficient([2, 2, 2]), 0.0)
        self.assertEqual(self.schedule._calculate_gini_coefficient([0, 0]), 0.0)
        self.assertEqual(self.schedule._calculate_gini_coefficient([3]), 0.0)

    def test_overdue_and_upcoming(self):
        late = self.create_task("Late", due_date=date(2024, 6, 1))
        finished = self.create_task("Finished", due_date=date(2024, 6, 1), status=TaskStatus.DONE)
        soon = self.create_task("Soon", due_date=date(2024, 6, 10))
        self.place(task=late)
        self.place(task=finished)
        self.place(task=soon, slot=Slot.AFTERNOON)

        today = date(2024, 6, 5)
        overdue = self.schedule.get_overdue_assignments(today=today)
        upcoming = self.schedule.get_upcoming_deadlines(days=7, today=today)

        self.assertEqual([a.task_title for a in overdue], ["Late"])
        self.assertEqual(overdue[0].hours, 4.0)
        self.assertEqual([a.task_title for a in upcoming], ["Soon"])
        self.assertEqual(self.schedule.get_upcoming_deadlines(days=2, today=today), [])


class AuthorizationTest(SchedulingTestBase):
    """Role based scheduling permissions."""

    def setUp(self):
        super().setUp()
        self.authorization = RoleAuthorization()

    def test_can_manage_employee(self):
        self.assertTrue(self.authorization.can_manage_employee(self.admin.id, self.bob.id))
        self.assertTrue(self.authorization.can_manage_employee(self.manager.id, self.alice.id))
        self.assertTrue(self.authorization.can_manage_employee(self.manager.id, self.manager.id))
        self.assertFalse(self.authorization.can_manage_employee(self.manager.id, self.bob.id))
        self.assertTrue(self.authorization.can_manage_employee(self.alice.id, self.alice.id))
        self.assertFalse(self.authorization.can_manage_employee(self.alice.id, self.bob.id))
        self.assertFalse(self.authorization.can_manage_employee(999, self.alice.id))

    def test_team_visibility(self):
        self.assertTrue(self.authorization.can_view_team(self.manager.id, self.data_team.id))
        self.assertTrue(self.authorization.can_view_team(self.alice.id, self.platform.id))
        self.assertFalse(self.authorization.can_view_team(self.alice.id, self.data_team.id))

    def test_team_summaries(self):
        schedule = ScheduleService(authorization=self.authorization)

        managed = schedule.get_manager_teams(self.manager.id)
        self.assertEqual([(t.name, t.member_count) for t in managed], [("Platform", 2)])

        everything = schedule.get_all_teams_with_managed_status(self.admin.id)
        self.assertEqual([(t.name, t.is_managed) for t in everything], [("Data", True), ("Platform", True)])
