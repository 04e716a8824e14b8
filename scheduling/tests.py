import json
from datetime import date

from django.test import TestCase
from django.test.client import Client

from .models import Assignment, Client as ClientAccount
from .models import Employee, EmployeeRole, Project, Slot, Task, TaskType, Team
from .schemas import CreateAssignmentSchema


class SchedulingTestBase(TestCase):
    """Base test class with common setup and helper methods."""

    def setUp(self):
        """Set up common test data"""
        self.client = Client()
        self.monday = date(2024, 6, 3)
        self.tuesday = date(2024, 6, 4)
        self.saturday = date(2024, 6, 8)

        # Create teams
        self.platform = Team.objects.create(name="Platform", code="PLT")
        self.data_team = Team.objects.create(name="Data", code="DAT")

        # Create employees
        self.admin = Employee.objects.create(name="Ada Admin", role=EmployeeRole.ADMIN)
        self.manager = Employee.objects.create(
            name="Mia Manager", role=EmployeeRole.MANAGER, team=self.platform
        )
        self.manager.managed_teams.add(self.platform)
        self.alice = Employee.objects.create(name="Alice", position="Engineer", team=self.platform)
        self.bob = Employee.objects.create(name="Bob", team=self.data_team)
        self.carol = Employee.objects.create(name="Carol")

        # Create tasks
        self.account = ClientAccount.objects.create(code="ACME", name="Acme", color="#FF0000")
        self.project = Project.objects.create(client=self.account, code="WEB", name="Website")
        self.task_type = TaskType.objects.create(name="Development", color="#00FF00")
        self.task = self.create_task("Build login")

    def create_task(self, title="Task", **kwargs):
        return Task.objects.create(project=self.project, task_type=self.task_type, title=title, **kwargs)

    def spec(self, **overrides):
        """Helper to build a create request for Alice's Monday morning."""
        values = {
            "task_id": self.task.id,
            "employee_id": self.alice.id,
            "assigned_date": self.monday,
            "slot": Slot.MORNING,
        }
        values.update(overrides)
        return CreateAssignmentSchema(**values)

    def place(self, employee=None, assigned_date=None, slot=Slot.MORNING, task=None, count=1, **kwargs):
        """Insert assignments directly, bypassing capacity checks."""
        employee = employee or self.alice
        assigned_date = assigned_date or self.monday
        existing = Assignment.objects.filter(
            employee=employee, assigned_date=assigned_date, slot=slot, is_active=True
        ).count()
        return [
            Assignment.objects.create(
                task=task or self.task,
                employee=employee,
                assigned_date=assigned_date,
                slot=slot,
                slot_order=existing + i,
                **kwargs
            )
            for i in range(count)
        ]

    def api_get(self, path, params=None, user=None):
        headers = {"HTTP_X_USER_ID": str(user.id)} if user else {}
        return self.client.get(f"/api/schedule/{path}", params or {}, **headers)

    def api_send(self, method, path, payload=None, user=None):
        headers = {"HTTP_X_USER_ID": str(user.id)} if user else {}
        send = getattr(self.client, method)
        return send(
            f"/api/schedule/{path}",
            data=json.dumps(payload or {}),
            content_type="application/json",
            **headers
        )

    def create_payload(self, **overrides):
        payload = {
            "task_id": self.task.id,
            "employee_id": self.alice.id,
            "assigned_date": "2024-06-03",
            "slot": "MORNING",
        }
        payload.update(overrides)
        return payload


class AssignmentAPITest(SchedulingTestBase):
    """Create, read, update and delete through the HTTP API."""

    def test_manager_creates_assignment(self):
        response = self.api_send("post", "assignments", self.create_payload(notes="pairing"), user=self.manager)

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["employee_id"], self.alice.id)
        self.assertEqual(data["slot"], "MORNING")
        self.assertEqual(data["slot_order"], 0)
        self.assertEqual(data["hours"], 4.0)
        self.assertEqual(data["notes"], "pairing")
        self.assertEqual(data["client_code"], "ACME")
        self.assertEqual(data["task_type_name"], "Development")

    def test_missing_user_header_is_forbidden(self):
        response = self.api_send("post", "assignments", self.create_payload())

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["type"], "permission_denied")
        self.assertFalse(Assignment.objects.exists())

    def test_team_member_cannot_schedule_others(self):
        response = self.api_send(
            "post", "assignments", self.create_payload(employee_id=self.bob.id), user=self.alice
        )
        self.assertEqual(response.status_code, 403)

        response = self.api_send("post", "assignments", self.create_payload(), user=self.alice)
        self.assertEqual(response.status_code, 201)

    def test_full_slot_returns_conflicts(self):
        self.place(count=4)

        response = self.api_send("post", "assignments", self.create_payload(), user=self.admin)

        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertEqual(data["type"], "validation")
        self.assertEqual(
            data["details"]["conflicts"],
            ["Employee has no available capacity for Morning slot on 2024-06-03"]
        )
        self.assertEqual(Assignment.objects.count(), 4)

    def test_get_update_and_delete(self):
        assignment = self.place()[0]
        path = f"assignments/{assignment.id}"

        response = self.api_get(path)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["task_title"], "Build login")

        response = self.api_send("put", path, {"notes": "moved to review"}, user=self.manager)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["notes"], "moved to review")

        response = self.api_send("delete", path, user=self.manager)
        self.assertEqual(response.status_code, 204)

        self.assertEqual(self.api_get(path).status_code, 404)
        self.assertEqual(self.api_get(path, {"include_inactive": "true"}).status_code, 200)
        self.assertEqual(self.api_send("delete", path, user=self.manager).status_code, 404)

    def test_unknown_assignment_is_not_found(self):
        response = self.api_get("assignments/999")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["details"], {"entity": "Assignment", "id": 999})

    def test_list_assignments_in_range(self):
        self.place(count=2)
        self.place(assigned_date=date(2024, 6, 12))

        response = self.api_get("assignments", {"start_date": "2024-06-03", "end_date": "2024-06-07"})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual([row["slot_order"] for row in data], [0, 1])
        self.assertEqual([row["hours"] for row in data], [2.0, 2.0])

    def test_list_employee_assignments(self):
        self.place(count=2)
        self.place(employee=self.bob)

        response = self.api_get(
            f"employee/{self.alice.id}/assignments", {"start_date": "2024-06-03", "end_date": "2024-06-07"}
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual({row["employee_id"] for row in data}, {self.alice.id})
        self.assertEqual(len(data), 2)

    def test_move_assignment(self):
        assignment = self.place()[0]

        response = self.api_send(
            "post", f"assignments/{assignment.id}/move",
            {"employee_id": self.alice.id, "assigned_date": "2024-06-04", "slot": "AFTERNOON"},
            user=self.manager,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["assigned_date"], "2024-06-04")
        self.assertEqual(response.json()["slot"], "AFTERNOON")

    def test_bulk_create_and_bulk_update(self):
        payload = {
            "assignments": [
                self.create_payload(),
                self.create_payload(slot="AFTERNOON"),
            ],
        }
        response = self.api_send("post", "assignments/bulk", payload, user=self.manager)
        self.assertEqual(response.status_code, 200)
        ids = [row["assignment_id"] for row in response.json()]
        self.assertEqual(len(ids), 2)

        response = self.api_send(
            "post", "assignments/bulk-update",
            {"assignment_ids": ids, "updates": {"notes": "sprint 12"}},
            user=self.manager,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual({row["notes"] for row in response.json()}, {"sprint 12"})

    def test_validate_endpoint(self):
        self.place(count=4)

        response = self.api_send("post", "validate", self.create_payload())
        self.assertEqual(response.json()["is_valid"], False)

        response = self.api_send("post", "validate", self.create_payload(slot="AFTERNOON"))
        self.assertEqual(response.json(), {"is_valid": True, "conflicts": []})


class CapacityAPITest(SchedulingTestBase):
    """Capacity and availability endpoints."""

    def test_capacity_check(self):
        self.place(count=4)

        response = self.api_get(
            "capacity/check", {"employee_id": self.alice.id, "date": "2024-06-03", "slot": "MORNING"}
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["current_assignments"], 4)
        self.assertEqual(data["max_capacity"], 4)
        self.assertFalse(data["is_available"])
        self.assertFalse(data["is_overbooked"])
        self.assertEqual([task["hours"] for task in data["existing_tasks"]], [1.0] * 4)

    def test_availability_matrix_skips_weekends(self):
        self.place(count=4, slot=Slot.AFTERNOON)

        response = self.api_get(
            f"availability/{self.alice.id}", {"start_date": "2024-06-03", "end_date": "2024-06-09"}
        )

        data = response.json()
        self.assertEqual(len(data), 5)
        self.assertEqual(data["2024-06-03"], {"MORNING": True, "AFTERNOON": False})
        self.assertNotIn("2024-06-08", data)

    def test_employee_capacity_range(self):
        response = self.api_get(
            f"capacity/employee/{self.alice.id}", {"start_date": "2024-06-03", "end_date": "2024-06-04"}
        )

        self.assertEqual(len(response.json()), 4)


class CalendarAPITest(SchedulingTestBase):
    """Calendar endpoints and who may see what."""

    def test_team_member_sees_only_own_schedule(self):
        self.place(employee=self.bob)

        response = self.api_get("calendar", {"start_date": "2024-06-03"}, user=self.alice)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual([e["employee_id"] for e in data["employees"]], [self.alice.id])

        response = self.api_get("calendar", {"start_date": "2024-06-03", "employee_id": self.bob.id}, user=self.alice)
        self.assertEqual(response.status_code, 403)

    def test_manager_sees_all_team_members(self):
        response = self.api_get("calendar", {"start_date": "2024-06-03"}, user=self.manager)

        data = response.json()
        self.assertEqual(data["start_date"], "2024-06-03")
        self.assertEqual(data["end_date"], "2024-06-07")
        self.assertEqual([e["employee_name"] for e in data["employees"]], ["Alice", "Bob", "Carol"])
        self.assertEqual([d["day_name"] for d in data["days"]], ["Mon", "Tue", "Wed", "Thu", "Fri"])

    def test_team_calendar_requires_visibility(self):
        path = f"team/{self.platform.id}/calendar"

        self.assertEqual(self.api_get(path, {"start_date": "2024-06-03"}, user=self.bob).status_code, 403)

        response = self.api_get(path, {"start_date": "2024-06-03"}, user=self.alice)
        self.assertEqual(response.status_code, 200)
        self.assertEqual({e["team"] for e in response.json()["employees"]}, {"Platform"})

    def test_employee_schedule_not_found(self):
        response = self.api_get("employee/999", {"start_date": "2024-06-03"})

        self.assertEqual(response.status_code, 404)

    def test_global_and_team_listings(self):
        response = self.api_get("calendar/global", {"start_date": "2024-06-03"}, user=self.manager)
        self.assertEqual([t["name"] for t in response.json()["teams"]], ["Data", "Platform", "Unassigned"])

        response = self.api_get("teams", user=self.manager)
        self.assertEqual([t["name"] for t in response.json()], ["Platform"])

        response = self.api_get("teams/all", user=self.manager)
        self.assertEqual(
            {t["name"]: t["is_managed"] for t in response.json()},
            {"Data": False, "Platform": True}
        )


class RollupAPITest(SchedulingTestBase):
    """Workload and deadline endpoints."""

    def test_workload_endpoints(self):
        self.place(count=2)
        self.place(employee=self.bob, assigned_date=self.tuesday)

        params = {"start_date": "2024-06-03", "end_date": "2024-06-07"}

        workload = self.api_get("workload", params).json()
        self.assertEqual(workload, {str(self.alice.id): 2, str(self.bob.id): 1})

        utilization = self.api_get("utilization", params).json()
        self.assertEqual(utilization, {"2024-06-03": 2, "2024-06-04": 1})

        summary = self.api_get("workload/summary", params).json()
        self.assertEqual(summary["total_assignments"], 3)
        self.assertEqual(summary["max_employee_load"], 2)

    def test_deadline_endpoints_respond(self):
        self.assertEqual(self.api_get("overdue").status_code, 200)
        self.assertEqual(self.api_get("deadlines", {"days": 14}).status_code, 200)
