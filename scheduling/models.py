from django.db import models


class Slot(models.TextChoices):
    MORNING   = "MORNING", "Morning"
    AFTERNOON = "AFTERNOON", "Afternoon"


class CalendarViewType(models.TextChoices):
    DAY    = "DAY", "Day"
    WEEK   = "WEEK", "Week"
    BIWEEK = "BIWEEK", "Bi-week"
    MONTH  = "MONTH", "Month"


class TaskPriority(models.TextChoices):
    LOW      = "LOW", "Low"
    MEDIUM   = "MEDIUM", "Medium"
    HIGH     = "HIGH", "High"
    CRITICAL = "CRITICAL", "Critical"


class TaskStatus(models.TextChoices):
    NOT_STARTED = "NOT_STARTED", "Not started"
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    DONE        = "DONE", "Done"
    ON_HOLD     = "ON_HOLD", "On hold"
    BLOCKED     = "BLOCKED", "Blocked"


class AbsenceType(models.TextChoices):
    ANNUAL_LEAVE = "ANNUAL_LEAVE", "Annual leave"
    SICK_DAY     = "SICK_DAY", "Sick day"
    BANK_HOLIDAY = "BANK_HOLIDAY", "Bank holiday"
    OTHER_LEAVE  = "OTHER_LEAVE", "Other leave"


class EmployeeRole(models.TextChoices):
    TEAM_MEMBER = "TEAM_MEMBER", "Team member"
    MANAGER     = "MANAGER", "Manager"
    ADMIN       = "ADMIN", "Admin"


class Client(models.Model):
    id        = models.BigAutoField(primary_key=True)
    code      = models.CharField(max_length=10, unique=True)
    name      = models.CharField(max_length=100)
    color     = models.CharField(max_length=7, default="#0066CC")
    is_active = models.BooleanField(default=True)


class Project(models.Model):
    id        = models.BigAutoField(primary_key=True)
    client    = models.ForeignKey(
        Client,
        on_delete=models.CASCADE,
        related_name="projects"
    )
    code      = models.CharField(max_length=20, blank=True, default="")
    name      = models.CharField(max_length=200)
    is_active = models.BooleanField(default=True)


class TaskType(models.Model):
    id        = models.BigAutoField(primary_key=True)
    name      = models.CharField(max_length=100, unique=True)
    color     = models.CharField(max_length=20, blank=True, default="")
    is_active = models.BooleanField(default=True)


class Team(models.Model):
    id          = models.BigAutoField(primary_key=True)
    name        = models.CharField(max_length=100)
    code        = models.CharField(max_length=10, blank=True, default="")
    description = models.CharField(max_length=500, blank=True, default="")
    is_active   = models.BooleanField(default=True)


class Employee(models.Model):
    id            = models.BigAutoField(primary_key=True)
    name          = models.CharField(max_length=100)
    position      = models.CharField(max_length=100, blank=True, default="")
    role          = models.CharField(
        max_length=20,
        choices=EmployeeRole.choices,
        default=EmployeeRole.TEAM_MEMBER
    )
    team          = models.ForeignKey(
        Team,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="members"
    )
    managed_teams = models.ManyToManyField(
        Team,
        blank=True,
        related_name="managers"
    )
    is_active     = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]


class Task(models.Model):
    id              = models.BigAutoField(primary_key=True)
    project         = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="tasks"
    )
    task_type       = models.ForeignKey(
        TaskType,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="tasks"
    )
    title           = models.CharField(max_length=200)
    description     = models.CharField(max_length=1000, blank=True, default="")
    priority        = models.CharField(
        max_length=10,
        choices=TaskPriority.choices,
        default=TaskPriority.MEDIUM
    )
    status          = models.CharField(
        max_length=20,
        choices=TaskStatus.choices,
        default=TaskStatus.NOT_STARTED
    )
    due_date        = models.DateField(null=True, blank=True)
    estimated_hours = models.PositiveSmallIntegerField(default=1)
    actual_hours    = models.PositiveSmallIntegerField(null=True, blank=True)
    is_active       = models.BooleanField(default=True)
    created_at      = models.DateTimeField(auto_now_add=True)
    updated_at      = models.DateTimeField(auto_now=True)


class AssignmentQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def in_slot(self, employee_id, assigned_date, slot):
        return self.filter(
            employee_id=employee_id,
            assigned_date=assigned_date,
            slot=slot
        )

    def in_range(self, start_date, end_date):
        return self.filter(
            assigned_date__gte=start_date,
            assigned_date__lte=end_date
        )

    def with_details(self):
        return self.select_related(
            "employee", "employee__team",
            "task", "task__task_type", "task__project", "task__project__client"
        )

    def in_placement_order(self):
        # Leftmost first; never re-sorted by priority or hours.
        return self.order_by("slot_order", "created_at", "id")


class Assignment(models.Model):
    id            = models.BigAutoField(primary_key=True)
    task          = models.ForeignKey(
        Task,
        on_delete=models.CASCADE,
        related_name="assignments"
    )
    employee      = models.ForeignKey(
        Employee,
        on_delete=models.CASCADE,
        related_name="assignments"
    )
    assigned_date = models.DateField()
    slot          = models.CharField(max_length=10, choices=Slot.choices)
    slot_order    = models.PositiveIntegerField(default=0)
    hours         = models.FloatField(null=True, blank=True)
    column_start  = models.PositiveSmallIntegerField(null=True, blank=True)
    notes         = models.CharField(max_length=500, blank=True, default="")
    absence_type  = models.CharField(
        max_length=20,
        choices=AbsenceType.choices,
        null=True, blank=True
    )
    is_active     = models.BooleanField(default=True)
    created_at    = models.DateTimeField(auto_now_add=True)
    updated_at    = models.DateTimeField(auto_now=True)

    objects = AssignmentQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["assigned_date"]),
            models.Index(fields=["employee", "assigned_date", "slot"]),
            models.Index(fields=["task"]),
        ]
