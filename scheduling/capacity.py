from collections import defaultdict
from datetime import date

from django.db.models import Count

from .calendar_window import business_days_between
from .conf import scheduling_setting
from .models import Assignment, Slot
from .schemas import AssignmentTaskSchema, CapacityResponseSchema


def max_tasks_per_slot() -> int:
    return scheduling_setting("MAX_TASKS_PER_SLOT")


class CapacityService:
    """Count-based slot occupancy checks. Never raises for missing data."""

    @staticmethod
    def slot_count(employee_id: int, assigned_date: date, slot: str, exclude_id: int | None = None) -> int:
        queryset = Assignment.objects.active().in_slot(employee_id, assigned_date, slot)
        if exclude_id is not None:
            queryset = queryset.exclude(id=exclude_id)
        return queryset.count()

    @staticmethod
    def check_capacity(employee_id: int, assigned_date: date, slot: str) -> CapacityResponseSchema:
        existing = list(
            Assignment.objects.active()
            .in_slot(employee_id, assigned_date, slot)
            .with_details()
            .in_placement_order()
        )
        current_count = len(existing)
        max_capacity = max_tasks_per_slot()

        return CapacityResponseSchema(
            employee_id=employee_id,
            date=assigned_date,
            slot=slot,
            current_assignments=current_count,
            max_capacity=max_capacity,
            # Exactly at capacity is neither available nor overbooked.
            is_available=current_count < max_capacity,
            is_overbooked=current_count > max_capacity,
            existing_tasks=[
                AssignmentTaskSchema.from_assignment(a, current_count) for a in existing
            ],
        )

    @classmethod
    def capacity_for_range(cls, employee_id: int, start_date: date, end_date: date) -> list[CapacityResponseSchema]:
        """One capacity result per business day and slot."""
        return [
            cls.check_capacity(employee_id, day.date, slot)
            for day in business_days_between(start_date, end_date)
            for slot in Slot
        ]

    @staticmethod
    def availability_matrix(employee_id: int, start_date: date, end_date: date) -> dict[date, dict[str, bool]]:
        """Map each business day to ``{slot: has free capacity}``."""
        counts = defaultdict(int)
        rows = (
            Assignment.objects.active()
            .filter(employee_id=employee_id)
            .in_range(start_date, end_date)
            .values("assigned_date", "slot")
            .annotate(count=Count("id"))
        )
        for row in rows:
            counts[(row["assigned_date"], row["slot"])] += row["count"]

        max_capacity = max_tasks_per_slot()
        return {
            day.date: {
                slot.value: counts[(day.date, slot.value)] < max_capacity for slot in Slot
            }
            for day in business_days_between(start_date, end_date)
        }
