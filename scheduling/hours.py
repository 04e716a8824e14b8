from .conf import scheduling_setting


def compute_hours(slot_task_count: int, explicit_override: float | None = None) -> float:
    """
    Display hours for one task in a slot shared by ``slot_task_count`` tasks.

    A manual override always wins. Otherwise the slot budget is split evenly
    and rounded to two decimals. Capacity never depends on this value.
    """
    if explicit_override is not None:
        return explicit_override
    if slot_task_count <= 0:
        return 0
    slot_hours = float(scheduling_setting("SLOT_HOURS"))
    return round((slot_hours / slot_task_count) * 100) / 100
