from django.conf import settings

DEFAULTS = {
    "MAX_TASKS_PER_SLOT": 4,
    "SLOT_HOURS": 4.0,
    "DEFAULT_TASK_ESTIMATED_HOURS": 4,
    "ALLOW_WEEKEND_ASSIGNMENTS": True,
    "SKIP_WEEKEND_WINDOW_START": False,
}


def scheduling_setting(name: str):
    """Read a key from ``settings.SCHEDULING``, falling back to the defaults."""
    overrides = getattr(settings, "SCHEDULING", {})
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
