import os
from pathlib import Path
from unittest import mock

from django.test import SimpleTestCase
from pydantic import ValidationError

from .config import PlannerSettings


class PlannerSettingsTest(SimpleTestCase):
    """Environment driven project configuration."""

    def load(self, **env):
        with mock.patch.dict(os.environ, env, clear=True):
            return PlannerSettings(_env_file=None)

    def test_defaults(self):
        config = self.load()

        self.assertFalse(config.debug)
        self.assertEqual(config.allowed_host_list, ["localhost", "127.0.0.1"])
        self.assertEqual(config.log_level, "INFO")
        self.assertTrue(config.scheduling()["ALLOW_WEEKEND_ASSIGNMENTS"])
        self.assertFalse(config.scheduling()["SKIP_WEEKEND_WINDOW_START"])
        self.assertEqual(config.database(Path("/srv/planner"))["NAME"], "/srv/planner/db.sqlite3")

    def test_environment_overrides(self):
        config = self.load(
            DJANGO_DEBUG="true",
            DJANGO_ALLOWED_HOSTS="planner.example.com, api.example.com",
            PLANNER_ALLOW_WEEKEND_ASSIGNMENTS="false",
            PLANNER_SKIP_WEEKEND_WINDOW_START="1",
            PLANNER_LOG_LEVEL="debug",
            PLANNER_LOG_FORMAT="json",
            PLANNER_DB_ENGINE="django.db.backends.postgresql",
            PLANNER_DB_NAME="planner",
        )

        self.assertTrue(config.debug)
        self.assertEqual(config.allowed_host_list, ["planner.example.com", "api.example.com"])
        self.assertEqual(
            config.scheduling()["ALLOW_WEEKEND_ASSIGNMENTS"], False
        )
        self.assertTrue(config.scheduling()["SKIP_WEEKEND_WINDOW_START"])
        self.assertEqual((config.log_level, config.log_format), ("DEBUG", "json"))
        self.assertEqual(config.database(Path("/srv/planner"))["NAME"], "planner")

    def test_invalid_values_are_rejected(self):
        with self.assertRaises(ValidationError):
            self.load(PLANNER_ALLOW_WEEKEND_ASSIGNMENTS="ture")

        with self.assertRaises(ValidationError):
            self.load(PLANNER_LOG_FORMAT="xml")
