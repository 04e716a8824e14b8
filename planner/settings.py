"""
Django settings for the planner project.

Everything deployment-specific comes from ``planner.config.PlannerSettings``.
"""
from pathlib import Path

from planner.config import PlannerSettings
from scheduling.observability import configure_logging

BASE_DIR = Path(__file__).resolve().parent.parent

config = PlannerSettings()

SECRET_KEY = config.secret_key

DEBUG = config.debug

ALLOWED_HOSTS = config.allowed_host_list

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "scheduling",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "planner.urls"

WSGI_APPLICATION = "planner.wsgi.application"

DATABASES = {
    "default": config.database(BASE_DIR),
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

LOGGING = configure_logging(config.log_level, config.log_format)

SCHEDULING = config.scheduling()
