"""Taskboard: multi-tenant tasks with a merged calendar view."""

__version__ = "0.1.0"
