"""Append-only project activity log."""

from hvaccrm.activity.logger import fetch_project_activities, log_activity

__all__ = ["fetch_project_activities", "log_activity"]
