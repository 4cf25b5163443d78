"""Read-only financial reporting."""

from hvaccrm.reporting.financial import compute_financial_summary, fetch_project_financial_summary

__all__ = ["compute_financial_summary", "fetch_project_financial_summary"]
