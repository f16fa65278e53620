"""Adapters for PagerDuty, Slack, GitHub and log backends."""
