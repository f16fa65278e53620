"""
Incident Responder - automated incident diagnosis and remediation.

Receives PagerDuty alerts, fetches logs, delegates root cause analysis and
fix generation to an external coding agent CLI, opens a draft GitHub pull
request when the diagnosis is trustworthy enough, and keeps the on-call
engineer informed in Slack.
"""

__version__ = "0.1.0"
