"""
Prompt builders for the diagnostic agent.

The diagnosis prompt is the contract between the orchestrator and the agent:
it fixes the section headers that ``responder.diagnosis.parser`` looks for.
"""

from responder.integrations.logs.base import LogResult
from responder.registry.models import PagerDutyAlert, ServiceConfig

DIAGNOSIS_PROMPT = """# Incident Diagnosis Request

## Incident Details
- **Title**: {title}
- **Severity**: {urgency}
- **Service**: {service_name}
- **Triggered At**: {created_at}
- **PagerDuty URL**: {html_url}

## Alert Details
{alert_details}

## Error Logs
```
{logs}
```
{truncation_note}
## Stack Traces
{stack_traces}

## Repository
- **Repo**: {repo_owner}/{repo_name}
- **Default Branch**: {default_branch}

## Your Task

You are an expert incident responder. Analyze the logs and stack traces above, then:

1. **Identify the root cause** of this incident. Be specific about which code path is failing and why.
2. **Locate the affected source files** in this repository. Use the Glob and Grep tools to find them.
3. **Read the relevant code** to understand the context around the failing lines.
4. **Propose a specific fix** and show exactly what code changes are needed.

## Required Output Format

You MUST structure your final response EXACTLY as follows (use these exact headers):

### ROOT_CAUSE
One paragraph explaining the root cause.

### AFFECTED_FILES
- path/to/file1.ts
- path/to/file2.ts

### PROPOSED_CHANGES
For each file that needs changes:

#### FILE: path/to/file.ts
**Explanation**: Why this change fixes the issue.
```diff
- old line of code
+ new line of code
```

### RISK_ASSESSMENT
LOW | MEDIUM | HIGH
Justification for the risk level.

### ROLLBACK_PLAN
How to revert if the fix causes issues.

### CONFIDENCE
A number between 0 and 1 representing your confidence in this diagnosis.
"""

FIX_PROMPT = """# Apply Incident Fix

You previously diagnosed an incident and proposed changes. Now apply those changes.

## Previous Diagnosis
{diagnosis_output}

## Repository
- **Repo**: {repo_owner}/{repo_name}
- **Branch**: You are on a fix branch already.

## Your Task

Apply the proposed changes from the diagnosis above. For each file:
1. Read the current file content
2. Make the exact changes proposed
3. Verify the changes look correct

Do NOT make any changes beyond what was proposed in the diagnosis. Be precise.
"""


def _format_stack_traces(stack_traces: list[str]) -> str:
    if not stack_traces:
        return "_No stack traces found._"
    return "\n\n".join(
        f"### Stack Trace {i}\n```\n{trace}\n```" for i, trace in enumerate(stack_traces, start=1)
    )


def build_diagnosis_prompt(
    alert: PagerDutyAlert,
    logs: LogResult,
    service_config: ServiceConfig,
) -> str:
    """Build the read-only diagnosis prompt for an incident."""
    alert_details = "\n".join(f"- {detail}" for detail in alert.alert_details)
    truncation_note = (
        f"\n> Note: Logs were truncated. Showing {logs.raw_lines} of available lines.\n"
        if logs.truncated
        else ""
    )

    return DIAGNOSIS_PROMPT.format(
        title=alert.title,
        urgency=alert.urgency.upper(),
        service_name=alert.service.name,
        created_at=alert.created_at,
        html_url=alert.html_url,
        alert_details=alert_details or "_No additional details._",
        logs=logs.logs,
        truncation_note=truncation_note,
        stack_traces=_format_stack_traces(logs.stack_traces),
        repo_owner=service_config.repo_owner,
        repo_name=service_config.repo_name,
        default_branch=service_config.default_branch,
    )


def build_fix_prompt(diagnosis_output: str, service_config: ServiceConfig) -> str:
    """Build the prompt asking the agent to apply a previous diagnosis exactly."""
    return FIX_PROMPT.format(
        diagnosis_output=diagnosis_output,
        repo_owner=service_config.repo_owner,
        repo_name=service_config.repo_name,
    )
