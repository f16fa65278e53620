"""Tests for the diagnostic agent prompt builders."""

from responder.diagnosis.parser import SECTION_NAMES
from responder.diagnosis.prompts import build_diagnosis_prompt, build_fix_prompt
from responder.integrations.logs.base import LogResult
from responder.registry.models import AlertService, PagerDutyAlert, ServiceConfig

SERVICE = ServiceConfig(
    name="payment-service",
    pagerduty_service_id="PSVC1",
    repo_owner="acme",
    repo_name="payments",
    default_branch="release",
    slack_channel_id="C1",
)

ALERT = PagerDutyAlert(
    id="PINC1",
    title="Checkout failures {spike}",
    urgency="high",
    service=AlertService(id="PSVC1", name="payment-service"),
    created_at="2024-01-15T10:00:00Z",
    alert_details=['{"error_rate": 0.45}'],
)


class TestDiagnosisPrompt:
    """Tests for build_diagnosis_prompt."""

    def test_contains_incident_context(self) -> None:
        logs = LogResult(logs="[t] ERROR boom", stack_traces=["Trace A"], raw_lines=1)

        prompt = build_diagnosis_prompt(ALERT, logs, SERVICE)

        assert "Checkout failures {spike}" in prompt
        assert "**Severity**: HIGH" in prompt
        assert '- {"error_rate": 0.45}' in prompt
        assert "[t] ERROR boom" in prompt
        assert "Trace A" in prompt
        assert "acme/payments" in prompt
        assert "release" in prompt
        assert "truncated" not in prompt

    def test_requests_every_parsed_section(self) -> None:
        """Test that the output format asks for each section the parser reads."""
        prompt = build_diagnosis_prompt(ALERT, LogResult(), SERVICE)

        for section in SECTION_NAMES:
            assert f"### {section}" in prompt
        assert "#### FILE:" in prompt

    def test_truncation_note(self) -> None:
        logs = LogResult(logs="x", raw_lines=200, truncated=True)

        prompt = build_diagnosis_prompt(ALERT, logs, SERVICE)

        assert "Logs were truncated. Showing 200" in prompt

    def test_no_stack_traces(self) -> None:
        prompt = build_diagnosis_prompt(ALERT, LogResult(), SERVICE)

        assert "_No stack traces found._" in prompt


class TestFixPrompt:
    """Tests for build_fix_prompt."""

    def test_includes_diagnosis(self) -> None:
        prompt = build_fix_prompt("### ROOT_CAUSE\nNull customer {id}", SERVICE)

        assert "### ROOT_CAUSE\nNull customer {id}" in prompt
        assert "acme/payments" in prompt
        assert "Do NOT make any changes beyond what was proposed" in prompt
