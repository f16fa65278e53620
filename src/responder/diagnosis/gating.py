"""Gate deciding whether a diagnosis may trigger automated remediation."""

from responder.incidents.models import DiagnosisResult

MIN_REMEDIATION_CONFIDENCE = 0.3


def should_remediate(
    diagnosis: DiagnosisResult,
    min_confidence: float = MIN_REMEDIATION_CONFIDENCE,
) -> bool:
    """Return True if the diagnosis is trustworthy enough to write code and open a PR.

    Requires a confidence of at least ``min_confidence`` and at least one
    proposed change. Risk level is not part of the decision; it is surfaced
    to the reviewer in Slack and in the pull request.
    """
    return diagnosis.confidence >= min_confidence and len(diagnosis.proposed_changes) > 0
