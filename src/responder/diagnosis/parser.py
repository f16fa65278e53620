"""
Lenient parser for the diagnostic agent's output.

The agent is asked to answer in a fixed set of markdown sections (see
``responder.diagnosis.prompts``). Agents do not always comply, so parsing is
total: every field degrades to its default on its own, and a result is
returned for any input, including an empty string.
"""

import logging
import re
from collections.abc import Callable
from typing import Any

from responder.incidents.models import DiagnosisResult, ProposedChange

logger = logging.getLogger(__name__)

ROOT_CAUSE = "ROOT_CAUSE"
AFFECTED_FILES = "AFFECTED_FILES"
PROPOSED_CHANGES = "PROPOSED_CHANGES"
RISK_ASSESSMENT = "RISK_ASSESSMENT"
ROLLBACK_PLAN = "ROLLBACK_PLAN"
CONFIDENCE = "CONFIDENCE"

SECTION_NAMES = (
    ROOT_CAUSE,
    AFFECTED_FILES,
    PROPOSED_CHANGES,
    RISK_ASSESSMENT,
    ROLLBACK_PLAN,
    CONFIDENCE,
)

DEFAULT_RISK = "MEDIUM"
DEFAULT_CONFIDENCE = 0.5
UNPARSEABLE_CONFIDENCE = 0.1
UNPARSEABLE_ROOT_CAUSE = "Unable to parse structured diagnosis. Raw output preserved."

# Markdown headings of level 1-3. "#### FILE:" sub-blocks are level 4 and
# stay inside their section.
_HEADING = re.compile(r"^ {0,3}#{1,3}(?!#)\s*(?P<title>.*?)\s*$")
_BULLET = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+")
_FILE_MARKER = re.compile(
    r"^[ \t]*#{0,6}[ \t]*(?:\*\*)?FILE:(?:\*\*)?[ \t]*",
    re.IGNORECASE | re.MULTILINE,
)
_EXPLANATION = re.compile(
    r"(?:\*\*)?Explanation(?:\*\*)?\s*:\s*(?:\*\*)?\s*(?P<text>.*?)(?=```|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_DIFF_BLOCK = re.compile(r"```diff[^\n]*\n(?P<body>.*?)(?:```|\Z)", re.IGNORECASE | re.DOTALL)
_NUMBER = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def _section_name(title: str) -> str | None:
    normalized = re.sub(r"[\s-]+", "_", title.strip("*_:` ").upper())
    return normalized if normalized in SECTION_NAMES else None


def split_sections(text: str) -> dict[str, str]:
    """Split agent output into its named sections.

    A section starts at a heading naming it and runs until the next heading
    of level 1-3 or the end of the text. Only the first occurrence of each
    section is kept. Inside a fenced code block only a heading naming a known
    section counts, and it also closes the fence, so a block the agent left
    unterminated cannot swallow the sections after it.
    """
    sections: dict[str, str] = {}
    current: str | None = None
    buffer: list[str] = []
    in_fence = False

    def close() -> None:
        if current is not None and current not in sections:
            sections[current] = "\n".join(buffer).strip()

    for line in text.splitlines():
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            heading = None
        else:
            heading = _HEADING.match(line)

        name = _section_name(heading.group("title")) if heading else None
        if heading and (name or not in_fence):
            close()
            current = name
            buffer = []
            in_fence = False
        elif current is not None:
            buffer.append(line)

    close()
    return sections


def extract_affected_files(section: str) -> list[str]:
    """One path per line, bullets stripped; lines without a path separator are dropped."""
    files = []
    for line in section.splitlines():
        path = _BULLET.sub("", line).strip().strip("`").strip()
        if path and ("/" in path or "\\" in path):
            files.append(path)
    return files


def extract_proposed_changes(section: str) -> list[ProposedChange]:
    """Extract the ``FILE:`` sub-blocks of the proposed changes section."""
    changes = []
    # Anything before the first marker is preamble.
    for block in _FILE_MARKER.split(section)[1:]:
        first_line, _, rest = block.partition("\n")
        file_path = first_line.strip().strip("`*").strip()
        if not file_path or file_path.startswith("```"):
            continue

        explanation_match = _EXPLANATION.search(rest)
        explanation = explanation_match.group("text").strip() if explanation_match else ""

        diff_match = _DIFF_BLOCK.search(rest)
        diff = diff_match.group("body").strip("\n") if diff_match else ""

        changes.append(ProposedChange(file_path=file_path, diff=diff, explanation=explanation))
    return changes


def extract_risk(section: str) -> str:
    """Normalize the risk section to LOW, MEDIUM or HIGH by prefix."""
    text = section.strip().lstrip("*_`# ").upper()
    for level in ("HIGH", "LOW", "MEDIUM"):
        if text.startswith(level):
            return level
    return DEFAULT_RISK


def extract_confidence(section: str) -> float:
    """Parse the confidence section, clamped to [0, 1]. Accepts percentages."""
    text = section.strip().lstrip("*_` ")
    match = _NUMBER.match(text)
    if not match:
        return DEFAULT_CONFIDENCE

    value = float(match.group())
    if text[match.end():].lstrip().startswith("%"):
        value /= 100
    return min(1.0, max(0.0, value))


_EXTRACTORS: list[tuple[str, str, Callable[[str], Any]]] = [
    ("root_cause", ROOT_CAUSE, str.strip),
    ("affected_files", AFFECTED_FILES, extract_affected_files),
    ("proposed_changes", PROPOSED_CHANGES, extract_proposed_changes),
    ("risk_assessment", RISK_ASSESSMENT, extract_risk),
    ("rollback_plan", ROLLBACK_PLAN, str.strip),
    ("confidence", CONFIDENCE, extract_confidence),
]


def parse_diagnosis_output(raw_output: str | None) -> DiagnosisResult:
    """Parse the agent's raw output into a DiagnosisResult.

    This function never raises. A field that cannot be extracted keeps its
    default while the others are still parsed. When neither a root cause nor
    any proposed change could be found, the result is flagged as untrustworthy
    with a low confidence and a sentinel root cause.

    Args:
        raw_output: Text printed by the diagnostic agent.

    Returns:
        A well-formed DiagnosisResult that always carries the raw output.
    """
    text = raw_output or ""
    fields: dict[str, Any] = {}

    try:
        sections = split_sections(text)
    except Exception as e:
        logger.warning(f"Failed to split agent output into sections: {e}")
        sections = {}

    for field, section, extractor in _EXTRACTORS:
        try:
            fields[field] = extractor(sections.get(section, ""))
        except Exception as e:
            logger.warning(f"Failed to extract {section} from agent output, using default: {e}")

    if not fields.get("root_cause") and not fields.get("proposed_changes"):
        logger.warning("Agent output did not contain parseable diagnosis sections")
        fields["root_cause"] = UNPARSEABLE_ROOT_CAUSE
        fields["confidence"] = UNPARSEABLE_CONFIDENCE

    return DiagnosisResult(raw_output=text, **fields)
