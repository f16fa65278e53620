"""Tests for the lenient diagnosis output parser."""

import pytest

from responder.diagnosis.gating import should_remediate
from responder.diagnosis.parser import (
    UNPARSEABLE_CONFIDENCE,
    UNPARSEABLE_ROOT_CAUSE,
    extract_affected_files,
    extract_confidence,
    extract_proposed_changes,
    extract_risk,
    parse_diagnosis_output,
    split_sections,
)

FULL_OUTPUT = """I looked at the logs and the payment processor code.

### ROOT_CAUSE
The payment processor dereferences a null customer object when the cache misses.

### AFFECTED_FILES
- src/payments/processor.ts
- `src/cache/customer.ts`
- not a path

### PROPOSED_CHANGES
Here are the changes:

#### FILE: src/payments/processor.ts
**Explanation**: Guard against a missing customer.
```diff
- const id = customer.id;
+ const id = customer?.id;
```

#### FILE: src/cache/customer.ts
Explanation: Return null explicitly on a cache miss.
```diff
- return undefined;
+ return null;
```

### RISK_ASSESSMENT
LOW - the change only adds a null check.

### ROLLBACK_PLAN
Revert the commit.

### CONFIDENCE
0.85
"""


class TestParseDiagnosisOutput:
    """Tests for parse_diagnosis_output."""

    def test_full_output(self) -> None:
        """Test parsing output that follows the requested format."""
        result = parse_diagnosis_output(FULL_OUTPUT)

        assert result.root_cause == (
            "The payment processor dereferences a null customer object when the cache misses."
        )
        assert result.affected_files == ["src/payments/processor.ts", "src/cache/customer.ts"]
        assert result.risk_assessment == "LOW"
        assert result.rollback_plan == "Revert the commit."
        assert result.confidence == 0.85
        assert result.raw_output == FULL_OUTPUT

        assert len(result.proposed_changes) == 2
        first, second = result.proposed_changes
        assert first.file_path == "src/payments/processor.ts"
        assert first.explanation == "Guard against a missing customer."
        assert first.diff == "- const id = customer.id;\n+ const id = customer?.id;"
        assert second.file_path == "src/cache/customer.ts"
        assert second.explanation == "Return null explicitly on a cache miss."
        assert second.diff == "- return undefined;\n+ return null;"

    def test_root_cause_and_confidence(self) -> None:
        """Test the minimal two-section output."""
        result = parse_diagnosis_output("### ROOT_CAUSE\nDisk full.\n### CONFIDENCE\n0.8")

        assert result.root_cause == "Disk full."
        assert result.confidence == 0.8

    def test_confidence_clamped(self) -> None:
        """Test that out-of-range confidence is clamped to [0, 1]."""
        high = parse_diagnosis_output("### ROOT_CAUSE\nDisk full.\n### CONFIDENCE\n1.5")
        low = parse_diagnosis_output("### ROOT_CAUSE\nDisk full.\n### CONFIDENCE\n-0.2")

        assert high.confidence == 1.0
        assert low.confidence == 0.0

    def test_unparseable_confidence_defaults(self) -> None:
        """Test that a non-numeric confidence falls back to 0.5."""
        result = parse_diagnosis_output("### ROOT_CAUSE\nDisk full.\n### CONFIDENCE\nxyz")

        assert result.confidence == 0.5

    def test_missing_sections_use_defaults(self) -> None:
        """Test that each missing section keeps its own default."""
        result = parse_diagnosis_output("### ROOT_CAUSE\nDisk full.")

        assert result.affected_files == []
        assert result.proposed_changes == []
        assert result.risk_assessment == "MEDIUM"
        assert result.rollback_plan == ""
        assert result.confidence == 0.5

    def test_no_recognized_headers(self) -> None:
        """Test the degenerate fallback for free-form output."""
        raw = "I could not figure out what happened here, sorry."
        result = parse_diagnosis_output(raw)

        assert result.root_cause == UNPARSEABLE_ROOT_CAUSE
        assert result.confidence == UNPARSEABLE_CONFIDENCE
        assert result.raw_output == raw

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            None,
            "###",
            "### CONFIDENCE\n",
            "```\n### ROOT_CAUSE\nunterminated fence",
            "#### FILE:\n```diff\n+x\n```",
            "### PROPOSED_CHANGES\nFILE:",
            "\x00\x01 binary � junk",
        ],
    )
    def test_never_raises(self, raw: str | None) -> None:
        """Test that any input yields a well-formed result."""
        result = parse_diagnosis_output(raw)

        assert 0.0 <= result.confidence <= 1.0
        assert result.risk_assessment in ("LOW", "MEDIUM", "HIGH")
        assert result.root_cause

    def test_headings_are_case_insensitive(self) -> None:
        """Test headings written in prose form."""
        result = parse_diagnosis_output("## Root Cause\nMemory leak.\n# confidence\n70%")

        assert result.root_cause == "Memory leak."
        assert result.confidence == 0.7

    def test_only_proposed_changes_is_not_degenerate(self) -> None:
        """Test that proposed changes alone are enough to keep the parsed confidence."""
        raw = (
            "### PROPOSED_CHANGES\n"
            "#### FILE: app/db.py\n"
            "```diff\n-pool_size=5\n+pool_size=20\n```\n"
            "### CONFIDENCE\n0.6"
        )
        result = parse_diagnosis_output(raw)

        assert result.root_cause == ""
        assert result.confidence == 0.6
        assert result.proposed_changes[0].file_path == "app/db.py"


class TestUnterminatedDiff:
    """Tests for output whose diff block was never closed."""

    OUTPUT = (
        "### ROOT_CAUSE\nNull deref.\n"
        "### PROPOSED_CHANGES\n#### FILE: src/a.py\n**Explanation**: guard\n```diff\n- a\n+ b\n"
        "### RISK_ASSESSMENT\nHIGH\n"
        "### CONFIDENCE\n0.2"
    )

    def test_later_sections_still_parsed(self) -> None:
        """Test that risk and confidence after an open diff block are kept."""
        result = parse_diagnosis_output(self.OUTPUT)

        assert result.root_cause == "Null deref."
        assert result.risk_assessment == "HIGH"
        assert result.confidence == pytest.approx(0.2)
        assert len(result.proposed_changes) == 1
        assert result.proposed_changes[0].file_path == "src/a.py"
        assert result.proposed_changes[0].explanation == "guard"
        assert result.proposed_changes[0].diff == "- a\n+ b"

    def test_low_confidence_not_remediated(self) -> None:
        """Test that the agent's own low score keeps the gate closed."""
        assert should_remediate(parse_diagnosis_output(self.OUTPUT)) is False


class TestSplitSections:
    """Tests for section splitting."""

    def test_level_four_headings_stay_in_section(self) -> None:
        """Test that FILE sub-blocks do not end the changes section."""
        sections = split_sections("### PROPOSED_CHANGES\n#### FILE: a/b.py\nbody\n### CONFIDENCE\n0.4")

        assert sections["PROPOSED_CHANGES"] == "#### FILE: a/b.py\nbody"
        assert sections["CONFIDENCE"] == "0.4"

    def test_headings_inside_fences_ignored(self) -> None:
        """Test that comment lines inside code blocks are not headings."""
        text = "### ROOT_CAUSE\nBad config.\n```diff\n# comment\n```\nstill root cause"
        sections = split_sections(text)

        assert sections["ROOT_CAUSE"].endswith("still root cause")

    def test_first_occurrence_wins(self) -> None:
        """Test that a repeated section keeps its first body."""
        sections = split_sections("### ROOT_CAUSE\nfirst\n### ROOT_CAUSE\nsecond")

        assert sections["ROOT_CAUSE"] == "first"

    def test_known_heading_closes_unterminated_fence(self) -> None:
        """Test that a code block left open does not hide the sections after it."""
        text = "### PROPOSED_CHANGES\n```diff\n- a\n+ b\n### RISK_ASSESSMENT\nHIGH\n### CONFIDENCE\n0.2"
        sections = split_sections(text)

        assert sections["PROPOSED_CHANGES"] == "```diff\n- a\n+ b"
        assert sections["RISK_ASSESSMENT"] == "HIGH"
        assert sections["CONFIDENCE"] == "0.2"

    def test_unknown_heading_inside_unterminated_fence_ignored(self) -> None:
        """Test that only known section names break out of an open code block."""
        sections = split_sections("### ROOT_CAUSE\n```python\n## Notes\nx = 1")

        assert sections == {"ROOT_CAUSE": "```python\n## Notes\nx = 1"}

    def test_unknown_heading_ends_section(self) -> None:
        """Test that any level 1-3 heading ends the current section."""
        sections = split_sections("### ROOT_CAUSE\ncause\n## Notes\nunrelated")

        assert sections == {"ROOT_CAUSE": "cause"}


class TestFieldExtractors:
    """Tests for the per-field extractors."""

    def test_affected_files_drops_non_paths(self) -> None:
        """Test that lines without a path separator are dropped."""
        files = extract_affected_files("* src/a.py\n1. lib\\b.py\nREADME\n\n- none")

        assert files == ["src/a.py", "lib\\b.py"]

    def test_pathless_change_blocks_discarded(self) -> None:
        """Test that FILE blocks without a path are skipped."""
        changes = extract_proposed_changes("#### FILE:\n```diff\n+x\n```\n#### FILE: src/x.py\n```diff\n+y\n```")

        assert [c.file_path for c in changes] == ["src/x.py"]
        assert changes[0].diff == "+y"

    def test_change_without_diff(self) -> None:
        """Test that a change without a diff block keeps an empty diff."""
        changes = extract_proposed_changes("FILE: `src/x.py`\nExplanation: Rename the flag.")

        assert changes[0].file_path == "src/x.py"
        assert changes[0].explanation == "Rename the flag."
        assert changes[0].diff == ""

    @pytest.mark.parametrize(
        ("section", "expected"),
        [
            ("HIGH - touches billing", "HIGH"),
            ("low", "LOW"),
            ("**Medium**", "MEDIUM"),
            ("It depends", "MEDIUM"),
            ("", "MEDIUM"),
        ],
    )
    def test_risk(self, section: str, expected: str) -> None:
        """Test risk normalization."""
        assert extract_risk(section) == expected

    @pytest.mark.parametrize(
        ("section", "expected"),
        [
            ("0.42", 0.42),
            ("**0.9** (fairly sure)", 0.9),
            ("85%", 0.85),
            ("7", 1.0),
            ("", 0.5),
            ("high", 0.5),
        ],
    )
    def test_confidence(self, section: str, expected: float) -> None:
        """Test confidence parsing."""
        assert extract_confidence(section) == pytest.approx(expected)
