"""Diagnostic agent invocation, output parsing and remediation gating."""

from responder.diagnosis.executor import CommandExecutor, CommandResult, SubprocessExecutor
from responder.diagnosis.gating import should_remediate
from responder.diagnosis.invoker import READ_ONLY_TOOLS, READ_WRITE_TOOLS, AgentInvoker
from responder.diagnosis.parser import parse_diagnosis_output

__all__ = [
    "READ_ONLY_TOOLS",
    "READ_WRITE_TOOLS",
    "AgentInvoker",
    "CommandExecutor",
    "CommandResult",
    "SubprocessExecutor",
    "parse_diagnosis_output",
    "should_remediate",
]
