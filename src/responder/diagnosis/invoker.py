"""
Diagnostic agent invoker.

Runs the external coding agent CLI non-interactively inside a local clone of
the service repository. The tool allowlist passed on the command line is the
only sandbox: the diagnosis pass may only read, the fix pass may also edit.
"""

import logging
import os
import uuid
from collections.abc import Sequence
from pathlib import Path

from ddtrace.llmobs.decorators import agent

from responder.config.settings import Settings
from responder.diagnosis.executor import CommandExecutor, SubprocessExecutor
from responder.diagnosis.parser import parse_diagnosis_output
from responder.diagnosis.prompts import build_diagnosis_prompt, build_fix_prompt
from responder.errors import InvocationError
from responder.incidents.models import DiagnosisResult
from responder.integrations.logs.base import LogResult
from responder.registry.models import PagerDutyAlert, ServiceConfig

logger = logging.getLogger(__name__)

READ_ONLY_TOOLS = ("Read", "Grep", "Glob")
READ_WRITE_TOOLS = ("Read", "Grep", "Glob", "Edit", "Write")


class AgentInvoker:
    """Invokes the diagnostic agent CLI and enforces its failure semantics.

    A run succeeds when the process exits 0, and also when it exits non-zero
    or times out but printed something: partial output is still worth
    parsing. It fails with InvocationError when the process cannot be spawned
    or produced no output at all.
    """

    def __init__(
        self,
        settings: Settings,
        executor: CommandExecutor | None = None,
    ) -> None:
        """Initialize the invoker.

        Args:
            settings: Application settings (CLI path, timeouts, scratch dir).
            executor: Command executor. Defaults to a real subprocess executor.
        """
        self.settings = settings
        self.executor = executor or SubprocessExecutor()

    def build_args(self, allowed_tools: Sequence[str]) -> list[str]:
        """Build the non-interactive CLI invocation.

        The prompt is not part of argv. In ``--print`` mode the CLI reads it
        from stdin, so prompts carrying large log excerpts are not bounded by
        the kernel's argument size limits.
        """
        return [
            self.settings.agent_cli_path,
            "--print",
            "--output-format",
            "text",
            "--max-turns",
            str(self.settings.agent_max_turns),
            "--allowedTools",
            ",".join(allowed_tools),
        ]

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.settings.anthropic_api_key:
            env["ANTHROPIC_API_KEY"] = self.settings.anthropic_api_key
        return env

    async def invoke(
        self,
        prompt: str,
        working_dir: str,
        allowed_tools: Sequence[str] = READ_ONLY_TOOLS,
    ) -> str:
        """Run the agent once and return its raw stdout.

        The prompt is materialized as a scratch file, fed to the agent on
        stdin, and removed afterwards whatever the outcome.

        Args:
            prompt: Prompt text.
            working_dir: Repository clone the agent operates in.
            allowed_tools: Tools the agent may use.

        Returns:
            The agent's raw text output.

        Raises:
            InvocationError: On spawn failure, or when the run produced no output.
        """
        scratch_dir = Path(self.settings.scratch_dir)
        scratch_dir.mkdir(parents=True, exist_ok=True)
        prompt_file = scratch_dir / f"prompt-{uuid.uuid4().hex}.md"
        prompt_file.write_text(prompt, encoding="utf-8")

        logger.info(f"Invoking agent CLI in {working_dir} with tools: {','.join(allowed_tools)}")

        try:
            result = await self.executor.run(
                self.build_args(allowed_tools),
                cwd=working_dir,
                env=self._build_env(),
                timeout=self.settings.agent_timeout_seconds,
                kill_grace=self.settings.agent_kill_grace_seconds,
                stdin_path=str(prompt_file),
            )
        except OSError as e:
            raise InvocationError(f"Failed to spawn agent CLI: {e}") from e
        finally:
            prompt_file.unlink(missing_ok=True)

        if result.stderr:
            logger.debug(f"Agent CLI stderr: {result.stderr[:300]}")

        has_output = bool(result.stdout.strip())

        if result.timed_out:
            if not has_output:
                raise InvocationError(
                    f"Agent CLI timed out after {self.settings.agent_timeout_seconds}s with no output"
                )
            logger.warning(f"Agent CLI timed out, salvaging {len(result.stdout)} chars of partial output")
            return result.stdout

        if result.returncode != 0:
            if not has_output:
                logger.error(
                    f"Agent CLI exited with code {result.returncode}: {result.stderr[:500]}"
                )
                raise InvocationError(
                    f"Agent exited with code {result.returncode}: {result.stderr[:200]}"
                )
            logger.warning(f"Agent CLI exited with code {result.returncode}, using its output anyway")

        return result.stdout

    @agent(name="diagnose_incident")
    async def diagnose(
        self,
        alert: PagerDutyAlert,
        logs: LogResult,
        service_config: ServiceConfig,
        repo_dir: str,
    ) -> DiagnosisResult:
        """Run the read-only diagnosis pass and parse its output."""
        prompt = build_diagnosis_prompt(alert, logs, service_config)

        logger.info(f"Starting diagnosis pass for PagerDuty incident {alert.id} in {repo_dir}")
        raw_output = await self.invoke(prompt, repo_dir, READ_ONLY_TOOLS)
        logger.info(f"Diagnosis pass complete ({len(raw_output)} chars of output)")

        return parse_diagnosis_output(raw_output)

    @agent(name="apply_fix")
    async def apply_fix(
        self,
        diagnosis_output: str,
        service_config: ServiceConfig,
        repo_dir: str,
    ) -> str:
        """Run the fix pass, letting the agent edit files in the clone."""
        prompt = build_fix_prompt(diagnosis_output, service_config)

        logger.info(f"Starting fix application pass in {repo_dir}")
        raw_output = await self.invoke(prompt, repo_dir, READ_WRITE_TOOLS)
        logger.info(f"Fix application pass complete ({len(raw_output)} chars of output)")

        return raw_output
