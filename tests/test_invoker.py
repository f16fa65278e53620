"""Tests for the diagnostic agent invoker and the subprocess executor."""

import signal
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

from responder.config.settings import Settings
from responder.diagnosis.executor import CommandResult, SubprocessExecutor
from responder.diagnosis.invoker import READ_ONLY_TOOLS, READ_WRITE_TOOLS, AgentInvoker
from responder.errors import InvocationError
from responder.integrations.logs.base import LogResult
from responder.registry.models import AlertService, PagerDutyAlert, ServiceConfig

DIAGNOSIS_OUTPUT = """### ROOT_CAUSE
Null customer on cache miss.

### PROPOSED_CHANGES
#### FILE: src/processor.ts
**Explanation**: Guard the lookup.
```diff
- customer.id
+ customer?.id
```

### CONFIDENCE
0.7
"""


class ScriptedExecutor:
    """CommandExecutor returning a canned result and recording each call."""

    def __init__(self, result: CommandResult | None = None, error: Exception | None = None) -> None:
        self.result = result or CommandResult(stdout="", stderr="", returncode=0)
        self.error = error
        self.calls: list[dict] = []

    async def run(
        self,
        args: Sequence[str],
        cwd: str,
        env: Mapping[str, str],
        timeout: float,
        kill_grace: float,
        stdin_path: str | None = None,
    ) -> CommandResult:
        prompt_file = Path(stdin_path)
        self.calls.append(
            {
                "args": list(args),
                "cwd": cwd,
                "env": dict(env),
                "timeout": timeout,
                "kill_grace": kill_grace,
                "prompt_file": prompt_file,
                "prompt_file_content": prompt_file.read_text() if prompt_file.exists() else None,
            }
        )
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings with a private scratch directory."""
    return Settings(
        environment="development",
        agent_cli_path="agent-cli",
        agent_max_turns=25,
        agent_timeout_seconds=300,
        agent_kill_grace_seconds=5,
        anthropic_api_key="test-key",
        scratch_dir=str(tmp_path / "scratch"),
    )


@pytest.fixture
def service_config() -> ServiceConfig:
    return ServiceConfig(
        name="payment-service",
        pagerduty_service_id="PSVC1",
        repo_owner="acme",
        repo_name="payments",
        slack_channel_id="C123",
    )


@pytest.fixture
def alert() -> PagerDutyAlert:
    return PagerDutyAlert(
        id="PINC1",
        title="High error rate on payment-service",
        service=AlertService(id="PSVC1", name="payment-service"),
        created_at="2024-01-15T10:00:00Z",
    )


class TestAgentInvoker:
    """Tests for AgentInvoker.invoke failure semantics."""

    def test_build_args(self, settings: Settings) -> None:
        """Test the non-interactive CLI arguments."""
        invoker = AgentInvoker(settings, ScriptedExecutor())

        args = invoker.build_args(READ_ONLY_TOOLS)

        assert args == [
            "agent-cli",
            "--print",
            "--output-format",
            "text",
            "--max-turns",
            "25",
            "--allowedTools",
            "Read,Grep,Glob",
        ]

    @pytest.mark.asyncio
    async def test_success_returns_stdout(self, settings: Settings, tmp_path: Path) -> None:
        """Test that a clean exit returns stdout."""
        executor = ScriptedExecutor(CommandResult(stdout="analysis", stderr="", returncode=0))
        invoker = AgentInvoker(settings, executor)

        output = await invoker.invoke("prompt text", str(tmp_path))

        assert output == "analysis"
        call = executor.calls[0]
        assert call["cwd"] == str(tmp_path)
        assert call["timeout"] == 300
        assert call["kill_grace"] == 5
        assert call["env"]["ANTHROPIC_API_KEY"] == "test-key"

    @pytest.mark.asyncio
    async def test_prompt_file_exists_during_run_and_is_removed(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """Test the scratch prompt file lifecycle."""
        executor = ScriptedExecutor(CommandResult(stdout="ok", stderr="", returncode=0))
        invoker = AgentInvoker(settings, executor)

        await invoker.invoke("the prompt", str(tmp_path))

        call = executor.calls[0]
        assert call["prompt_file_content"] == "the prompt"
        assert not call["prompt_file"].exists()

    @pytest.mark.asyncio
    async def test_large_prompt_kept_out_of_argv(self, settings: Settings, tmp_path: Path) -> None:
        """Test that a prompt over the per-argument limit is fed on stdin only."""
        prompt = "ERROR upstream timeout\n" * 10_000
        executor = ScriptedExecutor(CommandResult(stdout="ok", stderr="", returncode=0))
        invoker = AgentInvoker(settings, executor)

        await invoker.invoke(prompt, str(tmp_path))

        call = executor.calls[0]
        assert call["args"] == invoker.build_args(READ_ONLY_TOOLS)
        assert all(len(arg) < 1024 for arg in call["args"])
        assert call["prompt_file_content"] == prompt

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_output_fails(self, settings: Settings, tmp_path: Path) -> None:
        """Test that a failed run with no output raises."""
        executor = ScriptedExecutor(CommandResult(stdout="  \n", stderr="auth error", returncode=1))
        invoker = AgentInvoker(settings, executor)

        with pytest.raises(InvocationError, match="Agent exited with code 1: auth error"):
            await invoker.invoke("prompt", str(tmp_path))

        assert not executor.calls[0]["prompt_file"].exists()

    @pytest.mark.asyncio
    async def test_nonzero_exit_with_output_salvaged(self, settings: Settings, tmp_path: Path) -> None:
        """Test that output of a failed run is still returned."""
        executor = ScriptedExecutor(CommandResult(stdout="partial analysis", stderr="", returncode=2))
        invoker = AgentInvoker(settings, executor)

        assert await invoker.invoke("prompt", str(tmp_path)) == "partial analysis"

    @pytest.mark.asyncio
    async def test_timeout_without_output_fails(self, settings: Settings, tmp_path: Path) -> None:
        """Test that a timed out run with no output raises."""
        executor = ScriptedExecutor(
            CommandResult(stdout="", stderr="", returncode=-9, timed_out=True)
        )
        invoker = AgentInvoker(settings, executor)

        with pytest.raises(InvocationError, match="timed out"):
            await invoker.invoke("prompt", str(tmp_path))

    @pytest.mark.asyncio
    async def test_timeout_with_output_salvaged(self, settings: Settings, tmp_path: Path) -> None:
        """Test that partial output of a timed out run is returned."""
        executor = ScriptedExecutor(
            CommandResult(stdout="### ROOT_CAUSE\nhalf", stderr="", returncode=-15, timed_out=True)
        )
        invoker = AgentInvoker(settings, executor)

        assert await invoker.invoke("prompt", str(tmp_path)) == "### ROOT_CAUSE\nhalf"

    @pytest.mark.asyncio
    async def test_spawn_failure(self, settings: Settings, tmp_path: Path) -> None:
        """Test that an OSError from the executor becomes an InvocationError."""
        executor = ScriptedExecutor(error=FileNotFoundError("agent-cli"))
        invoker = AgentInvoker(settings, executor)

        with pytest.raises(InvocationError, match="Failed to spawn agent CLI"):
            await invoker.invoke("prompt", str(tmp_path))

        assert not executor.calls[0]["prompt_file"].exists()

    @pytest.mark.asyncio
    async def test_spawn_failure_with_real_executor(self, settings: Settings, tmp_path: Path) -> None:
        """Test a missing CLI binary with the subprocess executor."""
        settings.agent_cli_path = str(tmp_path / "missing-agent-cli")
        invoker = AgentInvoker(settings)

        with pytest.raises(InvocationError, match="Failed to spawn agent CLI"):
            await invoker.invoke("prompt", str(tmp_path))

        assert list((tmp_path / "scratch").iterdir()) == []


class TestAgentPasses:
    """Tests for the diagnosis and fix passes."""

    @pytest.mark.asyncio
    async def test_diagnose_is_read_only_and_parses(
        self,
        settings: Settings,
        tmp_path: Path,
        alert: PagerDutyAlert,
        service_config: ServiceConfig,
    ) -> None:
        """Test that the diagnosis pass uses read-only tools and parses the output."""
        executor = ScriptedExecutor(CommandResult(stdout=DIAGNOSIS_OUTPUT, stderr="", returncode=0))
        invoker = AgentInvoker(settings, executor)

        result = await invoker.diagnose(alert, LogResult(logs="boom"), service_config, str(tmp_path))

        args = executor.calls[0]["args"]
        assert args[args.index("--allowedTools") + 1] == ",".join(READ_ONLY_TOOLS)
        assert "High error rate on payment-service" in executor.calls[0]["prompt_file_content"]
        assert result.root_cause == "Null customer on cache miss."
        assert result.confidence == 0.7
        assert result.proposed_changes[0].file_path == "src/processor.ts"

    @pytest.mark.asyncio
    async def test_apply_fix_allows_edits(
        self,
        settings: Settings,
        tmp_path: Path,
        service_config: ServiceConfig,
    ) -> None:
        """Test that the fix pass may edit and write files."""
        executor = ScriptedExecutor(CommandResult(stdout="Applied.", stderr="", returncode=0))
        invoker = AgentInvoker(settings, executor)

        output = await invoker.apply_fix(DIAGNOSIS_OUTPUT, service_config, str(tmp_path))

        args = executor.calls[0]["args"]
        assert args[args.index("--allowedTools") + 1] == ",".join(READ_WRITE_TOOLS)
        assert "Null customer on cache miss." in executor.calls[0]["prompt_file_content"]
        assert output == "Applied."


class TestSubprocessExecutor:
    """Tests for the real subprocess executor."""

    @pytest.mark.asyncio
    async def test_collects_output(self, tmp_path: Path) -> None:
        """Test a process that exits on its own."""
        result = await SubprocessExecutor().run(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"],
            cwd=str(tmp_path),
            env={},
            timeout=30,
            kill_grace=1,
        )

        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"
        assert result.returncode == 0
        assert result.timed_out is False

    @pytest.mark.asyncio
    async def test_stdin_from_file(self, tmp_path: Path) -> None:
        """Test that the stdin file reaches the process unchanged."""
        prompt_file = tmp_path / "prompt.md"
        prompt_file.write_text("line one\nline two\n" * 20_000)

        result = await SubprocessExecutor().run(
            [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read())"],
            cwd=str(tmp_path),
            env={},
            timeout=30,
            kill_grace=1,
            stdin_path=str(prompt_file),
        )

        assert result.returncode == 0
        assert result.stdout == prompt_file.read_text()

    @pytest.mark.asyncio
    async def test_stdin_empty_by_default(self, tmp_path: Path) -> None:
        """Test that a process without a stdin file reads end-of-file at once."""
        result = await SubprocessExecutor().run(
            [sys.executable, "-c", "import sys; print(repr(sys.stdin.read()))"],
            cwd=str(tmp_path),
            env={},
            timeout=30,
            kill_grace=1,
        )

        assert result.stdout.strip() == "''"

    @pytest.mark.asyncio
    async def test_timeout_terminates(self, tmp_path: Path) -> None:
        """Test that a timed out process is stopped with SIGTERM and its output kept."""
        script = "import time; print('partial', flush=True); time.sleep(60)"

        result = await SubprocessExecutor().run(
            [sys.executable, "-c", script],
            cwd=str(tmp_path),
            env={},
            timeout=2,
            kill_grace=2,
        )

        assert result.timed_out is True
        assert result.returncode == -signal.SIGTERM
        assert result.stdout.strip() == "partial"

    @pytest.mark.asyncio
    async def test_timeout_escalates_to_kill(self, tmp_path: Path) -> None:
        """Test that a process ignoring SIGTERM is killed after the grace period."""
        script = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('partial', flush=True)\n"
            "time.sleep(60)\n"
        )

        result = await SubprocessExecutor().run(
            [sys.executable, "-c", script],
            cwd=str(tmp_path),
            env={},
            timeout=2,
            kill_grace=0.5,
        )

        assert result.timed_out is True
        assert result.returncode == -signal.SIGKILL
        assert result.stdout.strip() == "partial"
