"""Tests for the subprocess boundary."""

import sys
from unittest.mock import patch

import pytest

from app.tools.shell import CommandError, run_command, run_command_async

PY = sys.executable


@pytest.fixture
def mock_settings(tmp_path):
    """Mock settings pointing to a temp directory."""
    from app.core.active_repo import clear_repo_root, set_repo_root
    set_repo_root(str(tmp_path))
    with patch("app.tools.shell.get_settings") as ms:
        ms.return_value.max_output_chars = 10000
        ms.return_value.command_timeout_seconds = 10
        ms.return_value.git_author_name = "test"
        ms.return_value.git_author_email = "test@test"
        yield ms.return_value
    clear_repo_root()


class TestRunCommand:
    def test_returns_stripped_stdout(self, mock_settings):
        assert run_command([PY, "-c", "print('  hello  ')"]) == "hello"

    def test_runs_in_active_repo_root(self, mock_settings, tmp_path):
        assert run_command([PY, "-c", "import os; print(os.getcwd())"]) == str(tmp_path.resolve())

    def test_git_identity_in_environment(self, mock_settings):
        output = run_command([PY, "-c", "import os; print(os.environ['GIT_COMMITTER_EMAIL'])"])
        assert output == "test@test"

    def test_nonzero_exit_raises_with_stderr(self, mock_settings):
        with pytest.raises(CommandError) as exc_info:
            run_command([PY, "-c", "import sys; sys.stderr.write('503 Service Unavailable'); sys.exit(3)"])
        assert exc_info.value.returncode == 3
        assert "exit 3: 503 Service Unavailable" in str(exc_info.value)

    def test_multiline_stderr_collapsed_to_one_line(self, mock_settings):
        script = "import sys; sys.stderr.write('fatal: no remote\\n\\nPlease check access\\n'); sys.exit(128)"
        with pytest.raises(CommandError) as exc_info:
            run_command([PY, "-c", script])
        message = str(exc_info.value)
        assert "\n" not in message
        assert message.endswith("exit 128: fatal: no remote | Please check access")

    def test_no_shell_interpretation(self, mock_settings):
        assert run_command([PY, "-c", "import sys; print(sys.argv[1])", "$HOME; ls"]) == "$HOME; ls"

    def test_missing_binary(self, mock_settings):
        with pytest.raises(CommandError, match="cannot start") as exc_info:
            run_command(["openflows-no-such-binary"])
        assert exc_info.value.returncode is None

    def test_missing_directory(self, mock_settings, tmp_path):
        with pytest.raises(CommandError, match="directory does not exist"):
            run_command([PY, "-c", "pass"], cwd=tmp_path / "missing")

    def test_timeout(self, mock_settings):
        with pytest.raises(CommandError, match="timed out after 1s"):
            run_command([PY, "-c", "import time; time.sleep(5)"], timeout=1)

    def test_long_output_truncated(self, mock_settings):
        mock_settings.max_output_chars = 100
        output = run_command([PY, "-c", "print('x' * 500)"])
        assert "truncated 400 chars" in output
        assert len(output) < 200


@pytest.mark.asyncio
async def test_async_variant(mock_settings):
    assert await run_command_async([PY, "-c", "print('async')"]) == "async"
