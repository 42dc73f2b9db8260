"""Common utilities and types for cf-driver goals."""

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from cloud.errors import RemoteApiError

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    continue_on_failure: bool = False


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout or '', result.stderr or ''
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def describe_error(error: Exception) -> str:
    """Render an error as "Error message: '...'. Description: '...'".

    Description is included only when the remote API provided one.
    """
    if isinstance(error, RemoteApiError):
        text = f"Error message: '{error.message}'"
        if error.description:
            text += f". Description: '{error.description}'"
        return text
    return f"Error message: '{error}'"


def export_lines(env: dict) -> list[str]:
    """Shell 'export' statements for an environment mapping."""
    return [f"export {key}={shlex.quote(str(value))}" for key, value in sorted(env.items())]


def write_env_file(path: Path, env: dict) -> Path:
    """Write KEY=VALUE lines (dotenv style) for a later build step to source."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"{key}={value}" for key, value in sorted(env.items())]
    path.write_text('\n'.join(lines) + ('\n' if lines else ''), encoding='utf-8')
    return path
