"""executeCommand function. Runs shell commands after user confirmation."""

import asyncio
import logging
import os
import re
from collections.abc import Callable
from typing import Any

import click

from termai.functions.registry import FunctionRegistry
from termai.messages import FunctionDefinition
from termai.render import render_command

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
MAX_OUTPUT = 10_000

DANGEROUS_PATTERNS = [
    re.compile(r"\brm\s+(-[a-zA-Z]*[rf][a-zA-Z]*\s+)+"),
    re.compile(r"\bmkfs(\.\w+)?\b"),
    re.compile(r"\bdd\b.*\bof="),
    re.compile(r"\b(shutdown|reboot|halt|poweroff)\b"),
    re.compile(r":\(\)\s*\{\s*:\|:&\s*\};:"),
    re.compile(r"\bchmod\s+(-R\s+)?[0-7]*777\s+/"),
    re.compile(r"\bchown\s+-R\b.*\s/\s*$"),
    re.compile(r">\s*/dev/(sd[a-z]|nvme\d|disk\d)"),
    re.compile(r"\bgit\s+(reset\s+--hard|clean\s+-[a-zA-Z]*f|push\s+.*--force)\b"),
    re.compile(r"\b(curl|wget)\b.*\|\s*(sudo\s+)?(ba|z)?sh\b"),
    re.compile(r"\bsudo\b"),
]

execute_command_function = FunctionDefinition(
    name="executeCommand",
    description=(
        "Execute a shell command in the user's terminal and return its output. "
        "The user is asked to confirm before anything runs."
    ),
    properties={
        "command": {
            "type": "string",
            "description": "The shell command to execute",
        },
    },
    required=["command"],
)


def is_dangerous(command: str) -> bool:
    """Return True when the command looks destructive or privileged."""
    return any(p.search(command) for p in DANGEROUS_PATTERNS)


def _cap(text: str) -> str:
    if len(text) > MAX_OUTPUT:
        return text[:MAX_OUTPUT] + "\n... (truncated)"
    return text


def _confirm(command: str, dangerous: bool) -> bool:
    render_command(command, os.getcwd(), dangerous)
    return click.confirm("  Execute?", default=False)


def make_execute_command_handler(
    confirm: Callable[[str, bool], bool] = _confirm,
    timeout: float = DEFAULT_TIMEOUT,
):
    """Build the executeCommand handler. ``confirm`` decides whether a command may run."""

    async def execute_command(arguments: dict[str, Any]) -> str:
        command = str(arguments.get("command", "")).strip()
        if not command:
            raise ValueError("no command given")

        dangerous = is_dangerous(command)
        if not confirm(command, dangerous):
            logger.info("User declined command: %s", command)
            return "Command execution cancelled by user."

        logger.debug("Running command: %s", command)
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return (
                f"stdout: \n"
                f"stderr: \n"
                f"exit_code: -1\n"
                f"timed_out: true\n"
                f"Error: command timed out after {timeout}s"
            )

        stdout = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""

        return (
            f"stdout: {_cap(stdout)}\n"
            f"stderr: {_cap(stderr)}\n"
            f"exit_code: {proc.returncode}\n"
            f"timed_out: false"
        )

    return execute_command


def build_registry(confirm: Callable[[str, bool], bool] = _confirm) -> FunctionRegistry:
    registry = FunctionRegistry()
    registry.register(execute_command_function, make_execute_command_handler(confirm))
    return registry
