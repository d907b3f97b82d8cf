"""Shell command wrapper used by the default backends.

A ``ShellCommand`` collects an executable, its arguments and extra
environment variables, then runs it with ``subprocess``. Launch failures
(executable not found, permission denied) surface as
``BuildEnvironmentError``; a non-zero exit from ``run_checked`` or
``capture`` surfaces as ``ActionFailed``.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Iterable, Mapping
from pathlib import Path

from installforge.core.actions import ActionFailed, BuildEnvironmentError

logger = logging.getLogger(__name__)


class ShellCommand:
    """A command line plus environment overrides.

    Parameters
    ----------
    executable:
        The program to run, looked up on ``PATH`` when not a path.
    args:
        Initial arguments.
    envs:
        Initial environment overrides, applied on top of ``os.environ``.
    """

    def __init__(
        self,
        executable: str,
        args: Iterable[str] = (),
        envs: Mapping[str, str] | None = None,
    ) -> None:
        self.executable = str(executable)
        self.args: list[str] = [str(a) for a in args]
        self.envs: dict[str, str] = {str(k): str(v) for k, v in (envs or {}).items()}

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_arg(self, arg: str | Path) -> ShellCommand:
        self.args.append(str(arg))
        return self

    def add_args(self, args: Iterable[str | Path]) -> ShellCommand:
        self.args.extend(str(a) for a in args)
        return self

    def add_env(self, name: str, value: str) -> ShellCommand:
        self.envs[name] = str(value)
        return self

    def add_envs(self, envs: Mapping[str, str]) -> ShellCommand:
        for name, value in envs.items():
            self.add_env(name, value)
        return self

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    def __str__(self) -> str:
        return shlex.join(self.argv)

    def __repr__(self) -> str:
        return f"ShellCommand({str(self)!r})"

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def _environment(self) -> dict[str, str] | None:
        if not self.envs:
            return None
        env = dict(os.environ)
        env.update(self.envs)
        return env

    def _spawn(
        self,
        cwd: Path | None,
        timeout: float | None,
        capture: bool,
        log_path: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        logger.info("Running: %s", self)
        if cwd is not None:
            logger.debug("Working directory: %s", cwd)
        try:
            if log_path is not None:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                with log_path.open("a") as log_file:
                    log_file.write(f"# Command: {self}\n")
                    log_file.flush()
                    return subprocess.run(
                        self.argv,
                        cwd=cwd,
                        env=self._environment(),
                        stdout=log_file,
                        stderr=subprocess.STDOUT,
                        timeout=timeout,
                        text=True,
                        check=False,
                    )
            return subprocess.run(
                self.argv,
                cwd=cwd,
                env=self._environment(),
                capture_output=capture,
                timeout=timeout,
                text=True,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ActionFailed(f"'{self.executable}' timed out after {timeout} seconds") from exc
        except OSError as exc:
            raise BuildEnvironmentError(
                f"Failed to launch '{self.executable}': {exc}"
            ) from exc

    def run(
        self,
        cwd: Path | None = None,
        *,
        timeout: float | None = None,
        log_path: Path | None = None,
    ) -> int:
        """Run to completion and return the exit code.

        Output goes to the parent's stdout/stderr, or to *log_path*.
        """
        return self._spawn(cwd, timeout, capture=False, log_path=log_path).returncode

    def run_checked(
        self,
        cwd: Path | None = None,
        *,
        timeout: float | None = None,
        log_path: Path | None = None,
    ) -> None:
        """Run and raise ``ActionFailed`` on a non-zero exit."""
        code = self.run(cwd, timeout=timeout, log_path=log_path)
        if code != 0:
            message = f"'{self}' exited with code {code}"
            if log_path is not None:
                message += f" (see {log_path})"
            logger.error(message)
            raise ActionFailed(message)

    def capture(self, cwd: Path | None = None, *, timeout: float | None = None) -> str:
        """Run and return stdout with surrounding whitespace stripped."""
        result = self._spawn(cwd, timeout, capture=True)
        if result.returncode != 0:
            detail = (result.stderr or "").strip().splitlines()
            message = f"'{self}' exited with code {result.returncode}"
            if detail:
                message += f": {detail[-1]}"
            raise ActionFailed(message)
        return (result.stdout or "").strip()
