"""
Executable Module

Runs docker-compose as a subprocess. DockerComposeExecutable only launches
the process; SynchronousDockerComposeExecutable waits for it and collects
its output.
"""

import os
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional
from configuration import ComposeFiles, DockerMachine, ProjectName
from utils import COMPOSE_COMMAND_LATENCY, logger


class ProcessResult(NamedTuple):
    exit_code: int
    output: str


class DockerComposeExecutable:
    """Launches docker-compose for one project against one docker machine"""

    def __init__(
        self,
        compose_files: ComposeFiles,
        docker_machine: DockerMachine,
        project_name: ProjectName,
        binary: str = "docker-compose",
        working_directory: Optional[Path] = None,
    ):
        self.compose_files = compose_files
        self.docker_machine = docker_machine
        self.project_name = project_name
        self.binary = binary
        self.working_directory = working_directory or compose_files.working_directory

    def command_line(self, *args: str) -> List[str]:
        return (
            [self.binary]
            + self.compose_files.as_args()
            + self.project_name.as_args()
            + list(args)
        )

    def environment(self) -> Dict[str, str]:
        environment = os.environ.copy()
        environment.update(self.docker_machine.environment)
        return environment

    def execute(self, *args: str) -> subprocess.Popen:
        """Start docker-compose with the given arguments

        stderr is merged into stdout. The caller owns the returned process.
        """
        command = self.command_line(*args)
        logger.debug(
            "Starting docker-compose",
            command=command,
            working_directory=str(self.working_directory),
        )
        return subprocess.Popen(
            command,
            cwd=str(self.working_directory),
            env=self.environment(),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )


def _log_line(line: str):
    logger.debug("docker-compose output", line=line)


class SynchronousDockerComposeExecutable:
    """Runs a docker-compose command to completion and returns its output"""

    def __init__(
        self,
        executable: DockerComposeExecutable,
        log_line: Callable[[str], None] = _log_line,
    ):
        self.executable = executable
        self.log_line = log_line

    def _read_lines(self, process) -> str:
        lines = []
        for line in process.stdout:
            line = line.rstrip("\r\n")
            self.log_line(line)
            lines.append(line)
        return "\n".join(lines)

    def run(self, *args: str) -> ProcessResult:
        """Run docker-compose and block until it exits

        Output is drained on a worker thread while waiting for exit, so a
        process producing lots of output never stalls on a full pipe. If the
        wait is interrupted the process is killed before re-raising.

        Returns:
            ProcessResult: Exit code and the complete captured output
        """
        start_time = time.time()
        process = self.executable.execute(*args)

        with process, ThreadPoolExecutor(max_workers=1) as pool:
            output = pool.submit(self._read_lines, process)
            try:
                exit_code = process.wait()
            except BaseException:
                process.kill()
                raise
            result = ProcessResult(exit_code, output.result())

        command = args[0] if args else ""
        COMPOSE_COMMAND_LATENCY.labels(command=command).observe(time.time() - start_time)
        return result
