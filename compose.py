"""
Compose Module

The docker-compose operations a test harness needs: build, up, down, kill,
rm, ps, ports, exec and logs. Every call runs docker-compose once and
interprets its output; nothing is cached between calls.
"""

import shutil
import subprocess
import threading
from enum import Enum
from typing import FrozenSet, List, Sequence, TextIO
from configuration import ComposeFiles, DockerMachine, ProjectName
from container import Container
from executable import (
    DockerComposeExecutable,
    ProcessResult,
    SynchronousDockerComposeExecutable,
)
from models import Ports
from parsing import (
    ComposeVersion,
    VERSION_1_7_0,
    parse_compose_version,
    parse_container_names,
    parse_ports,
)
from utils import ConfigurationError, ExecutionError, log_compose_operation, logger

LOG_TIMEOUT_SECONDS = 120
COPIER_JOIN_TIMEOUT_SECONDS = 5
NO_SUCH_COMMAND = "No such command"


class ErrorPolicy(Enum):
    """What to do when docker-compose exits with a non-zero exit code"""

    RAISE = "raise"
    IGNORE_UNSUPPORTED_DOWN = "ignore_unsupported_down"


class DockerCompose:
    """Runs docker-compose commands for a single project"""

    def __init__(
        self,
        executable: DockerComposeExecutable,
        docker_machine: DockerMachine,
        log_timeout: float = LOG_TIMEOUT_SECONDS,
    ):
        self.raw_executable = executable
        self.executable = SynchronousDockerComposeExecutable(executable)
        self.docker_machine = docker_machine
        self.log_timeout = log_timeout

    @classmethod
    def create(
        cls,
        compose_files: ComposeFiles,
        docker_machine: DockerMachine,
        project_name: ProjectName,
        binary: str = "docker-compose",
        log_timeout: float = LOG_TIMEOUT_SECONDS,
    ):
        executable = DockerComposeExecutable(
            compose_files, docker_machine, project_name, binary=binary
        )
        return cls(executable, docker_machine, log_timeout=log_timeout)

    def build(self):
        self._run(ErrorPolicy.RAISE, "build")

    def up(self):
        self._run(ErrorPolicy.RAISE, "up", "-d")

    def down(self):
        self._run(ErrorPolicy.IGNORE_UNSUPPORTED_DOWN, "down")

    def kill(self):
        self._run(ErrorPolicy.RAISE, "kill")

    def rm(self):
        self._run(ErrorPolicy.RAISE, "rm", "-f")

    def ps(self) -> FrozenSet[str]:
        """Names of the services docker-compose reports for this project"""
        output = self._run(ErrorPolicy.RAISE, "ps")
        return parse_container_names(output)

    def ports(self, service: str) -> Ports:
        """Port mappings of a service, with 0.0.0.0 replaced by the machine IP

        Raises:
            ConfigurationError: If docker-compose lists no container for service
        """
        output = self._run(ErrorPolicy.RAISE, "ps", service)
        if not output:
            raise ConfigurationError(f"No container with name '{service}' found")
        return parse_ports(output, self.docker_machine.get_ip())

    def container(self, name: str) -> Container:
        return Container(name, self)

    def version(self) -> ComposeVersion:
        output = self._run(ErrorPolicy.RAISE, "-v")
        return parse_compose_version(output)

    def exec(
        self, options: Sequence[str], container_name: str, arguments: Sequence[str]
    ) -> str:
        """Run `docker-compose exec` and return its output

        Args:
            options (Sequence[str]): Options for exec itself, e.g. ["-d"]
            container_name (str): Service to run the command in
            arguments (Sequence[str]): The command and its arguments

        Raises:
            ConfigurationError: If docker-compose is older than 1.7.0
        """
        version = self.version()
        if not version.at_least(VERSION_1_7_0):
            raise ConfigurationError(
                "You need at least docker-compose 1.7 to run docker-compose exec "
                f"(found {version})"
            )
        full_args = ["exec"] + list(options) + [container_name] + list(arguments)
        return self._run(ErrorPolicy.RAISE, *full_args)

    def write_logs(self, container: str, output: TextIO) -> bool:
        """Copy the logs of a container into output

        Follows the log when docker-compose supports it and waits for the
        container to stop for at most log_timeout seconds.

        Returns:
            bool: False if waiting was interrupted or timed out, True otherwise
        """
        process = self.raw_executable.execute(*self._logs_args(container))
        with process:
            copier = threading.Thread(
                target=shutil.copyfileobj,
                args=(process.stdout, output),
                daemon=True,
                name=f"logs-{container}",
            )
            copier.start()
            try:
                process.wait(timeout=self.log_timeout)
            except (subprocess.TimeoutExpired, KeyboardInterrupt):
                logger.warning(
                    "Stopped collecting logs before the container finished",
                    container=container,
                    timeout=self.log_timeout,
                )
                process.kill()
                process.wait()
                copier.join(timeout=COPIER_JOIN_TIMEOUT_SECONDS)
                return False
            copier.join()
        return True

    def _logs_args(self, container: str) -> List[str]:
        if self.version().at_least(VERSION_1_7_0):
            return ["logs", "--no-color", "--follow", container]
        return ["logs", "--no-color", container]

    def _run(self, policy: ErrorPolicy, *args: str) -> str:
        result = self.executable.run(*args)
        operation = args[0] if args else ""

        if result.exit_code != 0:
            log_compose_operation(
                operation, " ".join(args), "failed", {"exit_code": result.exit_code}
            )
            self._handle_failure(policy, result, args)
        else:
            log_compose_operation(operation, " ".join(args), "success")

        return result.output

    def _handle_failure(
        self, policy: ErrorPolicy, result: ProcessResult, args: Sequence[str]
    ):
        if (
            policy is ErrorPolicy.IGNORE_UNSUPPORTED_DOWN
            and NO_SUCH_COMMAND in result.output
        ):
            logger.warning("It looks like `docker-compose down` didn't work.")
            logger.warning(
                "This probably means your version of docker-compose "
                "doesn't support the `down` command"
            )
            logger.warning(
                "Updating to version 1.6+ of docker-compose is likely to fix this issue."
            )
            return

        raise ExecutionError(result.exit_code, args, result.output)
