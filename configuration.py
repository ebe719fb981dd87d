"""
Configuration Module

Everything docker-compose needs before it can be invoked: the project name,
the compose files, the docker daemon to talk to and the environment
variables that select it.
"""

import os
import re
import secrets
import string
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse
from pydantic import BaseModel
from utils import ConfigurationError, logger

DOCKER_HOST = "DOCKER_HOST"
DOCKER_TLS_VERIFY = "DOCKER_TLS_VERIFY"
DOCKER_CERT_PATH = "DOCKER_CERT_PATH"

SECURE_VARIABLES = {DOCKER_TLS_VERIFY, DOCKER_CERT_PATH}

LOCALHOST = "127.0.0.1"


def validate_remote_environment(environment: Mapping[str, str]) -> Mapping[str, str]:
    """Check that a remote docker environment has every variable it needs

    DOCKER_HOST is always required. When DOCKER_TLS_VERIFY is present at all,
    whatever its value, DOCKER_TLS_VERIFY and DOCKER_CERT_PATH must both be
    set. Empty values count as missing.

    Args:
        environment (Mapping[str, str]): Variables handed to docker-compose

    Returns:
        Mapping[str, str]: The same mapping, unchanged

    Raises:
        ConfigurationError: Listing every missing variable
    """
    required = {DOCKER_HOST}
    if DOCKER_TLS_VERIFY in environment:
        required |= SECURE_VARIABLES

    missing = sorted(name for name in required if not environment.get(name))
    if missing:
        raise ConfigurationError(
            "Missing required environment variables: "
            + ", ".join(missing)
            + ". Please run `docker-machine env <machine-name>` and "
            "ensure they are set on the DockerMachine."
        )
    return environment


class ProjectName:
    """The docker-compose project name, passed as --project-name"""

    VALID_NAME = re.compile(r"^[a-z0-9]+$")
    RANDOM_LENGTH = 8

    def __init__(self, name: str):
        if not self.VALID_NAME.match(name or ""):
            raise ConfigurationError(
                f"Invalid project name '{name}'. "
                "Project names may only contain lowercase letters and digits."
            )
        self.name = name

    @classmethod
    def random(cls):
        alphabet = string.ascii_lowercase + string.digits
        return cls("".join(secrets.choice(alphabet) for _ in range(cls.RANDOM_LENGTH)))

    @classmethod
    def from_string(cls, name: str):
        return cls(name)

    def as_args(self) -> List[str]:
        return ["--project-name", self.name]

    def __eq__(self, other):
        return isinstance(other, ProjectName) and other.name == self.name

    def __hash__(self):
        return hash(self.name)

    def __repr__(self):
        return f"ProjectName({self.name!r})"


class ComposeFiles:
    """The docker-compose files of a project, passed as --file arguments"""

    def __init__(self, paths: List[Path]):
        self.paths = paths

    @classmethod
    def from_paths(cls, *paths):
        if not paths:
            raise ConfigurationError("A docker-compose file must be specified.")

        resolved = [Path(path).absolute() for path in paths]
        missing = [str(path) for path in resolved if not path.is_file()]
        if missing:
            raise ConfigurationError(
                "The following docker-compose files do not exist: "
                + ", ".join(missing)
            )
        return cls(resolved)

    @property
    def working_directory(self) -> Path:
        return self.paths[0].parent

    def as_args(self) -> List[str]:
        args = []
        for path in self.paths:
            args.extend(["--file", str(path)])
        return args


def _ip_from_docker_host(docker_host: Optional[str]) -> str:
    if docker_host and docker_host.startswith("tcp://"):
        return urlparse(docker_host).hostname or LOCALHOST
    return LOCALHOST


class DockerMachine:
    """The docker daemon that runs the containers

    Provides the IP address used to reach published ports and the
    environment variables docker-compose needs to reach the daemon.
    """

    def __init__(self, ip: str, environment: Optional[Dict[str, str]] = None):
        self.ip = ip
        self.environment = dict(environment or {})

    def get_ip(self) -> str:
        return self.ip

    @classmethod
    def local(cls):
        return cls(_ip_from_docker_host(os.getenv(DOCKER_HOST)))

    @classmethod
    def remote(
        cls,
        host: str,
        tls_verify: bool = False,
        cert_path: Optional[str] = None,
        additional: Optional[Mapping[str, str]] = None,
    ):
        environment = dict(additional or {})
        environment[DOCKER_HOST] = host
        if tls_verify:
            environment[DOCKER_TLS_VERIFY] = "1"
            environment[DOCKER_CERT_PATH] = cert_path or ""
        validate_remote_environment(environment)
        return cls(_ip_from_docker_host(host), environment)

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = None):
        """Build a machine from DOCKER_* variables, local when DOCKER_HOST is unset"""
        environ = os.environ if environ is None else environ
        if DOCKER_HOST not in environ:
            logger.info("Using local docker daemon", ip=LOCALHOST)
            return cls(LOCALHOST)

        environment = {
            name: environ[name]
            for name in (DOCKER_HOST, DOCKER_TLS_VERIFY, DOCKER_CERT_PATH)
            if name in environ
        }
        validate_remote_environment(environment)
        machine = cls(_ip_from_docker_host(environment[DOCKER_HOST]), environment)
        logger.info(
            "Using remote docker daemon",
            ip=machine.ip,
            tls=DOCKER_TLS_VERIFY in environment,
        )
        return machine


class ComposeSettings(BaseModel):
    """Settings read from the process environment"""

    compose_binary: str = "docker-compose"
    compose_files: List[str] = ["docker-compose.yml"]
    project_name: Optional[str] = None
    log_timeout_seconds: float = 120.0
    harness_token: str = "default-secret-token"
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls):
        raw_files = os.getenv("COMPOSE_FILES", "docker-compose.yml")
        files = [
            path.strip()
            for chunk in raw_files.split(os.pathsep)
            for path in chunk.split(",")
            if path.strip()
        ]
        return cls(
            compose_binary=os.getenv("COMPOSE_BINARY", "docker-compose"),
            compose_files=files,
            project_name=os.getenv("COMPOSE_PROJECT_NAME") or None,
            log_timeout_seconds=float(os.getenv("COMPOSE_LOG_TIMEOUT", 120)),
            harness_token=os.getenv("HARNESS_TOKEN", "default-secret-token"),
            host=os.getenv("IP", "127.0.0.1"),
            port=int(os.getenv("PORT", 8000)),
        )

    def project(self) -> ProjectName:
        if self.project_name:
            return ProjectName.from_string(self.project_name)
        return ProjectName.random()
