import socket
import httpx
from pydantic import BaseModel, ConfigDict
from typing import FrozenSet, List, Optional

LISTEN_CHECK_TIMEOUT_SECONDS = 0.5


class DockerPort(BaseModel):
    """A container port reachable from the host: ip:external_port -> internal_port"""

    model_config = ConfigDict(frozen=True)

    ip: str
    external_port: int
    internal_port: int

    def is_listening_now(self) -> bool:
        """Whether a TCP connection to the external port can be opened right now"""
        try:
            with socket.create_connection(
                (self.ip, self.external_port), timeout=LISTEN_CHECK_TIMEOUT_SECONDS
            ):
                return True
        except OSError:
            return False

    def in_format(self, format_string: str) -> str:
        """Substitute $HOST, $EXTERNAL_PORT and $INTERNAL_PORT in format_string"""
        return (
            format_string.replace("$HOST", self.ip)
            .replace("$EXTERNAL_PORT", str(self.external_port))
            .replace("$INTERNAL_PORT", str(self.internal_port))
        )

    def is_http_responding(
        self, url_format: str = "http://$HOST:$EXTERNAL_PORT/", timeout: float = 2.0
    ) -> bool:
        url = self.in_format(url_format)
        try:
            response = httpx.get(url, timeout=timeout)
        except httpx.HTTPError:
            return False
        return response.status_code < 500


class Ports(BaseModel):
    """The port mappings of a single service"""

    model_config = ConfigDict(frozen=True)

    ports: FrozenSet[DockerPort] = frozenset()

    def port(self, internal_port: int) -> Optional[DockerPort]:
        for docker_port in self.ports:
            if docker_port.internal_port == internal_port:
                return docker_port
        return None


class ExecRequest(BaseModel):
    options: List[str] = []  # e.g. ["-T"]
    arguments: List[str]  # e.g. ["ls", "-l"]
