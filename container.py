from models import DockerPort, Ports
from utils import ConfigurationError


class Container:
    """A docker-compose service; port information is fetched on every call"""

    def __init__(self, name: str, compose):
        self.name = name
        self.compose = compose

    def ports(self) -> Ports:
        return self.compose.ports(self.name)

    def port(self, internal_port: int) -> DockerPort:
        docker_port = self.ports().port(internal_port)
        if docker_port is None:
            raise ConfigurationError(
                f"No internal port '{internal_port}' for container '{self.name}'"
            )
        return docker_port

    def are_all_ports_open(self) -> bool:
        return all(port.is_listening_now() for port in self.ports().ports)

    def __eq__(self, other):
        return isinstance(other, Container) and other.name == self.name

    def __hash__(self):
        return hash(self.name)

    def __repr__(self):
        return f"Container({self.name!r})"
