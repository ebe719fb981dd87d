"""
Parsing Module

Turns the text printed by docker-compose into structured values.

Container names are recovered from docker-compose's <project>_<service>_<index>
naming convention. This is a heuristic: a service name that itself ends in
"_<digits>" cannot be told apart from the index.
"""

import re
from typing import FrozenSet, NamedTuple
from models import DockerPort, Ports
from utils import ConfigurationError

SEPARATOR_LINE = re.compile(r"^[-\s]*-[-\s]*$")
PORT_PATTERN = re.compile(
    r"(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}):(\d+)->(\d+)/(?:tcp|udp)"
)
VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)")
UNROUTABLE_IP = "0.0.0.0"


class ComposeVersion(NamedTuple):
    major: int
    minor: int
    patch: int

    def at_least(self, other: "ComposeVersion") -> bool:
        return self >= other

    def __str__(self):
        return f"{self.major}.{self.minor}.{self.patch}"


VERSION_1_7_0 = ComposeVersion(1, 7, 0)


def parse_compose_version(output: str) -> ComposeVersion:
    """Parse the output of `docker-compose -v`

    "docker-compose version 1.7.0rc1, build 1ad8866" gives 1.7.0; anything
    after major.minor.patch is ignored.
    """
    match = VERSION_PATTERN.search(output or "")
    if not match:
        raise ConfigurationError(
            f"Could not parse a docker-compose version from '{output}'. "
            "Check that docker-compose is installed and on the PATH."
        )
    return ComposeVersion(*(int(part) for part in match.groups()))


def container_name_from_identifier(identifier: str) -> str:
    """Strip the project prefix and the scale index: dir_db_1 -> db"""
    tokens = identifier.split("_")
    if len(tokens) >= 3 and tokens[-1].isdigit():
        return "_".join(tokens[1:-1])

    if len(tokens) >= 2:
        tokens = tokens[1:]
    if len(tokens) >= 2 and tokens[-1].isdigit():
        tokens = tokens[:-1]
    return "_".join(tokens)


def parse_container_names(ps_output: str) -> FrozenSet[str]:
    """Parse `docker-compose ps` into the set of service names it lists

    Only lines after the dashed separator under the header are read.
    """
    names = set()
    in_body = False
    for line in ps_output.splitlines():
        if SEPARATOR_LINE.match(line):
            in_body = True
            continue
        if not in_body or not line.strip():
            continue
        names.add(container_name_from_identifier(line.split()[0]))
    return frozenset(names)


def parse_ports(ps_output: str, machine_ip: str) -> Ports:
    """Parse the port mappings out of `docker-compose ps <service>`

    Bindings on 0.0.0.0 are rewritten to machine_ip. Only the first mapping
    for a given (external, internal) pair is kept.
    """
    found = {}
    for line in ps_output.splitlines():
        for ip, external, internal in PORT_PATTERN.findall(line):
            key = (int(external), int(internal))
            if key in found:
                continue
            found[key] = DockerPort(
                ip=machine_ip if ip == UNROUTABLE_IP else ip,
                external_port=key[0],
                internal_port=key[1],
            )
    return Ports(ports=frozenset(found.values()))
