import socket
import httpx
from unittest.mock import Mock, patch
from models import DockerPort, ExecRequest, Ports


class TestDockerPort:
    """Test cases for docker ports"""

    def setup_method(self):
        self.port = DockerPort(ip="10.0.0.1", external_port=32768, internal_port=80)

    def test_in_format_substitutes_host_and_ports(self):
        assert (
            self.port.in_format("http://$HOST:$EXTERNAL_PORT/health?internal=$INTERNAL_PORT")
            == "http://10.0.0.1:32768/health?internal=80"
        )

    def test_ports_are_hashable_and_compared_by_value(self):
        same = DockerPort(ip="10.0.0.1", external_port=32768, internal_port=80)
        assert self.port == same
        assert len({self.port, same}) == 1

    def test_is_listening_now_with_an_open_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = DockerPort(
                ip="127.0.0.1", external_port=server.getsockname()[1], internal_port=80
            )
            assert port.is_listening_now() is True

    def test_is_listening_now_with_a_closed_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.bind(("127.0.0.1", 0))
            free_port = probe.getsockname()[1]
        port = DockerPort(ip="127.0.0.1", external_port=free_port, internal_port=80)
        assert port.is_listening_now() is False

    def test_is_http_responding(self):
        with patch("models.httpx.get") as mock_get:
            mock_get.return_value = Mock(status_code=404)
            assert self.port.is_http_responding() is True
            mock_get.assert_called_once_with("http://10.0.0.1:32768/", timeout=2.0)

    def test_is_http_responding_with_server_error(self):
        with patch("models.httpx.get") as mock_get:
            mock_get.return_value = Mock(status_code=503)
            assert self.port.is_http_responding() is False

    def test_is_http_responding_when_connection_fails(self):
        with patch("models.httpx.get") as mock_get:
            mock_get.side_effect = httpx.ConnectError("refused")
            assert self.port.is_http_responding() is False


class TestPorts:
    """Test cases for port collections"""

    def test_lookup_by_internal_port(self):
        web = DockerPort(ip="10.0.0.1", external_port=8080, internal_port=80)
        tls = DockerPort(ip="10.0.0.1", external_port=8443, internal_port=443)
        ports = Ports(ports=frozenset({web, tls}))
        assert ports.port(443) == tls
        assert ports.port(22) is None

    def test_equality_ignores_order(self):
        web = DockerPort(ip="10.0.0.1", external_port=8080, internal_port=80)
        tls = DockerPort(ip="10.0.0.1", external_port=8443, internal_port=443)
        assert Ports(ports=[web, tls]) == Ports(ports=[tls, web])


class TestExecRequest:
    def test_options_default_to_empty(self):
        assert ExecRequest(arguments=["ls"]).options == []
