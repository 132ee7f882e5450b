"""
Tests for service container launching.
"""

import asyncio

import pytest

from twergstack.config import ServiceDefinition
from twergstack.environment.launcher import ServiceLauncher, format_container, format_image
from twergstack.errors import EngineError


@pytest.fixture
def launcher(mock_engine):
    return ServiceLauncher(mock_engine, registry_host="localhost:5000")


def test_format_image():
    assert format_image("localhost:5000", "mimir", "0.4.2") == "localhost:5000/mimir:0.4.2"


def test_format_container():
    assert format_container("dev1", "nginx") == "dev1_nginx"


class TestBuildSpec:
    def test_plain_service(self, launcher, two_services):
        spec = launcher.build_spec("dev1", "net-1", "172.19", two_services[0], 9002)

        assert spec.name == "dev1_api"
        assert spec.image == "localhost:5000/mimir:0.4.2"
        assert spec.network_id == "net-1"
        assert spec.ipv4_address == "172.19.0.10"
        assert spec.aliases == ["api"]
        assert spec.environment == ["RUN_MODE=production"]
        assert spec.exposed_ports == []
        assert spec.port_bindings == {}

    def test_ingress_bound_to_allocated_port(self, launcher, two_services):
        spec = launcher.build_spec("dev1", "net-1", "172.19", two_services[1], 9002)

        assert spec.exposed_ports == ["80/tcp"]
        assert spec.port_bindings == {"80/tcp": ("0.0.0.0", 9002)}

    def test_ingress_ports_override_descriptor(self, launcher):
        nginx = ServiceDefinition.model_validate(
            {
                "serviceName": "nginx",
                "image": {"name": "nginx"},
                "network": {"addressSuffix": 2},
                "ports": {"443": "8443"},
            }
        )

        spec = launcher.build_spec("dev1", "net-1", "172.19", nginx, 9002)

        assert spec.port_bindings == {"80/tcp": ("0.0.0.0", 9002)}

    def test_exposed_without_binding(self, launcher):
        service = ServiceDefinition.model_validate(
            {
                "serviceName": "api",
                "image": {"name": "api"},
                "network": {"addressSuffix": 10},
                "ports": {"8080": None, "5353/udp": "15353"},
            }
        )

        spec = launcher.build_spec("dev1", "net-1", "172.19", service, 9002)

        assert spec.exposed_ports == ["8080/tcp", "5353/udp"]
        assert spec.port_bindings == {"5353/udp": ("0.0.0.0", 15353)}

    def test_explicit_address_base(self, launcher):
        service = ServiceDefinition.model_validate(
            {
                "serviceName": "api",
                "image": {"name": "api"},
                "network": {"addressBase": "172.30", "addressSuffix": 10},
            }
        )

        spec = launcher.build_spec("dev1", "net-1", "172.19", service, 9002)

        assert spec.ipv4_address == "172.30.0.10"


class TestLaunch:
    def test_launches_in_order(self, launcher, mock_engine, two_services):
        created = asyncio.run(launcher.launch("dev1", "net-1", "172.19", two_services, 9002))

        assert mock_engine.calls == [
            "pull_image:localhost:5000/mimir:0.4.2",
            "create_container:dev1_api",
            "start_container:dev1_api",
            "pull_image:localhost:5000/nginx:1.19",
            "create_container:dev1_nginx",
            "start_container:dev1_nginx",
        ]
        assert mock_engine.running_containers == ["dev1_api", "dev1_nginx"]
        assert [(r.kind, r.name) for r in created] == [
            ("image", "localhost:5000/mimir:0.4.2"),
            ("container", "dev1_api"),
            ("image", "localhost:5000/nginx:1.19"),
            ("container", "dev1_nginx"),
        ]
        assert created[1].id == "id-dev1_api"

    def test_pull_failure_stops_sequence(self, launcher, mock_engine, two_services):
        mock_engine.set_pull_failure("localhost:5000/mimir")
        created = []

        with pytest.raises(EngineError, match="Could not pull image"):
            asyncio.run(launcher.launch("dev1", "net-1", "172.19", two_services, 9002, created))

        assert created == []
        assert mock_engine.containers == {}

    def test_create_failure_keeps_earlier_resources(self, launcher, mock_engine, two_services):
        mock_engine.set_create_failure("dev1_nginx")
        created = []

        with pytest.raises(EngineError, match="dev1_nginx"):
            asyncio.run(launcher.launch("dev1", "net-1", "172.19", two_services, 9002, created))

        assert mock_engine.running_containers == ["dev1_api"]
        assert [(r.kind, r.name) for r in created] == [
            ("image", "localhost:5000/mimir:0.4.2"),
            ("container", "dev1_api"),
            ("image", "localhost:5000/nginx:1.19"),
        ]

    def test_start_failure_reports_created_container(self, launcher, mock_engine, two_services):
        mock_engine.set_start_failure("dev1_api")
        created = []

        with pytest.raises(EngineError, match="mock start failure"):
            asyncio.run(launcher.launch("dev1", "net-1", "172.19", two_services, 9002, created))

        assert created[-1].name == "dev1_api"
        assert "dev1_nginx" not in mock_engine.containers
