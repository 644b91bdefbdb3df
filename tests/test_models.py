"""Tests for the configuration and host models."""

import pytest
from pydantic import ValidationError

from wakeguard.models.host import HostModel
from wakeguard.models.hosts_policy import HostsPolicyModel
from wakeguard.models.wakeguard import WakeguardModel
from wakeguard.models.wol import WolModel


class TestHostModel:
    """Tests for HostModel."""

    def test_valid_host(self) -> None:
        host = HostModel(name="node1", ip="192.168.1.10", mac="aa-bb-cc-dd-ee-ff", labels={"role": "worker"})
        assert host.mac == "AA:BB:CC:DD:EE:FF"
        assert host.labels == {"role": "worker"}

    def test_invalid_ip_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HostModel(name="node1", ip="256.1.1.1", mac="AA:BB:CC:DD:EE:FF")

    def test_invalid_mac_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HostModel(name="node1", ip="192.168.1.10", mac="AA:BB:CC:DD:EE")

    def test_mac_is_optional(self) -> None:
        host = HostModel(name="node1", ip="192.168.1.10")
        assert host.mac is None

    def test_host_is_immutable(self) -> None:
        host = HostModel(name="node1", ip="192.168.1.10")
        with pytest.raises(ValidationError):
            host.ip = "192.168.1.11"  # type: ignore[misc]

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HostModel(name="node1", ip="192.168.1.10", hostname="node1.lan")  # type: ignore[call-arg]


class TestPolicyModels:
    """Tests for policy and WoL settings."""

    def test_policy_defaults(self) -> None:
        policy = HostsPolicyModel()
        assert policy.debounce_threshold == 3
        assert policy.confirm_deadline == 60
        assert policy.wake_retries == 3

    def test_interval_longer_than_deadline_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HostsPolicyModel(confirm_interval=30, confirm_deadline=10)

    def test_wol_broadcast_validated(self) -> None:
        with pytest.raises(ValidationError):
            WolModel(broadcast="255.255.255")

    def test_duplicate_host_names_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WakeguardModel(hosts=[{"name": "a", "ip": "10.0.0.1"}, {"name": "a", "ip": "10.0.0.2"}])

    def test_empty_config_uses_defaults(self) -> None:
        config = WakeguardModel()
        assert config.hosts == []
        assert config.wol.port == 9
        assert config.wake_log.enabled is True
