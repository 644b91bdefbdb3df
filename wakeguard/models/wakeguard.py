from typing import Any
from pydantic import BaseModel, ConfigDict, model_validator
from wakeguard.models.hosts_policy import HostsPolicyModel
from wakeguard.models.inventory import InventoryModel
from wakeguard.models.probe import ProbeModel
from wakeguard.models.trigger import TriggerModel
from wakeguard.models.wake_log import WakeLogModel
from wakeguard.models.wol import WolModel

class WakeguardModel(BaseModel):
    # validated one by one at ingestion so a bad host does not reject the whole config
    hosts: list[dict[str, Any]] = []
    hosts_policy: HostsPolicyModel = HostsPolicyModel()
    inventory: InventoryModel = InventoryModel()
    probe: ProbeModel = ProbeModel()
    wol: WolModel = WolModel()
    wake_log: WakeLogModel = WakeLogModel()
    trigger: TriggerModel = TriggerModel()

    model_config = ConfigDict(extra='forbid')

    @model_validator(mode='after')
    def validate_after(self):
        # ensure that hosts[].name is unique
        host_names = [host.get('name') for host in self.hosts]
        if len(host_names) != len(set(host_names)):
            raise ValueError('Host names must be unique')

        return self
