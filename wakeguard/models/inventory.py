from pydantic import BaseModel, ConfigDict

class KubectlInventoryModel(BaseModel):
    enabled: bool = False
    context: str | None = None
    selector: str | None = None
    mac_annotation: str = 'wakeguard/mac'

    model_config = ConfigDict(extra='forbid')

class InventoryModel(BaseModel):
    hosts_file: str | None = None
    kubectl: KubectlInventoryModel = KubectlInventoryModel()

    model_config = ConfigDict(extra='forbid')
