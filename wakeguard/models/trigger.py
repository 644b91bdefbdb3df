from pydantic import BaseModel, ConfigDict, Field

class TriggerModel(BaseModel):
    enabled: bool = False
    listen: str = '127.0.0.1'
    port: int = Field(default=9099, ge=1, le=65535)

    model_config = ConfigDict(extra='forbid')
