from pydantic import BaseModel, ConfigDict, Field

class ProbeModel(BaseModel):
    ping_timeout: float = Field(default=2, gt=0, le=60)
    tcp_ports: list[int] = [22]
    tcp_timeout: float = Field(default=2, gt=0, le=60)

    model_config = ConfigDict(extra='forbid')
