from pydantic import BaseModel, ConfigDict, Field, field_validator
from wakeguard.libraries.validators import validate_ipv4

class WolModel(BaseModel):
    port: int = Field(default=9, ge=1, le=65535)
    broadcast: str = '255.255.255.255'
    interface: str | None = None
    count: int = Field(default=1, ge=1, le=10)
    packet_interval: float = Field(default=0.5, ge=0)

    model_config = ConfigDict(extra='forbid')

    @field_validator('broadcast')
    @classmethod
    def validate_broadcast(cls, value):
        if not validate_ipv4(value):
            raise ValueError(f'Invalid broadcast address: {value!r}')

        return value
