from pydantic import BaseModel, ConfigDict, Field, field_validator
from wakeguard.libraries.validators import validate_ipv4, normalize_mac

class HostModel(BaseModel):
    name: str = Field(min_length=1)
    ip: str
    mac: str | None = None
    labels: dict[str, str] = {}
    keep_awake: bool = False

    model_config = ConfigDict(extra='forbid', frozen=True)

    @field_validator('ip', mode='before')
    @classmethod
    def validate_ip(cls, value):
        if isinstance(value, str):
            value = value.strip()

        if not validate_ipv4(value):
            raise ValueError(f'Invalid IPv4 address: {value!r}')

        return value

    @field_validator('mac', mode='before')
    @classmethod
    def validate_mac(cls, value):
        if value is None or value == '':
            return None

        # normalize_mac raises AddressValidationError, a ValueError, which pydantic reports
        return normalize_mac(value)
