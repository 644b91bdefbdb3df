from pydantic import BaseModel, ConfigDict, Field

class WakeLogModel(BaseModel):
    enabled: bool = True
    path: str | None = None
    max_entries: int = Field(default=1000, ge=1)

    model_config = ConfigDict(extra='forbid')
