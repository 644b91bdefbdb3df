from pydantic import BaseModel, ConfigDict, Field, model_validator

class HostsPolicyModel(BaseModel):
    debounce_threshold: int = Field(default=3, ge=1)
    confirm_interval: float = Field(default=5, gt=0)
    confirm_deadline: float = Field(default=60, gt=0)
    wake_retries: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=5, ge=0)
    check_interval: int = Field(default=60, ge=1)

    model_config = ConfigDict(extra='forbid')

    @model_validator(mode='after')
    def validate_after(self):
        if self.confirm_interval > self.confirm_deadline:
            raise ValueError('confirm_interval must not exceed confirm_deadline')

        return self
