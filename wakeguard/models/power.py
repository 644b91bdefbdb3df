import datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field

ProbeKind = Literal['ping', 'tcp_port']
Verdict = Literal['online', 'offline', 'unknown']

def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)

class ProbeResult(BaseModel):
    host: str
    kind: ProbeKind
    succeeded: bool
    latency: float | None = None
    error: str | None = None
    # the probe itself could not run, as opposed to the host not answering
    errored: bool = False
    port: int | None = None
    timestamp: datetime.datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

class PowerState(BaseModel):
    host: str
    verdict: Verdict = 'unknown'
    last_checked_at: datetime.datetime | None = None
    consecutive_failures: int = 0
    latency: float | None = None

    model_config = ConfigDict(extra='forbid')

def as_utc(value: datetime.datetime) -> datetime.datetime:
    # naive datetimes are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)

    return value.astimezone(datetime.timezone.utc)
