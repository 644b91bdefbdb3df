import datetime
from typing import Any, Literal
from pydantic import BaseModel, ConfigDict, Field
from wakeguard.models.power import utcnow

AttemptOutcome = Literal['sent', 'send_failed']
LogKind = Literal['probe', 'wake', 'confirm']

class WakeEvent(BaseModel):
    host: str
    reason: str = 'manual'
    requested_at: datetime.datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

class WakeAttempt(BaseModel):
    host: str | None
    mac: str
    sent_at: datetime.datetime = Field(default_factory=utcnow)
    packet_digest: str
    outcome: AttemptOutcome
    packets_sent: int = 0
    error: str | None = None

    model_config = ConfigDict(frozen=True)

class WakeLogEntry(BaseModel):
    kind: LogKind
    host: str | None
    outcome: str
    recorded_at: datetime.datetime = Field(default_factory=utcnow)
    detail: dict[str, Any] = {}

    model_config = ConfigDict(frozen=True)

class WakeOutcome(BaseModel):
    host: str
    status: Literal['confirmed', 'skipped', 'failed', 'rejected']
    attempts: int = 0
    detail: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return self.status in ('confirmed', 'skipped')
