"""API key and daily quota (RPD) data models."""

from dataclasses import dataclass

from pydantic import BaseModel, Field, model_validator


def mask_api_key(key: str) -> str:
    """Return a display-safe form of an API key (``AIza****wxyz``)."""
    if not key or len(key) < 8:
        return "****"
    return f"{key[:4]}****{key[-4:]}"


@dataclass(frozen=True)
class Credential:
    """A configured API key. ``value`` is the raw secret and is never logged."""

    id: str
    value: str

    @property
    def masked(self) -> str:
        return mask_api_key(self.value)

    def __repr__(self) -> str:
        return f"Credential(id={self.id!r}, masked={self.masked!r})"


class ApiKeyUsage(BaseModel):
    """Daily usage record for one API key."""

    key_id: str
    key_name: str
    masked_key: str
    used_today: int = 0
    max_per_day: int
    last_reset_date: str
    is_active: bool = True


class RpdStats(BaseModel):
    """Requests-per-day snapshot across every configured key.

    ``total_used``, ``total_max`` and ``remaining`` are derived from
    ``api_keys`` whenever a snapshot is built or loaded.
    """

    total_used: int = 0
    total_max: int = 0
    remaining: int = 0
    reset_time: str
    api_keys: list[ApiKeyUsage] = Field(default_factory=list)

    @model_validator(mode="after")
    def _recompute_totals(self) -> "RpdStats":
        self.recompute()
        return self

    def recompute(self) -> None:
        self.total_used = sum(key.used_today for key in self.api_keys)
        self.total_max = sum(key.max_per_day for key in self.api_keys)
        self.remaining = max(self.total_max - self.total_used, 0)

    def find(self, key_id: str) -> ApiKeyUsage | None:
        for key in self.api_keys:
            if key.key_id == key_id:
                return key
        return None
