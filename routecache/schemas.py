"""
Pydantic schemas for the hydration handoff and API responses
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


# ===== HYDRATION SCHEMAS =====

class HydrationEntry(BaseModel):
    """One serialized cache entry, as produced by ``CacheStore.snapshot``"""
    value: Any = None
    stale_at: Optional[float] = Field(default=None, alias="staleAt")
    expires_at: float = Field(alias="expiresAt")

    class Config:
        populate_by_name = True

    @property
    def resolved_stale_at(self) -> float:
        """Snapshots that carry only an expiry are fresh until they expire"""
        if self.stale_at is None:
            return self.expires_at
        return self.stale_at


# ===== API SCHEMAS =====

class SnapshotResponse(BaseModel):
    """Server-side prefetch result handed to a client store"""
    path: str
    data: Dict[str, Dict[str, Any]]


class HealthResponse(BaseModel):
    """Health check payload"""
    status: str
    source: str
