"""Administrative surface models."""

from typing import Optional

from pydantic import BaseModel


class CacheClearRequest(BaseModel):
    # None clears every namespace.
    namespace: Optional[str] = None


class CacheClearResponse(BaseModel):
    removed: int
