"""
User schemas.

Only the identity fields commission management needs: who the user is, for
responses and audit descriptions.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class UserIdentity(BaseModel):
    id: str
    email: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "UserIdentity":
        return cls(id=str(doc["id"]), email=doc.get("email"))
