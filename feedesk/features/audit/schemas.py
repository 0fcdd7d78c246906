from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

# Fields the log listing may be ordered by.
SORTABLE_FIELDS = frozenset({"created_at", "action", "admin_email", "client_email"})


class AdminLogRead(BaseModel):
    id: str
    admin_id: str
    admin_email: Optional[str] = None
    action: str
    description: str
    client_id: Optional[str] = None
    client_email: Optional[str] = None
    created_at: datetime
