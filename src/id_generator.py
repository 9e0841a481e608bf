from __future__ import annotations

import uuid
from typing import Optional


def uuid_record_id(
    prefix: str = "limit", side: Optional[str] = None, idx: Optional[int] = None
) -> str:
    """Return a unique order-record identifier based on ``uuid.uuid4``.

    ``side`` and ``idx`` only make the id readable in logs; uniqueness comes
    from the uuid part.
    """
    parts = [prefix.rstrip("_")]
    if side:
        parts.append(side)
    if idx is not None:
        parts.append(str(idx))
    parts.append(uuid.uuid4().hex)
    return "_".join(filter(None, parts))
