from pydantic import BaseModel
from typing import Optional, Dict, Any


class EventCreate(BaseModel):
    event: str
    customerId: str
    metadata: Optional[Dict[str, Any]] = None
