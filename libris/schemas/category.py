from pydantic import BaseModel
from typing import Optional

class Category(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    color: str
    icon: str
    is_active: bool

    class Config:
        from_attributes = True
