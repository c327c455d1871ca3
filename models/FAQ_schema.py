# models/FAQ_schema.py
from pydantic import BaseModel, Field
from typing import List, Optional


class FAQEntry(BaseModel):
    id: Optional[str] = None
    question: str
    answer: str
    category: str = "general"
    keywords: List[str] = Field(default_factory=list)
    priority: int = 0
    is_active: bool = True
