from datetime import datetime
from typing import List, Optional, TypedDict


class JourneyDocument(TypedDict, total=False):
    _id: str
    user_id: str
    title: str
    content: str
    image_url: Optional[str]
    tags: List[str]
    likes: int
    created_at: datetime
