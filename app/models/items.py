from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal
from datetime import datetime

ItemType = Literal["lost", "found"]
ItemStatus = Literal["open", "claimed", "closed"]
MatchSource = Literal["embedding", "lexical"]


class Item(BaseModel):
    """Lost/found report as stored by the item service (read-only here)."""
    id: str
    title: str
    type: ItemType
    status: ItemStatus
    description: Optional[str] = None
    color: Optional[str] = None
    location: Optional[str] = None
    when_lost: Optional[datetime] = None
    # pass-through fields, not used for matching
    user_id: Optional[str] = None
    hub: Optional[str] = None
    image_path: Optional[str] = None
    created_at: Optional[datetime] = None


class ScoredItem(Item):
    model_config = ConfigDict(populate_by_name=True)

    match_score: float = Field(alias="matchScore")


class ScoredMatch(BaseModel):
    """Item + score + which path produced the score."""
    item: Item
    score: float
    source: MatchSource

    def to_scored_item(self) -> ScoredItem:
        return ScoredItem(**self.item.model_dump(), match_score=self.score)


class SearchOptions(BaseModel):
    limit: int = 20
    min_score: float = 0.3


class SearchRequest(BaseModel):
    query: str
    limit: Optional[int] = Field(default=None, ge=0, le=100)
    min_score: Optional[float] = None


class SearchResponse(BaseModel):
    query: str
    mode: str  # embedding | lexical | none
    results: List[ScoredItem]
