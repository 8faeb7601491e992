from pydantic import BaseModel, Field, field_validator


class CatalogFilter(BaseModel):
    """Catalog listing filter"""
    category: str | None = Field(None, description="Group label to restrict the listing to")
    search: str | None = Field(None, description="Case-insensitive text matched against name and guide id")
    skip: int = Field(0, ge=0, description="Number of entries to skip (paging)")

    @field_validator('category', 'search', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CatalogItem(BaseModel):
    """Channel as it appears in a catalog listing"""
    id: str
    name: str
    artwork_url: str = Field(..., description="Channel logo, empty when the playlist has none")
    category: str


class ProgrammeResponse(BaseModel):
    """Single programme data"""
    title: str
    start: str = Field(..., description="ISO8601 UTC start time")
    stop: str = Field(..., description="ISO8601 UTC stop time")
    description: str | None = None
    category: str | None = None


class ChannelDetail(BaseModel):
    """Channel metadata with now/next programme information"""
    id: str
    name: str
    artwork_url: str
    category: str
    description: str
    country: str = "Unknown"
    language: str = "Unknown"
    guide_id: str
    now: ProgrammeResponse | None = None
    next: ProgrammeResponse | None = None


class PlaybackTarget(BaseModel):
    """Where the playback client should fetch the stream from"""
    id: str
    name: str
    origin_url: str
    url: str = Field(..., description="URL handed to the player: the origin or a /proxy URL")
    relayed: bool
    request_headers: dict[str, str] = Field(default_factory=dict, description="Headers the origin expects")


class FavoritesResponse(BaseModel):
    status: str = "ok"
    favorites: list[str]
