from pydantic import BaseModel


class ChannelOut(BaseModel):
    id: int
    name: str
    slug: str | None = None
    always_live: bool
    live_feed_ref: str | None = None
    logo_ref: str | None = None
    is_active: bool

    class Config:
        from_attributes = True
