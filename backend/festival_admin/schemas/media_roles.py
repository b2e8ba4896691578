from typing import List, Optional

from pydantic import BaseModel, Field


class GalleryItemOut(BaseModel):
    url: str
    index: int
    is_cover: bool
    is_logo: bool


class MediaValidationOut(BaseModel):
    is_valid: bool
    issues: List[str] = Field(default_factory=list)


class MediaRolesResponse(BaseModel):
    record_id: str
    collection: str
    gallery: List[GalleryItemOut] = Field(default_factory=list)
    cover_index: Optional[int] = None
    logo_index: Optional[int] = None
    cover_url: Optional[str] = None
    logo_url: Optional[str] = None
    poster_url: Optional[str] = None
    display_cover_url: Optional[str] = None
    validation: MediaValidationOut


class RoleIndexRequest(BaseModel):
    index: int


class MediaItemCreateRequest(BaseModel):
    url: str = Field(min_length=1)
    position: Optional[int] = None


class MediaItemMoveRequest(BaseModel):
    from_index: int
    to_index: int
