from .media_roles import (
    GalleryItemOut,
    MediaItemCreateRequest,
    MediaItemMoveRequest,
    MediaRolesResponse,
    MediaValidationOut,
    RoleIndexRequest,
)

__all__ = [
    "GalleryItemOut",
    "MediaItemCreateRequest",
    "MediaItemMoveRequest",
    "MediaRolesResponse",
    "MediaValidationOut",
    "RoleIndexRequest",
]
