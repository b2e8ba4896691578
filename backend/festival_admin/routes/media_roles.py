import logging

from fastapi import APIRouter, HTTPException, status

from .. import schemas
from ..config import settings
from ..metrics import media_role_edits_total
from ..repositories import content_documents
from ..utils.media_model import ContentRecord, RawRecord, to_media_fields
from ..utils.media_normalizer import normalize
from ..utils.media_repair import repair
from ..utils.media_roles import (
    add_media,
    clear_cover,
    clear_logo,
    get_cover,
    get_display_cover,
    get_gallery_view,
    get_logo,
    get_poster,
    move_media,
    remove_media,
    set_cover_index,
    set_logo_index,
)
from ..utils.media_validation import validate

router = APIRouter(prefix="/admin/media", tags=["admin-media"])
logger = logging.getLogger(__name__)


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def _require_index(record: ContentRecord, index: int, label: str) -> None:
    if not record.in_bounds(index):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{label} index {index} is out of range (gallery has {len(record)} images)",
        )


async def _load_record(collection: str, record_id: str) -> ContentRecord:
    if collection not in settings.media_collections:
        raise _not_found(f"Unknown collection '{collection}'")
    data = await content_documents.get_document(collection, record_id)
    if data is None:
        raise _not_found("Record not found")
    return normalize(
        RawRecord(id=record_id, data=data, collection=collection), log=logger
    )


def _to_response(record: ContentRecord) -> schemas.MediaRolesResponse:
    result = validate(record)
    return schemas.MediaRolesResponse(
        record_id=record.id,
        collection=record.collection,
        gallery=[
            schemas.GalleryItemOut(
                url=item.url,
                index=item.index,
                is_cover=item.is_cover,
                is_logo=item.is_logo,
            )
            for item in get_gallery_view(record)
        ],
        cover_index=record.cover_index,
        logo_index=record.logo_index,
        cover_url=get_cover(record),
        logo_url=get_logo(record),
        poster_url=get_poster(record),
        display_cover_url=get_display_cover(record),
        validation=schemas.MediaValidationOut(
            is_valid=result.is_valid, issues=list(result.issues)
        ),
    )


async def _save_record(record: ContentRecord, operation: str) -> schemas.MediaRolesResponse:
    result = validate(record)
    if not result.is_valid:
        logger.warning(
            "Rejected media edit record=%s collection=%s operation=%s issues=%s",
            record.id,
            record.collection,
            operation,
            result.issues,
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "Edit would leave invalid media roles; use repair first",
                "issues": list(result.issues),
            },
        )
    updated = await content_documents.update_media_fields(
        record.collection, record.id, to_media_fields(record)
    )
    if updated is None:
        raise _not_found("Record not found")
    media_role_edits_total.labels(operation=operation).inc()
    logger.info(
        "Media roles updated record=%s collection=%s operation=%s",
        record.id,
        record.collection,
        operation,
    )
    return _to_response(record)


@router.get("/{collection}/{record_id}", response_model=schemas.MediaRolesResponse)
async def get_media_roles(collection: str, record_id: str):
    record = await _load_record(collection, record_id)
    return _to_response(record)


@router.put("/{collection}/{record_id}/cover", response_model=schemas.MediaRolesResponse)
async def put_cover(collection: str, record_id: str, payload: schemas.RoleIndexRequest):
    record = await _load_record(collection, record_id)
    _require_index(record, payload.index, "Cover")
    return await _save_record(
        set_cover_index(record, payload.index, log=logger), "set_cover"
    )


@router.delete("/{collection}/{record_id}/cover", response_model=schemas.MediaRolesResponse)
async def delete_cover(collection: str, record_id: str):
    record = await _load_record(collection, record_id)
    return await _save_record(clear_cover(record), "clear_cover")


@router.put("/{collection}/{record_id}/logo", response_model=schemas.MediaRolesResponse)
async def put_logo(collection: str, record_id: str, payload: schemas.RoleIndexRequest):
    record = await _load_record(collection, record_id)
    _require_index(record, payload.index, "Logo")
    return await _save_record(
        set_logo_index(record, payload.index, log=logger), "set_logo"
    )


@router.delete("/{collection}/{record_id}/logo", response_model=schemas.MediaRolesResponse)
async def delete_logo(collection: str, record_id: str):
    record = await _load_record(collection, record_id)
    return await _save_record(clear_logo(record), "clear_logo")


@router.post(
    "/{collection}/{record_id}/items",
    response_model=schemas.MediaRolesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_item(
    collection: str, record_id: str, payload: schemas.MediaItemCreateRequest
):
    url = payload.url.strip()
    if not url:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="url must not be blank",
        )
    record = await _load_record(collection, record_id)
    return await _save_record(
        add_media(record, url, position=payload.position), "add_item"
    )


@router.post("/{collection}/{record_id}/items/move", response_model=schemas.MediaRolesResponse)
async def move_item(
    collection: str, record_id: str, payload: schemas.MediaItemMoveRequest
):
    record = await _load_record(collection, record_id)
    _require_index(record, payload.from_index, "Source")
    _require_index(record, payload.to_index, "Target")
    return await _save_record(
        move_media(record, payload.from_index, payload.to_index, log=logger),
        "move_item",
    )


@router.delete(
    "/{collection}/{record_id}/items/{index}",
    response_model=schemas.MediaRolesResponse,
)
async def delete_item(collection: str, record_id: str, index: int):
    record = await _load_record(collection, record_id)
    _require_index(record, index, "Item")
    return await _save_record(remove_media(record, index, log=logger), "remove_item")


@router.post("/{collection}/{record_id}/repair", response_model=schemas.MediaRolesResponse)
async def repair_roles(collection: str, record_id: str):
    record = await _load_record(collection, record_id)
    return await _save_record(repair(record, log=logger), "repair")
