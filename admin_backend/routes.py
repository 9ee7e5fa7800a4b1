"""
HTTP routes for the admin backend API.

Handlers stay thin: parse the request, call one service method, map the
records onto response schemas. Errors raised by services are rendered by the
exception handler registered in :mod:`admin_backend.app`.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError as SchemaValidationError

from admin_backend.config import get_settings
from admin_backend.dependencies import (
    get_dropdown_service,
    get_file_manager,
    get_settings_store,
    get_slider_service,
)
from admin_backend.dropdowns import DropdownService
from admin_backend.errors import NotFoundError, ValidationError
from admin_backend.files import FileManager
from admin_backend.intake import IntakeOptions, UploadedFile, intake_request
from admin_backend.persistence.records import DropdownOption, Setting, Slider
from admin_backend.replication import ReplicaSetDeletion
from admin_backend.schemas import (
    CacheStatsResponse,
    CountResponse,
    DropdownBulkRequest,
    DropdownCreateRequest,
    DropdownListResponse,
    DropdownOptionResponse,
    DropdownUpdateRequest,
    MessageResponse,
    PaginationResponse,
    ReplicaSetDeletionResponse,
    SettingResponse,
    SettingsGroupResponse,
    SliderBulkDeleteRequest,
    SliderBulkStatusRequest,
    SliderFields,
    SliderListResponse,
    SliderPageResponse,
    SliderResponse,
)
from admin_backend.settings_store import SettingsStore
from admin_backend.sliders import IMAGE_MAX_SIZE, IMAGE_MIME_TYPES, SliderService

logger = logging.getLogger(__name__)

router = APIRouter()
settings_router = APIRouter(prefix="/settings", tags=["settings"])
sliders_router = APIRouter(prefix="/sliders", tags=["sliders"])
dropdowns_router = APIRouter(prefix="/manage-dropdown", tags=["dropdowns"])

SLIDER_IMAGE_FIELD = "slider_image"


def _setting_response(setting: Setting, files: FileManager) -> SettingResponse:
    return SettingResponse(
        group_type=setting.group_type,
        key=setting.key,
        value=setting.typed_value,
        record_type=setting.record_type,
        url=files.file_url(setting.value) if setting.is_file else None,
        updated_at=setting.updated_at,
    )


def _group_response(
    group_type: str, settings: List[Setting], files: FileManager
) -> SettingsGroupResponse:
    items = [_setting_response(setting, files) for setting in settings]
    return SettingsGroupResponse(
        group_type=group_type,
        settings=items,
        values={item.key: item.url or item.value for item in items},
    )


def _slider_response(slider: Slider, files: FileManager) -> SliderResponse:
    payload = slider.as_dict()
    payload["slider_image_url"] = files.file_url(slider.slider_image)
    return SliderResponse.model_validate(payload)


def _dropdown_response(option: DropdownOption) -> DropdownOptionResponse:
    return DropdownOptionResponse.model_validate(option.as_dict())


def _deletion_response(deletion: ReplicaSetDeletion) -> ReplicaSetDeletionResponse:
    return ReplicaSetDeletionResponse(
        unique_code=deletion.unique_code,
        deleted_count=deletion.count,
        deleted_files=deletion.deleted_files,
    )


def _slider_fields(form_data: dict) -> dict:
    try:
        fields = SliderFields.model_validate(form_data)
    except SchemaValidationError as exc:
        raise ValidationError(
            "Invalid slider fields",
            details={"errors": json.loads(exc.json(include_url=False))},
        ) from exc
    return fields.model_dump(exclude_none=True)


async def _slider_form(request: Request) -> tuple[dict, Optional[str], Optional[UploadedFile]]:
    result = await intake_request(
        request,
        IntakeOptions(
            max_files=1,
            max_file_size=IMAGE_MAX_SIZE,
            allowed_mime_types=IMAGE_MIME_TYPES,
            field_name=SLIDER_IMAGE_FIELD,
        ),
    )
    form_data = dict(result.form_data)
    language = form_data.pop("language", None)
    image = result.file_for(SLIDER_IMAGE_FIELD)
    if image is None and result.upload_method == "binary":
        image = result.files[0]
    return _slider_fields(form_data), language, image


# Settings ---------------------------------------------------------------------


@settings_router.get("/admin/cache/stats", response_model=CacheStatsResponse)
def settings_cache_stats(store: SettingsStore = Depends(get_settings_store)):
    return CacheStatsResponse(stats=store.cache_stats())


@settings_router.delete("/admin/cache/clear", response_model=MessageResponse)
def clear_settings_cache(store: SettingsStore = Depends(get_settings_store)):
    store.clear_cache()
    return MessageResponse(message="Settings cache cleared")


@settings_router.delete("/admin/cache/clear/{group_type}", response_model=MessageResponse)
def clear_settings_group_cache(
    group_type: str, store: SettingsStore = Depends(get_settings_store)
):
    store.clear_cache(group_type)
    return MessageResponse(message=f"Settings cache cleared for {group_type}")


async def _read_settings(
    store: SettingsStore,
    files: FileManager,
    group_type: str,
    key: Optional[str],
    public: bool,
):
    if key is not None:
        setting = await store.get(group_type, key, public=public)
        if setting is None:
            raise NotFoundError(f"Setting {group_type}/{key} not found")
        return _setting_response(setting, files)
    settings = await store.get(group_type, public=public)
    return _group_response(group_type.strip().lower(), settings, files)


@settings_router.get("/{group_type}/front")
async def get_public_settings(
    group_type: str,
    key: Optional[str] = Query(None),
    store: SettingsStore = Depends(get_settings_store),
    files: FileManager = Depends(get_file_manager),
):
    return await _read_settings(store, files, group_type, key, public=True)


@settings_router.get("/{group_type}/admin")
async def get_admin_settings(
    group_type: str,
    key: Optional[str] = Query(None),
    store: SettingsStore = Depends(get_settings_store),
    files: FileManager = Depends(get_file_manager),
):
    return await _read_settings(store, files, group_type, key, public=False)


@settings_router.post("/{group_type}/admin", response_model=SettingsGroupResponse)
async def save_settings(
    group_type: str,
    request: Request,
    store: SettingsStore = Depends(get_settings_store),
    files: FileManager = Depends(get_file_manager),
):
    """
    Save every submitted field of a group. Accepts multipart forms, JSON
    objects, or a raw binary body (keyed by the ``X-Field-Name`` header).
    """
    settings = get_settings()
    result = await intake_request(
        request,
        IntakeOptions(
            max_files=settings.upload_max_files,
            max_file_size=settings.upload_max_file_size,
        ),
    )
    fields = dict(result.form_data)
    for uploaded in result.files:
        fields[uploaded.field_name] = uploaded
    if not fields:
        raise ValidationError("No settings submitted")
    saved = await store.save_fields(group_type, fields)
    return _group_response(saved[0].group_type, saved, files)


@settings_router.delete("/{group_type}/admin", response_model=CountResponse)
async def delete_settings(
    group_type: str,
    key: Optional[str] = Query(None),
    store: SettingsStore = Depends(get_settings_store),
):
    if key is not None:
        await store.delete_key(group_type, key)
        return CountResponse(count=1, message=f"Setting {key} deleted")
    count = await store.delete_group(group_type)
    return CountResponse(count=count, message=f"Deleted {count} setting(s)")


# Sliders ----------------------------------------------------------------------


@sliders_router.get("/front", response_model=SliderListResponse)
async def list_front_sliders(
    language: Optional[str] = Query(None),
    service: SliderService = Depends(get_slider_service),
    files: FileManager = Depends(get_file_manager),
):
    sliders = await service.list_active(language)
    return SliderListResponse(
        sliders=[_slider_response(slider, files) for slider in sliders],
        count=len(sliders),
    )


@sliders_router.get("", response_model=SliderPageResponse)
async def list_admin_sliders(
    page: int = Query(1),
    limit: int = Query(10),
    include_inactive: bool = Query(True),
    language: Optional[str] = Query(None),
    title: Optional[str] = Query(None),
    unique_code: Optional[int] = Query(None),
    service: SliderService = Depends(get_slider_service),
    files: FileManager = Depends(get_file_manager),
):
    result = await service.list_admin(
        page=page,
        limit=limit,
        include_inactive=include_inactive,
        language=language,
        title=title,
        unique_code=unique_code,
    )
    return SliderPageResponse(
        items=[_slider_response(slider, files) for slider in result.items],
        pagination=PaginationResponse(**result.pagination.as_dict()),
    )


@sliders_router.patch("/bulk-update", response_model=CountResponse)
async def bulk_update_sliders(
    payload: SliderBulkStatusRequest,
    service: SliderService = Depends(get_slider_service),
):
    count = await service.bulk_update_status(payload.public_ids, payload.status)
    return CountResponse(count=count, message=f"Updated {count} slider(s)")


@sliders_router.patch("/bulk-delete", response_model=CountResponse)
async def bulk_delete_sliders(
    payload: SliderBulkDeleteRequest,
    service: SliderService = Depends(get_slider_service),
):
    count = await service.bulk_delete(payload.public_ids)
    return CountResponse(count=count, message=f"Deleted {count} slider(s)")


@sliders_router.post("", response_model=SliderResponse, status_code=201)
async def create_slider(
    request: Request,
    service: SliderService = Depends(get_slider_service),
    files: FileManager = Depends(get_file_manager),
):
    data, language, image = await _slider_form(request)
    slider = await service.create(data, image, language=language)
    return _slider_response(slider, files)


@sliders_router.get("/{public_id}", response_model=SliderResponse)
async def get_slider(
    public_id: str,
    service: SliderService = Depends(get_slider_service),
    files: FileManager = Depends(get_file_manager),
):
    return _slider_response(await service.get(public_id), files)


@sliders_router.patch("/{public_id}", response_model=SliderResponse)
async def update_slider(
    public_id: str,
    request: Request,
    service: SliderService = Depends(get_slider_service),
    files: FileManager = Depends(get_file_manager),
):
    data, _, image = await _slider_form(request)
    slider = await service.update(public_id, data, image)
    return _slider_response(slider, files)


@sliders_router.delete("/{public_id}", response_model=ReplicaSetDeletionResponse)
async def delete_slider(
    public_id: str, service: SliderService = Depends(get_slider_service)
):
    return _deletion_response(await service.delete(public_id))


# Dropdown options -------------------------------------------------------------


@dropdowns_router.get("/{dropdown_type}/front", response_model=DropdownListResponse)
async def list_front_dropdowns(
    dropdown_type: str,
    language: Optional[str] = Query(None),
    service: DropdownService = Depends(get_dropdown_service),
):
    options = await service.list_public(dropdown_type, language)
    return DropdownListResponse(items=[_dropdown_response(o) for o in options])


@dropdowns_router.get("/{dropdown_type}/admin", response_model=DropdownListResponse)
async def list_admin_dropdowns(
    dropdown_type: str,
    page: int = Query(1),
    limit: int = Query(10),
    include_inactive: bool = Query(True),
    language: Optional[str] = Query(None),
    service: DropdownService = Depends(get_dropdown_service),
):
    result = await service.list_admin(
        dropdown_type,
        page=page,
        limit=limit,
        include_inactive=include_inactive,
        language=language,
    )
    return DropdownListResponse(
        items=[_dropdown_response(o) for o in result.items],
        pagination=PaginationResponse(**result.pagination.as_dict()),
    )


@dropdowns_router.post(
    "/{dropdown_type}", response_model=DropdownOptionResponse, status_code=201
)
async def create_dropdown(
    dropdown_type: str,
    payload: DropdownCreateRequest,
    service: DropdownService = Depends(get_dropdown_service),
):
    option = await service.create(
        dropdown_type, payload.name, language=payload.language, status=payload.status
    )
    return _dropdown_response(option)


@dropdowns_router.patch("/{dropdown_type}/bulk-operation", response_model=CountResponse)
async def bulk_dropdown_operation(
    dropdown_type: str,
    payload: DropdownBulkRequest,
    service: DropdownService = Depends(get_dropdown_service),
):
    count = await service.bulk_operation(dropdown_type, payload.action, payload.public_ids)
    return CountResponse(count=count, message=f"Bulk {payload.action} applied to {count} option(s)")


@dropdowns_router.get("/{dropdown_type}/{public_id}", response_model=DropdownOptionResponse)
async def get_dropdown(
    dropdown_type: str,
    public_id: str,
    service: DropdownService = Depends(get_dropdown_service),
):
    return _dropdown_response(await service.get(dropdown_type, public_id))


@dropdowns_router.patch("/{dropdown_type}/{public_id}", response_model=DropdownOptionResponse)
async def update_dropdown(
    dropdown_type: str,
    public_id: str,
    payload: DropdownUpdateRequest,
    service: DropdownService = Depends(get_dropdown_service),
):
    option = await service.update(
        dropdown_type, public_id, name=payload.name, status=payload.status
    )
    return _dropdown_response(option)


@dropdowns_router.delete(
    "/{dropdown_type}/{unique_code}", response_model=ReplicaSetDeletionResponse
)
async def delete_dropdown(
    dropdown_type: str,
    unique_code: int,
    service: DropdownService = Depends(get_dropdown_service),
):
    return _deletion_response(
        await service.delete_by_unique_code(dropdown_type, unique_code)
    )


router.include_router(settings_router)
router.include_router(sliders_router)
router.include_router(dropdowns_router)
