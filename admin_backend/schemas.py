"""
Pydantic schemas for the admin backend HTTP surface.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class LanguageSummary(BaseModel):
    id: str
    public_id: str
    name: str
    folder: str
    direction: str
    flag_image: str = ""


class PaginationResponse(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    limit: int
    has_next: bool
    has_prev: bool


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class CountResponse(BaseModel):
    success: bool = True
    count: int
    message: str


class ReplicaSetDeletionResponse(BaseModel):
    success: bool = True
    unique_code: int
    deleted_count: int
    deleted_files: List[str] = Field(default_factory=list)


# Dropdown options -------------------------------------------------------------


class DropdownCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    status: bool = True
    language: Optional[str] = None


class DropdownUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[bool] = None


class DropdownBulkRequest(BaseModel):
    action: Literal["activate", "deactivate", "delete"]
    public_ids: List[str] = Field(..., min_length=1)


class DropdownOptionResponse(BaseModel):
    public_id: str
    unique_code: int
    name: str
    dropdown_type: str
    language_id: str
    status: bool
    use_count: int
    created_at: float
    updated_at: float
    language: Optional[LanguageSummary] = None


class DropdownListResponse(BaseModel):
    items: List[DropdownOptionResponse]
    pagination: Optional[PaginationResponse] = None


# Sliders ----------------------------------------------------------------------


class SliderFields(BaseModel):
    """Plain form fields accepted on slider create/update."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    button_title: Optional[str] = Field(default=None, max_length=100)
    button_link: Optional[str] = None
    custom_color: Optional[bool] = None
    title_color: Optional[str] = None
    description_color: Optional[str] = None
    button_title_color: Optional[str] = None
    button_background: Optional[str] = None
    description_two: Optional[str] = None
    button_title_two: Optional[str] = Field(default=None, max_length=100)
    button_link_two: Optional[str] = None
    description_two_color: Optional[str] = None
    button_two_color: Optional[str] = None
    button_background_two: Optional[str] = None
    status: Optional[bool] = None


class SliderResponse(BaseModel):
    public_id: str
    unique_code: int
    slider_image: str
    slider_image_url: str
    title: str
    description: str
    button_title: str
    button_link: str
    custom_color: bool
    title_color: str
    description_color: str
    button_title_color: str
    button_background: str
    description_two: str
    button_title_two: str
    button_link_two: str
    description_two_color: str
    button_two_color: str
    button_background_two: str
    status: bool
    language_id: str
    created_at: float
    updated_at: float
    language: Optional[LanguageSummary] = None


class SliderListResponse(BaseModel):
    sliders: List[SliderResponse]
    count: int


class SliderPageResponse(BaseModel):
    items: List[SliderResponse]
    pagination: PaginationResponse


class SliderBulkStatusRequest(BaseModel):
    public_ids: List[str] = Field(..., min_length=1)
    status: bool


class SliderBulkDeleteRequest(BaseModel):
    public_ids: List[str] = Field(..., min_length=1)


# Settings ---------------------------------------------------------------------


class SettingResponse(BaseModel):
    group_type: str
    key: str
    value: Union[bool, int, float, str]
    record_type: Literal["STRING", "NUMBER", "BOOLEAN", "FILE"]
    url: Optional[str] = None
    updated_at: float


class SettingsGroupResponse(BaseModel):
    group_type: str
    settings: List[SettingResponse]
    values: Dict[str, Any]


class CacheStatsResponse(BaseModel):
    stats: Dict[str, Any]
