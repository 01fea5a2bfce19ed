from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExploreRequestModel(BaseModel):
    filters: Dict[str, Any] = Field(default_factory=dict)
    search: str = ""
    page: int = 0
    page_size: int = 25
    selected_ids: List[str] = Field(default_factory=list)
    selection_token: Optional[str] = None


class BrushRequestModel(ExploreRequestModel):
    x0: float
    y0: float
    x1: float
    y1: float
    width: float = 800.0


class FilterConfigModel(BaseModel):
    field: str
    label: str
    operator: str
    filter_component: str
    filter_props: Dict[str, Any] = Field(default_factory=dict)
    param_type: Optional[str] = None
    param_type_options: Dict[str, str] = Field(default_factory=dict)


class ColumnModel(BaseModel):
    field: str
    header: str
    type: str = "string"
    unit: Optional[str] = None


class PageMetaResponse(BaseModel):
    key: str
    title: str
    description: str
    query_mode: str
    show_map: bool
    filters: List[FilterConfigModel]
    columns: List[ColumnModel]
    export_columns: List[str]
