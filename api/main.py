from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Any, Dict

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import BrushRequestModel, ColumnModel, ExploreRequestModel, FilterConfigModel, PageMetaResponse
from explorer.compose import ComposedView, ExplorerSession, selection_token
from explorer.detail import detail_sections, record_title, sections_as_dict
from explorer.fetch import DetailQuery, QueryClient
from explorer.filters import normalize_filters
from explorer.geo import BrushRect, map_points
from explorer.pages import PAGES, PageDefinition, format_table, get_page
from explorer.query import normalize_pagination


app = FastAPI(title="Earthquake Explorer API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_query_client() -> QueryClient:
    return QueryClient()


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _records(df: pd.DataFrame) -> list[Dict[str, Any]]:
    if df is None or df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")


def _session_from_request(page: PageDefinition, req: ExploreRequestModel) -> ExplorerSession:
    session = ExplorerSession(page, get_query_client())
    for field_name, value in normalize_filters(req.filters, page.filter_configs).items():
        session.filters.set(field_name, value)
    session.set_search(req.search)
    session.pagination = normalize_pagination(req.page, req.page_size)
    session.restore_selection(req.selected_ids, req.selection_token)
    return session


def _view_payload(session: ExplorerSession, view: ComposedView) -> Dict[str, Any]:
    page = session.page
    payload: Dict[str, Any] = {
        "page": page.key,
        "query_mode": page.query_mode,
        "is_pending": view.is_pending,
        "is_fetching": view.is_fetching,
        "is_error": view.is_error,
        "error": view.error,
        "filtered_total": int(len(view.filtered)),
        "total": view.total,
        "pagination": {
            "page": session.pagination.page,
            "page_size": session.pagination.page_size,
            "offset": session.pagination.offset,
        },
        "selection": {
            "ids": list(view.selection.ids),
            "token": selection_token(session.signature),
        },
        "columns": [ColumnModel(field=c.field, header=c.header, type=c.type, unit=c.unit).model_dump() for c in page.columns],
        "rows": _records(view.page_rows),
        "table": _records(format_table(view.page_rows, page.columns, page.id_field)),
    }
    if page.show_map:
        payload["map"] = {
            "showing": int(len(view.filtered)),
            "points": _records(map_points(view.filtered, selected_ids=list(view.selection.ids))),
        }
    return payload


@app.get("/meta/pages")
def meta_pages():
    return _json({"pages": [{"key": p.key, "title": p.title, "query_mode": p.query_mode} for p in PAGES.values()]})


@app.get("/meta/pages/{page_key}")
def meta_page(page_key: str):
    try:
        page = get_page(page_key)
    except KeyError as exc:
        return _error(exc, status_code=404)
    meta = PageMetaResponse(
        key=page.key,
        title=page.title,
        description=page.description,
        query_mode=page.query_mode,
        show_map=page.show_map,
        filters=[FilterConfigModel(**c.to_dict()) for c in page.filter_configs],
        columns=[ColumnModel(field=c.field, header=c.header, type=c.type, unit=c.unit) for c in page.columns],
        export_columns=page.export_columns,
    )
    return _json(meta.model_dump())


@app.post("/explore/{page_key}")
def explore(page_key: str, req: ExploreRequestModel):
    try:
        page = get_page(page_key)
    except KeyError as exc:
        return _error(exc, status_code=404)
    try:
        session = _session_from_request(page, req)
    except ValueError as exc:
        return _error(exc, status_code=400)
    try:
        view = session.compose()
        return _json(_view_payload(session, view))
    except Exception as exc:
        logger.exception("explore failed")
        return _error(exc)


@app.post("/explore/{page_key}/brush")
def brush(page_key: str, req: BrushRequestModel):
    try:
        page = get_page(page_key)
    except KeyError as exc:
        return _error(exc, status_code=404)
    try:
        session = _session_from_request(page, req)
    except ValueError as exc:
        return _error(exc, status_code=400)
    try:
        ids = session.brush(BrushRect(x0=req.x0, y0=req.y0, x1=req.x1, y1=req.y1), width=req.width)
        return _json({"ids": ids, "token": selection_token(session.signature)})
    except Exception as exc:
        logger.exception("brush failed")
        return _error(exc)


@app.get("/events/{page_key}/{event_id}")
def event_detail(page_key: str, event_id: str):
    try:
        page = get_page(page_key)
    except KeyError as exc:
        return _error(exc, status_code=404)
    try:
        query = DetailQuery(get_query_client(), page.data_source, page.query_mode, page.static_params, id_field=page.id_field)
        result = query.run(event_id)
        if result.is_error:
            return JSONResponse(status_code=502, content={"error": result.error, "type": "FetchError"})
        return _json(
            {
                "id": event_id,
                "found": result.data is not None,
                "title": record_title(result.data) if result.data is not None else "Not found",
                "event": result.data,
                "sections": sections_as_dict(detail_sections(result.data)),
            }
        )
    except Exception as exc:
        logger.exception("event_detail failed")
        return _error(exc)


@app.post("/export/{page_key}")
def export_page(page_key: str, req: ExploreRequestModel):
    try:
        page = get_page(page_key)
    except KeyError as exc:
        return _error(exc, status_code=404)
    try:
        session = _session_from_request(page, req)
    except ValueError as exc:
        return _error(exc, status_code=400)
    try:
        view = session.compose()
        if view.is_error:
            return JSONResponse(status_code=502, content={"error": view.error, "type": "FetchError"})
        filename, text = session.export_csv(view)
    except Exception as exc:
        logger.exception("export failed")
        return _error(exc)
    return Response(
        content=text.encode("utf-8"),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
