import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Dict, List, Optional

from explorer.compose import ComposedView, ExplorerSession, selection_token
from explorer.detail import detail_sections, preview_sections, record_title
from explorer.fetch import DetailQuery, QueryClient
from explorer.filters import BETWEEN_INCLUSIVE, CONTAINS, CONTAINS_ONE_OF, FilterConfig, MembershipFilter, RangeFilter
from explorer.geo import DEFAULT_MAP_WIDTH, MAGNITUDE_LEGEND, brush_rect_from_selection, map_chart, map_points
from explorer.pages import EXPLORE, EXPLORE_MAP, PAGE_SIZE_OPTIONS, PageDefinition, format_table


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .card-actions {font-size: 0.9rem;color: #2563eb;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .legend-dot {display: inline-block;width: 10px;height: 10px;border-radius: 50%;margin: 0 4px 0 10px;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str, actions: Optional[str] = None):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
            <div class="card-actions">{actions or ""}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(session: ExplorerSession) -> str:
    chips: List[str] = []
    active = session.filters.active
    for config in session.page.filter_configs:
        value = active.get(config.field)
        if value is None:
            chips.append(f"{config.label}: All")
        elif isinstance(value, RangeFilter):
            lo = "…" if value.min is None else f"{value.min:g}"
            hi = "…" if value.max is None else f"{value.max:g}"
            chips.append(f"{config.label}: {lo}–{hi}")
        elif isinstance(value, MembershipFilter):
            labels = {o.value: o.label for o in config.options}
            chips.append(f"{config.label}: {', '.join(labels.get(v, v) for v in sorted(value.values))}")
        else:
            chips.append(f"{config.label}: “{value.pattern}”")
    if session.search_term.strip():
        chips.append(f"Search: “{session.search_term.strip()}”")
    if session.selection.active:
        chips.append(f"Map selection: {len(session.selection.ids)}")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def render_page_header(title: str, breadcrumb: str, description: str = "", filter_summary_html: str = ""):
    inject_base_styles()
    top = st.container()
    c1, c2 = top.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
        if description:
            st.caption(description)
    with c2:
        if st.button("Refresh", key=f"refresh_{breadcrumb}"):
            get_query_client().invalidate()
            st.rerun()
    if filter_summary_html:
        st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


# ---------- state ----------
@st.cache_resource
def get_query_client() -> QueryClient:
    return QueryClient()


def get_session(page: PageDefinition) -> ExplorerSession:
    key = f"_session_{page.key}"
    if key not in st.session_state:
        st.session_state[key] = ExplorerSession(page, get_query_client())
    return st.session_state[key]


def widget_key(page: PageDefinition, name: str) -> str:
    return f"{page.key}__{name}"


def discard_sessions(keep: Optional[PageDefinition] = None):
    """Close and forget the state of every page other than `keep`."""
    for page in (EXPLORE, EXPLORE_MAP):
        if keep is not None and page.key == keep.key:
            continue
        session = st.session_state.pop(f"_session_{page.key}", None)
        if session is not None:
            session.close()
        for k in [k for k in st.session_state.keys() if str(k).startswith(f"{page.key}__")]:
            del st.session_state[k]


def reset_filter_widgets(page: PageDefinition):
    for config in page.filter_configs:
        for k in list(st.session_state.keys()):
            if k.startswith(widget_key(page, f"filter_{config.field}")):
                del st.session_state[k]


# ---------- filters panel ----------
def render_filter_field(page: PageDefinition, config: FilterConfig) -> object:
    props = config.filter_props
    key = widget_key(page, f"filter_{config.field}")
    if config.operator == BETWEEN_INCLUSIVE:
        lo, hi = config.default_range
        lo = 0.0 if lo is None else lo
        hi = 100.0 if hi is None else hi
        return st.slider(config.label, min_value=float(lo), max_value=float(hi), value=(float(lo), float(hi)), step=float(props.get("step", 1)), key=key)
    if config.operator == CONTAINS_ONE_OF:
        st.markdown(f"**{config.label}**")
        chosen = []
        for opt in config.options:
            if st.checkbox(opt.label, key=f"{key}_{opt.value}"):
                chosen.append(opt.value)
        return chosen
    if config.operator == CONTAINS:
        return st.text_input(config.label, key=key)
    return None


def render_filters_panel(session: ExplorerSession):
    page = session.page
    with st.sidebar:
        st.markdown("### Filters")
        for config in page.filter_configs:
            value = render_filter_field(page, config)
            session.set_filter(config.field, value)
        if st.button("Clear all filters", key=widget_key(page, "clear_filters")):
            session.clear_all_filters()
            reset_filter_widgets(page)
            st.rerun()


# ---------- views ----------
def render_map(session: ExplorerSession, view: ComposedView):
    points = map_points(view.filtered, width=DEFAULT_MAP_WIDTH, selected_ids=list(view.selection.ids))
    with card("Earthquake Map - United States"):
        st.caption(f"Showing {len(view.filtered)} earthquakes")
        event = st.altair_chart(
            map_chart(points, width=DEFAULT_MAP_WIDTH),
            use_container_width=False,
            on_select="rerun",
            selection_mode="brush",
            key=widget_key(session.page, "map"),
        )
        legend = "".join(
            f"<span class='legend-dot' style='background:{color}'></span>{label}" for label, color in MAGNITUDE_LEGEND
        )
        st.markdown(f"<div style='font-size:0.85rem'><b>Magnitude</b>{legend}</div>", unsafe_allow_html=True)

    selection: Dict = {}
    if event is not None and getattr(event, "selection", None):
        selection = event.selection.get("brush") or {}
    rect = brush_rect_from_selection(selection)
    last_key = widget_key(session.page, "last_brush")
    if rect != st.session_state.get(last_key):
        # Re-select only on a new brush gesture.
        st.session_state[last_key] = rect
        session.brush(rect, width=DEFAULT_MAP_WIDTH)
        st.rerun()


def render_pagination(session: ExplorerSession, view: ComposedView):
    page = session.page
    cols = st.columns([2, 2, 6])
    size_labels = {s: ("All" if s == -1 else str(s)) for s in PAGE_SIZE_OPTIONS}
    page_size = cols[0].selectbox(
        "Rows per page",
        options=PAGE_SIZE_OPTIONS,
        index=PAGE_SIZE_OPTIONS.index(session.pagination.page_size) if session.pagination.page_size in PAGE_SIZE_OPTIONS else 0,
        format_func=lambda s: size_labels[s],
        key=widget_key(page, "page_size"),
    )
    max_page = None
    if page.query_mode == "client" and page_size != -1:
        max_page = max(1, -(-view.total // page_size))
    page_no = cols[1].number_input(
        "Page",
        min_value=1,
        max_value=max_page,
        value=min(session.pagination.page + 1, max_page or session.pagination.page + 1),
        step=1,
        key=widget_key(page, f"page_no_{session.pagination.page_size}_{selection_token(session.signature)}"),
    )
    new_page = int(page_no) - 1
    if new_page != session.pagination.page or page_size != session.pagination.page_size:
        session.change_page(new_page, page_size)
        st.rerun()
    if page.query_mode == "client":
        cols[2].caption(f"{view.total} rows")


def render_table(session: ExplorerSession, view: ComposedView) -> Optional[Dict]:
    page = session.page
    if view.is_error:
        st.error(view.error or "Failed to load events.")
        return None
    if view.is_pending:
        st.info("Loading events…")
        return None

    display = format_table(view.page_rows, page.columns, page.id_field)
    event = st.dataframe(
        display.drop(columns=[page.id_field]),
        use_container_width=True,
        hide_index=True,
        on_select="rerun",
        selection_mode="single-row",
        key=widget_key(page, "table"),
    )
    render_pagination(session, view)
    rows = getattr(getattr(event, "selection", None), "rows", None) or []
    if not rows:
        return None
    idx = rows[0]
    if idx >= len(view.page_rows):
        return None
    record = view.page_rows.iloc[idx]
    return {k: (None if not isinstance(v, (list, dict)) and pd.isna(v) else v) for k, v in record.items()}


def render_label_values(rows):
    st.dataframe(pd.DataFrame(rows, columns=["Field", "Value"]), hide_index=True, use_container_width=True)


def render_preview(session: ExplorerSession, record: Dict):
    with card(record_title(record)):
        st.write(record.get("place") or "Location not available")
        for title, rows in preview_sections(record):
            st.markdown(f"**{title}**")
            render_label_values(rows)
        c1, c2 = st.columns(2)
        if c1.button("View details", key=widget_key(session.page, f"details_{record.get('id')}")):
            st.query_params["page"] = session.page.key
            st.query_params["event"] = str(record.get("id"))
            st.rerun()
        if record.get("url"):
            c2.link_button("USGS Page", str(record["url"]))


def render_explorer_page(page: PageDefinition):
    session = get_session(page)
    render_filters_panel(session)
    render_page_header(page.title, f"Home / {page.title}", page.description, format_filter_summary(session))

    c1, c2 = st.columns([6, 2])
    search = c1.text_input("Search", key=widget_key(page, "search"))
    session.set_search(search)
    view = session.compose()

    if page.show_map and not view.is_pending and not view.is_error:
        render_map(session, view)

    filename, csv_text = session.export_csv(view)
    c2.download_button(
        f"Download CSV ({view.total})" if view.total else "Download CSV",
        data=csv_text.encode("utf-8"),
        file_name=filename,
        mime="text/csv",
        disabled=view.total == 0,
    )

    left, right = st.columns([3, 2])
    with left:
        with card("Entity List"):
            preview = render_table(session, view)
    if preview is not None:
        with right:
            render_preview(session, preview)


def render_detail_page(page: PageDefinition, event_id: str):
    inject_base_styles()
    query = DetailQuery(get_query_client(), page.data_source, page.query_mode, page.static_params, id_field=page.id_field)
    result = query.run(event_id)
    if st.button("← Back to list"):
        st.query_params.clear()
        st.query_params["page"] = page.key
        st.rerun()
    if result.is_error:
        render_page_header("Earthquake Details", "Home / Earthquake Details")
        st.error(result.error or "Failed to load event.")
        return
    if result.not_found:
        render_page_header("Event not found", "Home / Earthquake Details")
        st.info(f"No event with id '{event_id}' in the current data set.")
        return

    record = result.data or {}
    render_page_header(record_title(record), "Home / Earthquake Details")
    for title, rows in detail_sections(record):
        with card(title):
            render_label_values(rows)
    if record.get("url"):
        st.link_button("View on USGS Website", str(record["url"]))


# ---------- UI setup ----------
st.set_page_config(page_title="Earthquake Data Explorer", layout="wide")
inject_base_styles()

pages = {EXPLORE.title: EXPLORE, EXPLORE_MAP.title: EXPLORE_MAP}
by_key = {p.key: p for p in pages.values()}
current_key = st.query_params.get("page", EXPLORE_MAP.key)
current = by_key.get(current_key, EXPLORE_MAP)

with st.sidebar:
    st.markdown("### Navigate")
    titles = list(pages)
    nav_choice = st.radio("Navigate", titles, index=titles.index(current.title))
    if pages[nav_choice].key != current.key:
        st.query_params.clear()
        st.query_params["page"] = pages[nav_choice].key
        st.rerun()
    st.markdown("---")

event_id = st.query_params.get("event")
if event_id:
    discard_sessions()
    render_detail_page(current, event_id)
else:
    discard_sessions(keep=current)
    render_explorer_page(current)
