from __future__ import annotations

import base64
import html
import re
from pathlib import Path

import streamlit as st

from page_composer.domain.errors import ComposerError
from page_composer.domain.models import (
    IngestResult,
    PageDescriptor,
    RenderBatchReport,
    RenderState,
    RenderTier,
)
from page_composer.infrastructure.config import AppConfig
from page_composer.infrastructure.logging import configure_logging
from page_composer.infrastructure.storage import purge_stale_sessions
from page_composer.services.composer_session import ComposerSession


@st.cache_resource
def _purge_stale_sessions(storage_dir: str, max_age_seconds: int) -> list[Path]:
    # Runs once per server process.
    return purge_stale_sessions(Path(storage_dir), max_age_seconds)


def _init_state(config: AppConfig) -> ComposerSession:
    if "composer" not in st.session_state:
        st.session_state.composer = ComposerSession(config)
    st.session_state.setdefault("merged_pdf_bytes", b"")
    st.session_state.setdefault("merged_pdf_name", "merged.pdf")
    st.session_state.setdefault("upload_token", 0)
    st.session_state.setdefault("inspect_page", None)
    st.session_state.setdefault("merge_message", None)
    st.session_state.setdefault("notices", [])
    return st.session_state.composer


def _image_html(image_bytes: bytes, caption: str, rotation: int, number: int | None = None) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    transform = f"rotate({rotation}deg)"
    if rotation in (90, 270):
        transform += " scale(0.75)"
    badge = (
        "<div style='text-align:center;font-size:0.85rem;"
        f"font-weight:600;margin-bottom:6px;'>{number}</div>"
        if number is not None
        else ""
    )
    return (
        "<div style='border:1px solid rgba(120,120,120,0.35);"
        " border-radius:10px;padding:8px;background:rgba(250,250,250,0.75);'>"
        f"{badge}"
        "<div style='display:flex;justify-content:center;overflow:hidden;'>"
        f"<img src='data:image/png;base64,{encoded}' "
        f"style='width:100%;height:auto;border-radius:6px;transform:{transform};'/>"
        "</div>"
        f"<div style='font-size:0.75rem;margin-top:6px;'>{html.escape(caption)}</div>"
        "</div>"
    )


def _parse_page_range_spec(spec: str, max_page: int) -> tuple[list[int], str | None]:
    cleaned = spec.strip()
    if not cleaned:
        return [], "Enter one or more page numbers or ranges."

    pages: set[int] = set()
    parts = [part.strip() for part in cleaned.split(",") if part.strip()]
    if not parts:
        return [], "Enter one or more page numbers or ranges."

    for part in parts:
        if re.fullmatch(r"\d+", part):
            page = int(part)
            if page < 1 or page > max_page:
                return [], f"Page {page} is out of range (1-{max_page})."
            pages.add(page)
            continue

        range_match = re.fullmatch(r"(\d+)\s*-\s*(\d+)", part)
        if range_match:
            start = int(range_match.group(1))
            end = int(range_match.group(2))
            if start > end:
                return [], f"Invalid range '{part}'. Start must be <= end."
            if start < 1 or end > max_page:
                return [], f"Range '{part}' is out of range (1-{max_page})."
            pages.update(range(start, end + 1))
            continue

        return [], f"Invalid token '{part}'. Use formats like 1,3,5-7."

    return sorted(pages), None


def _parse_order_spec(spec: str, page_count: int) -> tuple[list[int], str | None]:
    tokens = [token.strip() for token in spec.split(",") if token.strip()]
    if not all(re.fullmatch(r"\d+", token) for token in tokens):
        return [], "Use current page numbers separated by commas, e.g. 3,1,2."
    positions = [int(token) for token in tokens]
    if sorted(positions) != list(range(1, page_count + 1)):
        return [], f"List every page from 1 to {page_count} exactly once."
    return positions, None


def _auto_thumbnail_columns(page_count: int) -> int:
    if page_count <= 1:
        return 1
    if page_count <= 4:
        return 2
    if page_count <= 9:
        return 3
    if page_count <= 16:
        return 4
    if page_count <= 25:
        return 5
    return 6


def _upload_notices(
    result: IngestResult, report: RenderBatchReport | None
) -> list[tuple[str, str]]:
    notices = [
        ("warning", f"Skipped {rejected.original_name}: {rejected.reason}")
        for rejected in result.rejected
    ]
    if report is not None and report.failed:
        notices.append(
            ("warning", f"{len(report.failed)} page preview(s) could not be rendered.")
        )
    if result.accepted_count:
        notices.append(
            (
                "success",
                f"Added {result.accepted_count} file(s) with "
                f"{len(result.page_descriptors)} page(s).",
            )
        )
    return notices


def _show_notices() -> None:
    # Notices are queued before st.rerun() and shown once on the next run.
    notices = st.session_state.notices
    st.session_state.notices = []
    for level, text in notices:
        if level == "success":
            st.success(text)
        else:
            st.warning(text)


def _upload_section(config: AppConfig, session: ComposerSession) -> None:
    uploaded = st.file_uploader(
        (
            "Load one or more PDFs "
            f"(max {config.max_pdf_size_mb} MB each, "
            f"{config.max_batch_size_mb} MB total)"
        ),
        type=["pdf"],
        accept_multiple_files=True,
        key=f"composer_upload_{st.session_state.upload_token}",
    )

    if st.button("Add Uploaded PDFs", type="primary"):
        files = [(item.name, item.getvalue()) for item in uploaded] if uploaded else []
        if not files:
            st.warning("Upload at least one PDF.")
            return
        try:
            result = session.upload(files)
        except ComposerError as exc:
            st.error(str(exc))
            return
        report = None
        if result.page_descriptors:
            progress = st.progress(0, text="Rendering previews...")
            total = len(result.page_descriptors)
            done: list[str] = []

            def on_batch(page_ids: list[str]) -> None:
                done.extend(page_ids)
                progress.progress(min(len(done) / total, 1.0), text="Rendering previews...")

            report = session.render_previews(result.page_descriptors, on_batch=on_batch)
            progress.empty()
        st.session_state.notices.extend(_upload_notices(result, report))
        st.session_state.upload_token += 1
        st.rerun()


def _file_list(session: ComposerSession) -> None:
    files = session.files()
    if not files:
        return
    st.subheader("Files", anchor=False)
    for index, source in enumerate(files, start=1):
        name_col, action_col = st.columns([5, 1])
        name_col.write(f"{index}. {source.original_name} ({source.page_count} pages)")
        if action_col.button("Remove", key=f"remove_file_{source.file_id}"):
            session.remove_file(source.file_id)
            st.rerun()


def _page_tile(session: ComposerSession, page: PageDescriptor, position: int, total: int) -> None:
    image = session.cache.peek(RenderTier.PREVIEW, page.id)
    status = session.cache.status(RenderTier.PREVIEW, page.id)
    if image is not None:
        st.markdown(
            _image_html(image, page.display_label, page.rotation, position + 1),
            unsafe_allow_html=True,
        )
    elif status is not None and status.state == RenderState.FAILED:
        st.warning(f"{position + 1}. {page.display_label}: preview unavailable")
        if st.button("Retry", key=f"retry_{page.id}", use_container_width=True):
            try:
                session.image(page.id)
            except ComposerError as exc:
                st.error(str(exc))
            st.rerun()
    else:
        st.info(f"{position + 1}. {page.display_label}: loading preview")

    left, right, rotate, inspect, delete = st.columns(5, gap="small")
    if left.button("◀", key=f"left_{page.id}", disabled=position == 0):
        session.move(page.id, position - 1)
        st.rerun()
    if right.button("▶", key=f"right_{page.id}", disabled=position == total - 1):
        session.move(page.id, position + 1)
        st.rerun()
    if rotate.button("⟳", key=f"rotate_{page.id}"):
        session.rotate(page.id, 90)
        st.rerun()
    if inspect.button("🔍", key=f"inspect_{page.id}"):
        st.session_state.inspect_page = page.id
        st.rerun()
    if delete.button("✕", key=f"delete_{page.id}"):
        session.remove_page(page.id)
        if st.session_state.inspect_page == page.id:
            st.session_state.inspect_page = None
        st.rerun()


def _inspect_panel(session: ComposerSession) -> None:
    page_id = st.session_state.inspect_page
    if page_id is None:
        return
    page = session.order.get(page_id)
    if page is None:
        st.session_state.inspect_page = None
        return
    with st.container(border=True):
        title_col, close_col = st.columns([5, 1])
        title_col.markdown(f"**{page.display_label}**")
        if close_col.button("Close", key="close_inspect"):
            st.session_state.inspect_page = None
            st.rerun()
        with st.spinner("Rendering page..."):
            try:
                image = session.image(page.id, RenderTier.FULL)
            except ComposerError as exc:
                st.error(str(exc))
                return
        st.markdown(_image_html(image, page.display_label, page.rotation), unsafe_allow_html=True)


def _page_grid(session: ComposerSession) -> None:
    pages = session.pages()
    if not pages:
        st.info("Upload PDF files to see the pages here.")
        return

    st.subheader(f"Pages ({len(pages)})", anchor=False)
    _inspect_panel(session)

    columns_per_row = _auto_thumbnail_columns(len(pages))
    cols = st.columns(columns_per_row, gap="small")
    for position, page in enumerate(pages):
        with cols[position % columns_per_row]:
            _page_tile(session, page, position, len(pages))

    with st.form(key="reorder_form"):
        order_spec = st.text_input(
            "New page order",
            placeholder="Examples: 3,1,2",
            help="List the current page numbers in the order you want them.",
        )
        if st.form_submit_button("Apply Order"):
            positions, error = _parse_order_spec(order_spec, len(pages))
            if error:
                st.error(error)
            else:
                try:
                    session.reorder([pages[number - 1].id for number in positions])
                except ComposerError as exc:
                    st.error(str(exc))
                else:
                    st.rerun()

    with st.form(key="remove_multi_form"):
        page_spec = st.text_input(
            "Select multiple pages to remove",
            placeholder="Examples: 1,3,5-8",
        )
        if st.form_submit_button("Remove Selected Pages"):
            selected, error = _parse_page_range_spec(page_spec, len(pages))
            if error:
                st.error(error)
            else:
                removed = session.remove_pages([pages[number - 1].id for number in selected])
                st.session_state.notices.append(("success", f"Removed {len(removed)} page(s)."))
                st.rerun()


def _merge_section(session: ComposerSession) -> None:
    has_pages = len(session.order) > 0
    new_name = st.text_input("Output file name", value="merged", disabled=not has_pages)

    if st.button("Merge PDFs", type="primary", disabled=not has_pages, use_container_width=True):

        def send(path: Path, file_name: str) -> None:
            st.session_state.merged_pdf_bytes = path.read_bytes()
            st.session_state.merged_pdf_name = file_name

        try:
            result = session.merge(new_name, send)
        except ComposerError as exc:
            st.session_state.merged_pdf_bytes = b""
            st.session_state.merge_message = ("error", f"An error occurred during merge: {exc}")
        else:
            st.session_state.merge_message = (
                "success",
                f"Merged {result.merged_pages} page(s) into {result.output_name}.",
            )
        st.rerun()

    level, text = st.session_state.merge_message or ("", "")
    if level == "error":
        st.error(text)
    elif level == "success":
        st.success(text)

    if st.session_state.merged_pdf_bytes:
        st.download_button(
            "Download Merged PDF",
            data=st.session_state.merged_pdf_bytes,
            file_name=st.session_state.merged_pdf_name,
            mime="application/pdf",
            use_container_width=True,
        )


def main() -> None:
    config = AppConfig()
    configure_logging(config.log_level)
    st.set_page_config(page_title="PDF Page Composer", layout="wide")
    st.title("PDF Page Composer", anchor=False)
    st.caption("Upload PDFs, arrange and rotate their pages, then merge them into one file.")

    _purge_stale_sessions(str(config.storage_dir), config.session_ttl_seconds)
    session = _init_state(config)

    _show_notices()
    _upload_section(config, session)
    _file_list(session)
    _page_grid(session)
    st.divider()
    _merge_section(session)


if __name__ == "__main__":
    main()
