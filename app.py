import streamlit as st
import os
import logging
import asyncio
from openai import AsyncOpenAI

from docutable.config import load_settings
from docutable.encoding import ACCEPTED_EXTENSIONS, ingest, pdf_page_count, render_pdf_page
from docutable.export import build_export
from docutable.extraction import extract_tables
from docutable.models import ItemStatus
from docutable.preview import (
    clamp_table_index,
    download_label,
    status_label,
    table_heading,
    table_to_dataframe,
)
from docutable.session import SessionStore, extract_items, remove_item, reset, select_item

# Create logs directory if it doesn't exist
if not os.path.exists("logs"):
    os.makedirs("logs")

# Configure logging
log_file = os.path.join("logs", "app.log")
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_file),
        logging.StreamHandler()  # This will continue to show logs in console
    ]
)

# Page configuration
st.set_page_config(
    page_title="DocuTable",
    layout="wide"
)

# Initialize session state variables if they don't exist
if 'store' not in st.session_state:
    logging.info("Starting DocuTable session")
    st.session_state.store = SessionStore()
if 'uploader_key' not in st.session_state:
    st.session_state.uploader_key = 0
if 'table_index' not in st.session_state:
    st.session_state.table_index = 0
if 'preview_item_id' not in st.session_state:
    st.session_state.preview_item_id = None

store = st.session_state.store

settings = load_settings()
if not settings.openai_api_key:
    st.error("OPENAI_API_KEY is not set. Please check your .env file.")
    st.stop()

openai_client = AsyncOpenAI(api_key=settings.openai_api_key)


async def extractor(payload, media_type):
    return await extract_tables(openai_client, payload, media_type, settings.model)


def run_extraction(item_ids):
    """Run extraction for the given items and refresh the page."""
    with st.spinner(f"Analyzing {len(item_ids)} document(s)..."):
        asyncio.run(extract_items(store, item_ids, extractor, max_concurrency=settings.max_concurrency))
    st.rerun()


def file_uploader(label):
    uploads = st.file_uploader(
        label,
        type=ACCEPTED_EXTENSIONS,
        accept_multiple_files=True,
        key=f"uploader_{st.session_state.uploader_key}",
    )
    if uploads:
        count_before = len(store.session)
        new_session = store.apply(ingest, uploads)
        skipped = len(uploads) - (len(new_session) - count_before)
        if skipped:
            st.session_state.skipped_files = skipped
        # A fresh key empties the uploader so the same files are not added again
        st.session_state.uploader_key += 1
        st.rerun()


def render_document_preview(item):
    if item.media_type == "application/pdf":
        try:
            total_pages = pdf_page_count(item.source.data)
            page_no = 1
            if total_pages > 1:
                page_no = st.number_input("Page", min_value=1, max_value=total_pages, value=1, key=f"page_{item.id}")
            st.image(render_pdf_page(item.source.data, page_no - 1), caption=f"Page {page_no} of {total_pages}", width='stretch')
        except Exception as e:
            logging.warning(f"Could not render preview for {item.name}: {e}")
            st.info("Preview not available for this PDF.")
    else:
        st.image(item.source.data, caption=item.name, width='stretch')


def render_table_preview(item):
    tables = list(item.tables or [])
    if not tables:
        st.info("No tables were found in this document.")
        return

    if st.session_state.preview_item_id != item.id:
        st.session_state.preview_item_id = item.id
        st.session_state.table_index = 0
    index = clamp_table_index(st.session_state.table_index, len(tables))
    st.session_state.table_index = index
    table = tables[index]

    header_col, nav_col, download_col = st.columns([5, 3, 2])
    with header_col:
        st.markdown(f"**{table_heading(table, index)}** &nbsp; `{len(table.rows)} rows`")
    with nav_col:
        if len(tables) > 1:
            prev_col, label_col, next_col = st.columns([1, 2, 1])
            with prev_col:
                if st.button("◀", disabled=index == 0, key="prev_table"):
                    st.session_state.table_index = index - 1
                    st.rerun()
            with label_col:
                st.markdown(f"<p style='text-align: center;'>{index + 1} / {len(tables)}</p>", unsafe_allow_html=True)
            with next_col:
                if st.button("▶", disabled=index == len(tables) - 1, key="next_table"):
                    st.session_state.table_index = index + 1
                    st.rerun()
    with download_col:
        try:
            artifact = build_export(tables, item.name)
        except Exception as e:
            logging.error(f"Export error details: {str(e)}")
            st.error("Could not build the export file. Please try again.")
            artifact = None
        if artifact is not None:
            st.download_button(
                label=download_label(tables),
                data=artifact.data,
                file_name=artifact.filename,
                mime=artifact.mime_type,
                key=f"download_{item.id}",
            )

    if table.rows:
        st.dataframe(table_to_dataframe(table), width='stretch', hide_index=True)
    else:
        st.info("No data rows found.")


# App header
st.markdown("<h1 style='margin-top: 10px;'>DocuTable</h1>", unsafe_allow_html=True)

if st.session_state.get("skipped_files"):
    st.warning(f"{st.session_state.skipped_files} file(s) were skipped (larger than 10 MB or unreadable).")
    st.session_state.skipped_files = 0

session = store.session

if not session.items:
    st.markdown("### Upload Multiple Documents")
    st.markdown("<p style='font-size: 14px;'>Extract tables from multiple images or PDFs. Multi-page PDFs with separate tables are exported as a zip of Excel files.</p>", unsafe_allow_html=True)
    file_uploader("Choose PNG, JPEG or PDF files")
else:
    # Sidebar: uploaded files
    with st.sidebar:
        title_col, clear_col = st.columns([3, 2])
        with title_col:
            st.subheader(f"Files ({len(session)})")
        with clear_col:
            if st.button("Clear All"):
                store.apply(lambda _: reset())
                st.rerun()

        idle_ids = [item.id for item in session.items if item.status == ItemStatus.IDLE]
        if len(idle_ids) > 1 and st.button(f"Extract all ({len(idle_ids)})"):
            run_extraction(idle_ids)

        for item in session.items:
            icon = {
                ItemStatus.IDLE: "📄",
                ItemStatus.PROCESSING: "⏳",
                ItemStatus.COMPLETE: "✅",
                ItemStatus.ERROR: "⚠️",
            }[item.status]
            name_col, remove_col = st.columns([5, 1])
            with name_col:
                label = f"{icon} {item.name} ({item.source.size / 1024:.0f} KB)"
                if st.button(label, key=f"select_{item.id}", type="primary" if item.id == session.active_id else "secondary"):
                    store.apply(select_item, item.id)
                    st.rerun()
            with remove_col:
                if st.button("🗑", key=f"remove_{item.id}", help="Remove file"):
                    store.apply(remove_item, item.id)
                    st.rerun()

        st.markdown("---")
        file_uploader("Add more files")

    active = session.active
    if active is not None:
        preview_col, status_col = st.columns([3, 2])
        with preview_col:
            st.subheader(active.name)
            render_document_preview(active)

        with status_col:
            if active.status == ItemStatus.IDLE:
                if st.button("Extract Data", type="primary"):
                    run_extraction([active.id])
            elif active.status == ItemStatus.PROCESSING:
                st.button(status_label(active), disabled=True)
            elif active.status == ItemStatus.COMPLETE:
                st.success(status_label(active))
                if st.button("Re-extract"):
                    run_extraction([active.id])
            else:
                st.error(status_label(active))
                if st.button("Retry"):
                    run_extraction([active.id])

        if active.tables is not None:
            st.markdown("---")
            render_table_preview(active)

# Footer
st.markdown("---")
st.markdown("<p style='font-size: 12px;'>AIs can make mistakes, please review the output before using it for any purpose.</p>", unsafe_allow_html=True)
