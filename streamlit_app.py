# streamlit_app.py
import asyncio
import json

import streamlit as st

from firmflow.config import configure_logging, get_settings, verbose_from_query
from firmflow.controller import UploadController
from firmflow.errors import FirmFlowError, ParseError, ValidationError
from firmflow.extraction import summarize
from firmflow.models import JobState, UploadFile
from firmflow.utils import guess_media_type

settings = get_settings()
configure_logging(settings.log_level)

st.set_page_config(page_title="FirmFlow Demo Upload", page_icon="📄", layout="wide")

# Verbose tracing is fixed for the session from ?debug=1
if "verbose" not in st.session_state:
    st.session_state.verbose = verbose_from_query(st.query_params.to_dict())
verbose = st.session_state.verbose

if "controller" not in st.session_state:
    st.session_state.controller = UploadController.from_settings(settings, verbose=verbose)
controller: UploadController = st.session_state.controller


async def _upload_and_wait(upload: UploadFile, status_box):
    controller.poller.on_change = lambda state: status_box.info(f"🔄 **Status:** {state.value}")
    try:
        await controller.submit(upload)
        await controller.wait()
    finally:
        controller.poller.on_change = None
        await controller.aclose()


async def _send_result():
    try:
        return await controller.send_result()
    finally:
        await controller.client.aclose()


st.title("📄 Demo Upload")
st.caption("Upload a PDF or DOCX file to see document processing in action")
st.markdown("---")

# Sidebar: effective configuration, hidden in production
with st.sidebar:
    st.header("⚙️ Configuration")
    if settings.is_production or not settings.show_debug_info:
        st.warning("Configuration details are not available in this environment.")
    else:
        st.json(settings.model_dump(mode="json"))

col1, col2 = st.columns([1, 1])

with col1:
    st.header("🚀 Upload Document")

    uploaded = st.file_uploader("Supports PDF and DOCX files", type=["pdf", "docx"])
    if uploaded is not None:
        st.info(f"**{uploaded.name}** · {uploaded.size / 1024 / 1024:.2f} MB")

    busy = controller.state.is_active
    col1a, col1b = st.columns([1, 1])
    with col1a:
        upload_clicked = st.button("⬆️ Upload", disabled=uploaded is None or busy, use_container_width=True)
    with col1b:
        if st.button("🔄 Reset", disabled=busy, use_container_width=True):
            controller.reset()
            st.session_state.pop("raw_logged", None)
            st.rerun()

    status_box = st.empty()

    if upload_clicked and uploaded is not None:
        upload = UploadFile(
            filename=uploaded.name,
            content_type=uploaded.type or guess_media_type(uploaded.name),
            content=uploaded.getvalue(),
        )
        st.session_state.pop("raw_logged", None)
        try:
            with st.spinner("Processing document..."):
                asyncio.run(_upload_and_wait(upload, status_box))
        except ValidationError:
            pass  # surfaced through controller.error_message below
        except FirmFlowError as e:
            st.error(f"❌ {e.user_message}")

    if controller.error_message:
        st.error(f"❌ {controller.error_message}")
    elif controller.state is JobState.SUCCEEDED:
        status_box.success("✅ **Status:** Succeeded")
    elif controller.job is not None:
        st.info(f"**Job ID:** `{controller.job.job_id}`")

with col2:
    header = "📊 Extraction Results"
    if controller.requires_review:
        header += " · ⚠️ Requires review"
    st.header(header)

    payload = controller.payload
    if controller.state.is_active:
        st.info("🔄 Processing document...")
    elif payload is None or not payload.available:
        if controller.state is JobState.SUCCEEDED:
            st.info("No extraction data available.")
        else:
            st.info("Upload a document to see extraction results")
    elif payload.parse_failed:
        st.warning(controller.poller.parse_error.user_message if controller.poller.parse_error else ParseError.user_message)
    else:
        view = summarize(payload.parsed)
        st.subheader("Summary")
        st.write(view["summary"])

        if view["parties"]:
            st.subheader("Parties")
            for party in view["parties"]:
                if isinstance(party, dict):
                    line = f"**{party.get('name', 'Unknown party')}**"
                    if party.get("role"):
                        line += f" · {party['role']}"
                    email = (party.get("contact") or {}).get("email")
                    if email:
                        line += f" · {email}"
                    st.markdown(line)
                else:
                    st.markdown(f"**{party}**")
            if view["more_parties"]:
                st.caption(f"and {view['more_parties']} more parties")

        if view["obligations"]:
            st.subheader("Key Obligations")
            for obligation in view["obligations"]:
                st.markdown(f"- {obligation}")

        if view["effective_date"] or view["expiration_date"]:
            st.subheader("Dates")
            d1, d2 = st.columns(2)
            if view["effective_date"]:
                d1.metric("Effective", view["effective_date"])
            if view["expiration_date"]:
                d2.metric("Expires", view["expiration_date"])

        if view["confidence"] is not None:
            st.subheader("Confidence")
            st.progress(min(view["confidence"], 100) / 100, text=f"{view['confidence']}%")

    # Raw JSON panel
    if payload is not None and payload.available and (settings.show_raw_extraction or payload.parse_failed):
        show_raw = st.toggle("Show raw JSON", value=payload.parse_failed)
        if show_raw:
            if not st.session_state.get("raw_logged"):
                controller.mark_raw_shown()
                st.session_state.raw_logged = True
            raw = payload.raw
            if isinstance(raw, str):
                st.code(raw, language="json")
            else:
                st.code(json.dumps(raw, indent=2), language="json")

    if controller.state is JobState.SUCCEEDED and controller.result is not None:
        if st.button("⚡ Send to automation", use_container_width=True):
            asyncio.run(_send_result())
            st.rerun()
        if controller.forwarded:
            st.success("✅ Sent to automation!")

# Debug log viewer
if verbose and controller.poller.log_key:
    st.markdown("---")
    job_key = controller.poller.log_key
    with st.expander(f"📋 Debug Logs · {job_key}", expanded=False):
        entries = controller.logs()
        if entries:
            for entry in entries[:50]:
                detail = entry.detail if isinstance(entry.detail, str) else json.dumps(entry.detail)
                st.text(f"[{entry.timestamp}] {entry.tag.value}: {detail}")
        else:
            st.info("No logs yet...")

        export = controller.log_store.export(job_key)
        b1, b2 = st.columns([1, 1])
        with b1:
            st.download_button("⬇️ Download logs", export.content, file_name=export.filename,
                               mime=export.media_type, use_container_width=True)
        with b2:
            if st.button("🗑️ Clear logs", use_container_width=True):
                controller.log_store.clear(job_key)
                st.rerun()

    tracked = controller.log_store.list_tracked_job_ids()
    if tracked:
        st.caption("Jobs with stored logs: " + ", ".join(tracked[-10:]))
