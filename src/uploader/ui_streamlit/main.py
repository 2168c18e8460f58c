from __future__ import annotations

import sys
from pathlib import Path

import streamlit as st

_SRC_ROOT = Path(__file__).resolve().parents[2]
if str(_SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(_SRC_ROOT))

from uploader.container import build_review_services
from uploader.domain.models import COMPLETED, FAILED, PENDING, PROCESSING
from uploader.settings import GOOGLE_DRIVE_ACCESS_TOKEN, SQLITE_PATH
from uploader.ui_streamlit.helpers import (
    accuracy_rows,
    category_options,
    format_confidence,
    method_rows,
    status_rows,
    upload_row,
)

_STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)


def _init_state() -> None:
    st.session_state.setdefault("services", None)
    st.session_state.setdefault("services_access_token", None)
    st.session_state.setdefault("services_sqlite_path", None)


def _get_services(access_token: str, sqlite_path: str):
    if (
        st.session_state["services"] is None
        or st.session_state.get("services_access_token") != access_token
        or st.session_state.get("services_sqlite_path") != sqlite_path
    ):
        st.session_state["services"] = build_review_services(access_token, sqlite_path)
        st.session_state["services_access_token"] = access_token
        st.session_state["services_sqlite_path"] = sqlite_path
    return st.session_state["services"]


def _render_overview(services: dict) -> None:
    stats = services["store"].stats_by_status()
    st.subheader("Uploads")
    cols = st.columns(4)
    cols[0].metric("Total", stats.total)
    cols[1].metric("Completed", stats.completed)
    cols[2].metric("Failed", stats.failed)
    cols[3].metric("Success rate", f"{stats.success_rate:.1f}%")
    st.table(status_rows(stats))

    status = st.selectbox("Show uploads with status", _STATUSES, index=2)
    records = services["store"].list_by_status(status, limit=100)
    if records:
        st.dataframe([upload_row(record) for record in records], use_container_width=True)
    else:
        st.info(f"No {status} uploads.")

    counts = services["store"].category_folder_counts()
    if counts:
        st.caption("Files per category folder")
        st.table([{"Category": name, "Files": count} for name, count in sorted(counts.items())])


def _render_review(services: dict) -> None:
    review = services["review_service"]
    known = services["rule_store"].rules.names()
    pending = review.pending(limit=50)
    st.subheader(f"Pending review ({len(pending)})")
    if not pending:
        st.info("Nothing waiting for review.")
        return

    for record in pending:
        title = (
            f"{record.original_filename} -> {record.ai_category} "
            f"({format_confidence(record.ai_confidence)})"
        )
        with st.expander(title):
            if record.storage_url:
                st.markdown(f"[Open stored file]({record.storage_url})")
            st.write(f"Method: {record.classification_method or '-'}")
            if record.detected_labels:
                st.write("Labels: " + ", ".join(record.detected_labels[:10]))
            if record.detected_text:
                st.text(record.detected_text[:300])

            options, index = category_options(known, record.ai_category)
            category = st.selectbox(
                "Category", options, index=index, key=f"category_{record.source_file_id}"
            )
            filename = st.text_input(
                "Filename",
                value=record.suggested_filename or record.original_filename,
                key=f"filename_{record.source_file_id}",
            )
            cols = st.columns(3)
            confirm = cols[0].button("Confirm", key=f"confirm_{record.source_file_id}")
            save = cols[1].button("Save changes", key=f"save_{record.source_file_id}")
            skip = cols[2].button("Skip", key=f"skip_{record.source_file_id}")
            if not (confirm or save or skip):
                continue
            try:
                if confirm:
                    review.confirm(record.source_file_id)
                elif save:
                    review.review(record.source_file_id, category, filename)
                else:
                    review.skip(record.source_file_id)
            except Exception as exc:
                st.error(f"Review failed: {exc}")
                continue
            st.rerun()


def _render_statistics(services: dict) -> None:
    stats = services["review_service"].statistics()
    st.subheader("Classification accuracy")
    if stats.total == 0:
        st.info("No reviews yet.")
        return
    cols = st.columns(3)
    cols[0].metric("Reviews", stats.total)
    cols[1].metric("Confirmed", stats.confirmed)
    cols[2].metric("Overall accuracy", format_confidence(stats.overall_accuracy))
    st.table(accuracy_rows(stats))
    st.caption("By detection method")
    st.table(method_rows(stats))
    flagged = stats.needs_improvement()
    if flagged:
        st.warning("Needs improvement: " + ", ".join(flagged))


def main() -> None:
    st.title("Slack Drive Uploads")
    _init_state()

    access_token = st.text_input(
        "Google Drive Access Token", value=GOOGLE_DRIVE_ACCESS_TOKEN, type="password"
    )
    sqlite_path = st.text_input("SQLite Path", value=SQLITE_PATH)
    try:
        services = _get_services(access_token, sqlite_path)
    except Exception as exc:
        st.error(f"Could not open the upload store: {exc}")
        return

    overview, review, statistics = st.tabs(["Overview", "Review", "Accuracy"])
    with overview:
        _render_overview(services)
    with review:
        _render_review(services)
    with statistics:
        _render_statistics(services)


if __name__ == "__main__":
    main()
