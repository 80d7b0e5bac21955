"""Streamlit demo UI for the vice bank engine."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

from vice_bank.adapters import csv_adapter, json_adapter
from vice_bank.config import Settings
from vice_bank.errors import ViceBankError
from vice_bank.service import ViceBankService, build_service
from vice_bank.metrics import find_violations, summarize_deposits
from vice_bank.schema import Frequency, ViceBankUser


def _parse_deposits_from_path(file_path: str) -> list:
    suffix = Path(file_path).suffix.lower()
    if suffix == ".csv":
        return csv_adapter.parse(file_path)
    if suffix == ".json":
        return json_adapter.parse(file_path)
    raise ValueError("Unsupported file type. Please use .csv or .json")


def _parse_uploaded(uploaded_file) -> list:
    suffix = Path(uploaded_file.name).suffix.lower()
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as handle:
        handle.write(uploaded_file.getbuffer())
        temp_path = handle.name
    return _parse_deposits_from_path(temp_path)


def load_service(tasks: list, deposits: list) -> ViceBankService:
    service = build_service(Settings())
    for owner_id in sorted({task.owner_id for task in tasks}):
        service.add_user(ViceBankUser(id=owner_id, name=owner_id))
    for task in tasks:
        service.add_task(task)
    for deposit in deposits:
        service.add_task_deposit(deposit)
    return service


def run_engine(tasks: list, deposits: list, owner_id: str) -> dict[str, Any]:
    """Replay the inputs and return a UI-friendly result payload for one owner."""

    service = load_service(tasks, deposits)
    stored = service.get_task_deposits(owner_id, pagination=max(1, len(deposits)))
    return {
        "service": service,
        "current_tokens": service.get_user(owner_id).current_tokens,
        "summary": summarize_deposits(stored),
        "violations": find_violations(stored),
        "deposits": stored,
    }


def main() -> None:
    import streamlit as st

    st.set_page_config(page_title="Vice Bank Demo", layout="wide")
    st.title("Vice Bank: task deposit demo")

    with st.sidebar:
        st.header("Controls")
        uploaded = st.file_uploader("Upload deposit history", type=["csv", "json"])
        use_demo = st.checkbox("Load demo dataset", value=True)
        owner_id = st.text_input("Owner", value="alex")
        frequency = st.selectbox("Window view", options=[f.value for f in Frequency], index=0)
        run = st.button("Run engine", type="primary")

    if not run:
        st.info("Configure inputs in the sidebar and click **Run engine**.")
        return

    try:
        tasks = json_adapter.parse_tasks("examples/sample_tasks.json")
        if use_demo:
            deposits = csv_adapter.parse("examples/sample_deposits.csv")
            data_source = "demo dataset (examples/sample_deposits.csv)"
        elif uploaded is not None:
            deposits = _parse_uploaded(uploaded)
            data_source = f"uploaded file ({uploaded.name})"
        else:
            st.error("Please upload a CSV/JSON file or enable 'Load demo dataset'.")
            return

        if not deposits:
            st.error("No deposits were found in the selected input.")
            return

        result = run_engine(tasks, deposits, owner_id)

        st.success(f"Replayed {len(deposits)} deposits from {data_source}.")

        st.subheader("A) Balance")
        summary = result["summary"]
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Current tokens", f"{result['current_tokens']:.2f}")
        c2.metric("Deposits", summary["total_deposits"])
        c3.metric("Credited", summary["credited_deposits"])
        c4.metric("Windows", summary["windows"])
        st.table([summary["tokens_by_task"]])

        st.subheader("B) Deposits")
        st.table([deposit.to_dict() for deposit in result["deposits"]])

        st.subheader("C) Window membership")
        service = result["service"]
        for deposit in result["deposits"]:
            members = service.engine.get_deposits_for_frequency(deposit, frequency)
            st.write(f"{deposit.task_name} @ {deposit.timestamp:%Y-%m-%d %H:%M}: {len(members)} in {frequency} window")

        st.subheader("D) Invariant check")
        if result["violations"]:
            st.error(f"Windows with more than one earner: {result['violations']}")
        else:
            st.write("Every window has at most one earner.")

    except (ValueError, ViceBankError) as exc:
        st.error(f"Input error: {exc}")
    except Exception:
        st.error("Something went wrong while running the demo. Please verify the input format.")


if __name__ == "__main__":
    main()
