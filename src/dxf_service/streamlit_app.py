import json
import os

import requests
import streamlit as st

API_BASE = os.getenv("DXF_SERVICE_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")


class ApiError(RuntimeError):
    pass


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"{resp.status_code} {resp.text}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"{resp.status_code} {resp.text}"


def _reset_state():
    for key in [
        "file_name",
        "layers",
        "filtered",
        "error",
    ]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    if "upload_key" in st.session_state:
        st.session_state["upload_key"] += 1
    else:
        st.session_state["upload_key"] = 1


def _convert_upload(name: str, content: bytes) -> dict[str, object]:
    """POST the drawing to /convert and return the response's data block."""
    try:
        files = {"designFile": (name, content, "application/octet-stream")}
        resp = requests.post(f"{API_BASE}/convert", files=files, timeout=600)
    except requests.RequestException as e:
        raise ApiError(f"Failed to connect to API: {e}") from e
    if resp.status_code != 200:
        raise ApiError(f"Conversion failed: {_error_message(resp)}")
    return resp.json()["data"]


def _filter_layers(file_name: str, layers: list[str]) -> dict[str, object]:
    try:
        resp = requests.post(
            f"{API_BASE}/filter",
            json={"fileName": file_name, "layers": layers},
            timeout=120,
        )
    except requests.RequestException as e:
        raise ApiError(f"Failed to connect to API: {e}") from e
    if resp.status_code != 200:
        raise ApiError(f"Filter failed: {_error_message(resp)}")
    return resp.json()


def main() -> None:
    st.set_page_config(page_title="DXF Conversion Service", page_icon="🗺️", layout="centered")
    st.title("🗺️ DXF Conversion Service")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    # Use a dynamic key so that restarting bumps the key and clears the previous upload
    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        "Upload a DXF drawing",
        type=["dxf"],
        key=f"uploader-{st.session_state['upload_key']}"
    )

    if uploaded and "file_name" not in st.session_state and st.button("Convert", type="primary"):
        with st.spinner("Uploading and converting..."):
            try:
                data = _convert_upload(uploaded.name, uploaded.getvalue())
            except ApiError as e:
                st.session_state["error"] = str(e)
            else:
                st.session_state["file_name"] = str(data["fileName"])
                st.session_state["layers"] = list(data.get("layers") or [])
                st.toast("Conversion complete", icon="✅")

    if "file_name" in st.session_state:
        st.caption(f"Cached as {st.session_state['file_name']}")
        selected = st.multiselect("Layers", st.session_state.get("layers", []))
        if selected and st.button("Filter layers", type="primary"):
            with st.spinner("Filtering..."):
                try:
                    st.session_state["filtered"] = _filter_layers(st.session_state["file_name"], selected)
                except ApiError as e:
                    st.session_state["error"] = str(e)

    if "filtered" in st.session_state:
        for layer, collection in st.session_state["filtered"].items():
            features = collection.get("features", [])
            st.download_button(
                label=f"Download {layer} ({len(features)} features)",
                data=json.dumps(collection).encode("utf-8"),
                file_name=f"{layer}.geojson",
                mime="application/geo+json",
                key=f"download-{layer}",
            )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
