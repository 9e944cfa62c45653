# nexus_agent/ui/app.py
import base64
import time
import uuid

import requests
import streamlit as st

from nexus_agent.config import API_BASE
from nexus_agent.models import ChatAttachment, ChatMessage

CHAT_ERROR_MESSAGE = "Error generating response. Please check your API Keys in Settings."

st.set_page_config(page_title="Nexus Agent", layout="centered")


def api_get(path):
    response = requests.get(f"{API_BASE}{path}", timeout=30)
    response.raise_for_status()
    return response.json()


def error_detail(response):
    try:
        return response.json().get("detail", "Unknown error")
    except ValueError:
        return response.text or "Unknown error"


def welcome_message(settings, memory_count):
    return ChatMessage(
        id="welcome",
        sender="ai",
        text=(
            f"Hello! I am your {settings['role']}. Send me a client message and I will "
            f"analyze it using {memory_count} memories via Gemini."
        ),
        timestamp=int(time.time() * 1000),
    )


# ============================================================
# SETUP (no keys stored yet)
# ============================================================

def render_setup():

    st.title("Nexus Agent")
    st.write("Add a Gemini API key to activate the agent.")
    st.markdown("[Get a key from Google AI Studio](https://aistudio.google.com/app/apikey)")

    with st.form("setup_key"):
        label = st.text_input("Key Label", value="Primary Key")
        key = st.text_input("Gemini API Key", type="password")
        submitted = st.form_submit_button("Activate", type="primary")

    if submitted:
        if not key.strip():
            st.warning("Enter an API key")
            return

        response = requests.post(
            f"{API_BASE}/keys",
            json={"label": label or "Primary Key", "key": key.strip()},
            timeout=30,
        )

        if response.status_code == 200:
            st.success("Key saved")
            st.rerun()
        else:
            st.error(f"Error saving API key: {error_detail(response)}")


# ============================================================
# KNOWLEDGE BASE
# ============================================================

def render_knowledge_base():

    st.header("Knowledge Base")
    st.write("Upload images, PDFs or text files. Each upload is summarized into a memory.")

    uploaded_files = st.file_uploader(
        "Choose files",
        type=["png", "jpg", "jpeg", "webp", "gif", "pdf", "txt", "md"],
        accept_multiple_files=True,
    )

    if uploaded_files and st.button("Analyze", type="primary"):

        with st.spinner(f"Analyzing {len(uploaded_files)} file(s)..."):

            files = [
                ("files", (f.name, f.getvalue(), f.type or "application/octet-stream"))
                for f in uploaded_files
            ]

            try:
                response = requests.post(f"{API_BASE}/memories", files=files, timeout=300)
            except requests.RequestException as e:
                st.error(f"Error: {str(e)}")
                response = None

        if response is not None:
            if response.status_code == 200:
                result = response.json()
                for item in result["results"]:
                    if item["success"]:
                        st.success(f"{item['name']}: stored")
                    else:
                        st.error(f"{item['name']}: {item['error']}")
            else:
                st.error(f"Upload failed: {error_detail(response)}")

    with st.expander("Add a text note"):
        note_name = st.text_input("Note title", value="Text note")
        note_text = st.text_area("Note")

        if st.button("Save note"):
            with st.spinner("Analyzing note..."):
                response = requests.post(
                    f"{API_BASE}/memories",
                    data={"text": note_text, "name": note_name},
                    timeout=300,
                )
            if response.status_code == 200:
                st.success("Note stored")
            else:
                st.error(f"Error: {error_detail(response)}")

    st.divider()

    data = api_get("/memories")

    st.subheader(f"Active Memories ({data['total_memories']})")

    if not data["memories"]:
        st.info("No memories yet")

    for memory in data["memories"]:
        with st.expander(f"[{memory['type']}] {memory['name']}"):
            st.write(memory["summary"])
            st.caption(time.strftime("%Y-%m-%d %H:%M", time.localtime(memory["timestamp"] / 1000)))

            if st.button("Delete", key=f"delete_{memory['id']}"):
                del_response = requests.delete(f"{API_BASE}/memories/{memory['id']}", timeout=30)
                if del_response.status_code == 200:
                    st.rerun()
                else:
                    st.error("Failed to delete memory")


# ============================================================
# CHAT
# ============================================================

def render_chat(settings, memory_count, key_count):

    st.header("Agent Chat")
    st.caption(f"Role: {settings['role']} | Memories: {memory_count} | Rotated Keys: {key_count}")

    if "messages" not in st.session_state:
        st.session_state.messages = [welcome_message(settings, memory_count)]

    if st.button("Reset chat"):
        st.session_state.messages = [welcome_message(settings, memory_count)]
        st.rerun()

    for message in st.session_state.messages:
        with st.chat_message("user" if message.sender == "user" else "assistant"):
            if message.attachment and message.attachment.type == "image":
                st.image(base64.b64decode(message.attachment.content))
            st.markdown(message.text)

    # clear_on_submit empties the uploader too, so a screenshot is sent once
    with st.form("chat_input", clear_on_submit=True):
        prompt = st.text_area("Client message", placeholder="Type a message or attach a screenshot...")
        image = st.file_uploader("Attach a screenshot", type=["png", "jpg", "jpeg", "webp"])
        sent = st.form_submit_button("Send", type="primary")

    if not sent:
        return

    if not prompt.strip() and image is None:
        st.warning("Type a message or attach a screenshot")
        return

    image_b64 = base64.b64encode(image.getvalue()).decode("ascii") if image else None

    st.session_state.messages.append(
        ChatMessage(
            id=str(uuid.uuid4()),
            sender="user",
            text=prompt,
            attachment=ChatAttachment(type="image", content=image_b64) if image_b64 else None,
            timestamp=int(time.time() * 1000),
        )
    )

    with st.spinner("Drafting reply..."):
        try:
            response = requests.post(
                f"{API_BASE}/chat",
                json={
                    "message": prompt,
                    "image_base64": image_b64,
                    "image_mime_type": image.type if image else None,
                },
                timeout=120,
            )
            reply = response.json()["reply"] if response.status_code == 200 else CHAT_ERROR_MESSAGE
        except requests.RequestException:
            reply = CHAT_ERROR_MESSAGE

    st.session_state.messages.append(
        ChatMessage(
            id=str(uuid.uuid4()),
            sender="ai",
            text=reply,
            timestamp=int(time.time() * 1000),
        )
    )

    st.rerun()


# ============================================================
# SETTINGS
# ============================================================

def render_settings(settings):

    st.header("Settings")

    st.subheader("Agent Persona")

    with st.form("persona"):
        role = st.text_input("Role", value=settings["role"], placeholder="e.g. Sales Specialist")
        tone = st.text_input("Tone", value=settings["tone"], placeholder="e.g. Friendly, Concise")
        language = st.text_input("Language", value=settings["language"], placeholder="e.g. Indonesian (Informal)")

        if st.form_submit_button("Save persona"):
            response = requests.patch(
                f"{API_BASE}/settings",
                json={"role": role, "tone": tone, "language": language},
                timeout=30,
            )
            if response.status_code == 200:
                st.success("Persona saved")
            else:
                st.error(f"Error: {error_detail(response)}")

    st.subheader("API Keys")
    st.write(
        "Add multiple Gemini API keys. The agent rotates between them to avoid "
        "429 rate-limit errors."
    )

    with st.form("add_key", clear_on_submit=True):
        label = st.text_input("Key Label", placeholder="e.g. Account 1")
        key = st.text_input("Gemini API Key", type="password")

        if st.form_submit_button("Add key"):
            if label and key:
                response = requests.post(f"{API_BASE}/keys", json={"label": label, "key": key}, timeout=30)
                if response.status_code == 200:
                    st.rerun()
                else:
                    st.error(f"Error: {error_detail(response)}")
            else:
                st.warning("Label and key are both required")

    keys = api_get("/keys")["keys"]

    if not keys:
        st.info("No keys stored")

    for entry in keys:
        col1, col2 = st.columns([4, 1])
        col1.write(f"**{entry['label']}** `{entry['preview']}`")
        if col2.button("Remove", key=f"remove_{entry['id']}"):
            requests.delete(f"{API_BASE}/keys/{entry['id']}", timeout=30)
            st.rerun()


# ============================================================
# PAGE
# ============================================================

try:
    health = api_get("/health")
    keys_total = api_get("/keys")["total_keys"]
    current_settings = api_get("/settings")
except requests.RequestException as e:
    st.error(f"Cannot connect to API: {str(e)}")
    st.stop()

if not health["ready"]:
    with st.spinner("Loading knowledge base..."):
        time.sleep(1)
    st.rerun()

if keys_total == 0:
    render_setup()
    st.stop()

st.sidebar.title("Nexus Agent")
st.sidebar.metric("Memories", health["total_memories"])
st.sidebar.metric("API Keys", keys_total)

view = st.sidebar.radio("View", ["Knowledge Base", "Chat", "Settings"])

if view == "Knowledge Base":
    render_knowledge_base()
elif view == "Chat":
    render_chat(current_settings, health["total_memories"], keys_total)
else:
    render_settings(current_settings)
