"""NiceGUI chat interface with SSE streaming support."""

import base64
import json
import os
from collections.abc import Callable

import httpx
from nicegui import events, ui

from groundchat.models.schemas import (
    ImagePart,
    InlineImage,
    Message,
    ModelType,
    Role,
    SessionSummary,
    StreamChunk,
    TextPart,
)

API_BASE_URL = os.getenv("API_BASE_URL", f"http://localhost:{os.getenv('PORT', '8000')}")

MODEL_LABELS = {
    ModelType.FLASH.value: "Gemini Flash",
    ModelType.PRO.value: "Gemini Pro",
}

CUSTOM_CSS = """
<link href="https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600&display=swap"
      rel="stylesheet">
<style>
    * { font-family: 'Inter', sans-serif; }

    body { background: #131314; color: #e3e3e3; }

    .message-user {
        background: #2f2f31;
        border-radius: 18px 18px 4px 18px;
    }

    .message-model { border-radius: 18px; }

    .source-chip {
        background: #1e1f20;
        border: 1px solid #3c4043;
        border-radius: 999px;
    }

    .typing-dot {
        width: 8px; height: 8px;
        background: #8ab4f8;
        border-radius: 50%;
        animation: bounce 1.4s infinite ease-in-out;
    }
    .typing-dot:nth-child(2) { animation-delay: 0.2s; }
    .typing-dot:nth-child(3) { animation-delay: 0.4s; }

    @keyframes bounce {
        0%, 60%, 100% { transform: translateY(0); }
        30% { transform: translateY(-6px); }
    }

    .input-box {
        background: #1e1f20;
        border-radius: 24px;
    }
</style>
"""


class ChatPageState:
    """Client-side view of the current session."""

    def __init__(self) -> None:
        self.session_id: str | None = None
        self.messages: list[Message] = []
        self.sessions: list[SessionSummary] = []
        self.model: str = ModelType.FLASH.value
        self.image: InlineImage | None = None
        self.is_streaming: bool = False


async def fetch_sessions() -> list[SessionSummary]:
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.get(f"{API_BASE_URL}/sessions")
        response.raise_for_status()
        return [SessionSummary.model_validate(item) for item in response.json()]


async def create_session() -> SessionSummary:
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.post(f"{API_BASE_URL}/sessions")
        response.raise_for_status()
        return SessionSummary.model_validate(response.json())


async def load_messages(session_id: str) -> list[Message]:
    """Select a session and fetch its message log."""
    async with httpx.AsyncClient(timeout=30.0) as client:
        (await client.post(f"{API_BASE_URL}/sessions/{session_id}/select")).raise_for_status()
        response = await client.get(f"{API_BASE_URL}/sessions/{session_id}")
        response.raise_for_status()
        return [Message.model_validate(m) for m in response.json()["messages"]]


async def stream_chat_response(
    session_id: str,
    payload: dict,
    on_update: Callable[[Message], None],
    on_complete: Callable[[StreamChunk], None],
    on_error: Callable[[str], None],
) -> None:
    """Consume the SSE stream of a message exchange."""
    async with httpx.AsyncClient(timeout=120.0) as client:
        try:
            async with client.stream(
                "POST",
                f"{API_BASE_URL}/sessions/{session_id}/messages/stream",
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    chunk = StreamChunk.model_validate(json.loads(line[6:]))
                    if chunk.done:
                        on_complete(chunk)
                        return
                    if chunk.message is not None:
                        on_update(chunk.message)
        except httpx.HTTPStatusError as e:
            on_error(f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            on_error(f"Connection failed: {e}")


@ui.page("/")
async def chat_page() -> None:
    """Main chat page."""
    ui.add_head_html(CUSTOM_CSS)
    ui.dark_mode().enable()
    state = ChatPageState()

    messages_container: ui.column
    session_list: ui.column
    input_field: ui.textarea
    send_btn: ui.button
    attachment_row: ui.row
    streaming_views: dict[str, Callable[[Message], None]] = {}

    def render_sources(message: Message) -> None:
        if not message.grounding_sources:
            return
        with ui.row().classes("gap-2 mt-2 flex-wrap"):
            for source in message.grounding_sources:
                with ui.element("div").classes("source-chip px-3 py-1"):
                    ui.link(source.title or source.uri, source.uri, new_tab=True).classes(
                        "text-xs text-blue-300 no-underline"
                    )

    def render_typing() -> None:
        with ui.row().classes("gap-1 py-2"):
            for _ in range(3):
                ui.element("div").classes("typing-dot")

    def render_message(message: Message) -> None:
        is_user = message.role == Role.USER
        align = "justify-end" if is_user else "justify-start"

        with ui.row().classes(f"w-full {align}"):
            if is_user:
                with ui.column().classes("message-user max-w-[75%] px-4 py-3 gap-2"):
                    for image in message.images:
                        ui.image(f"data:{image.mime_type};base64,{image.data}").classes(
                            "w-48 rounded-lg"
                        )
                    if message.text:
                        ui.label(message.text).classes("text-sm whitespace-pre-wrap")
                return

            with ui.column().classes("message-model max-w-[85%] gap-1"):
                body = ui.column().classes("w-full gap-0")

                def update(current: Message) -> None:
                    body.clear()
                    with body:
                        if not current.text and not current.final:
                            render_typing()
                        else:
                            ui.markdown(current.text).classes("text-sm leading-relaxed")
                        render_sources(current)

                update(message)
                if not message.final:
                    streaming_views[message.id] = update

    def refresh_messages() -> None:
        messages_container.clear()
        streaming_views.clear()
        with messages_container:
            if not state.messages:
                with ui.column().classes("w-full h-64 items-center justify-center gap-3"):
                    ui.icon("auto_awesome").classes("text-5xl text-blue-300")
                    ui.label("How can I help you today?").classes("text-2xl text-gray-400")
            else:
                for message in state.messages:
                    render_message(message)

    def refresh_sidebar() -> None:
        session_list.clear()
        with session_list:
            for summary in state.sessions:
                active = "bg-gray-800" if summary.id == state.session_id else ""
                ui.button(
                    summary.title,
                    icon="chat_bubble_outline",
                    on_click=lambda s=summary: open_session(s.id),
                ).props("flat no-caps align=left").classes(f"w-full text-gray-300 {active}")

    def refresh_attachment() -> None:
        attachment_row.clear()
        if state.image is None:
            return
        with attachment_row:
            ui.image(f"data:{state.image.mime_type};base64,{state.image.data}").classes(
                "w-16 h-16 rounded-lg"
            )
            ui.button(icon="close", on_click=clear_image).props("flat round dense size=sm")

    def clear_image() -> None:
        state.image = None
        refresh_attachment()

    async def reload_sessions() -> None:
        state.sessions = await fetch_sessions()
        refresh_sidebar()

    async def open_session(session_id: str) -> None:
        if state.is_streaming:
            return
        state.session_id = session_id
        state.messages = await load_messages(session_id)
        refresh_messages()
        refresh_sidebar()

    async def new_chat() -> None:
        summary = await create_session()
        await reload_sessions()
        await open_session(summary.id)

    async def on_upload(e: events.UploadEventArguments) -> None:
        data = await e.file.read()
        state.image = InlineImage(
            mime_type=e.file.content_type or "application/octet-stream",
            data=base64.b64encode(data).decode("ascii"),
        )
        refresh_attachment()

    async def send_message() -> None:
        text = (input_field.value or "").strip()
        if (not text and state.image is None) or state.is_streaming or state.session_id is None:
            return

        payload: dict = {"message": text, "model": state.model}
        parts: list = [TextPart(text=text)] if text else []
        if state.image is not None:
            payload["image"] = state.image.model_dump()
            parts.append(ImagePart(inline_image=state.image))

        input_field.value = ""
        state.image = None
        refresh_attachment()
        state.is_streaming = True
        send_btn.disable()

        # Local echo of the user turn until the stream delivers the reply.
        if not state.messages:
            messages_container.clear()
        user_message = Message(role=Role.USER, parts=parts, final=True)
        state.messages.append(user_message)
        with messages_container:
            render_message(user_message)

        def on_update(message: Message) -> None:
            view = streaming_views.get(message.id)
            if view is None:
                state.messages.append(message)
                with messages_container:
                    render_message(message)
            else:
                view(message)

        def on_complete(chunk: StreamChunk) -> None:
            if chunk.error:
                ui.notify(chunk.error, type="negative")

        def on_error(error: str) -> None:
            ui.notify(error, type="negative")

        await stream_chat_response(state.session_id, payload, on_update, on_complete, on_error)

        state.is_streaming = False
        send_btn.enable()
        state.messages = await load_messages(state.session_id)
        refresh_messages()
        await reload_sessions()

    # === UI Layout ===
    with ui.left_drawer(value=True).classes("bg-[#1e1f20] p-3"):
        ui.button("New chat", icon="add", on_click=new_chat).props("flat no-caps").classes(
            "w-full text-gray-200 mb-4"
        )
        ui.label("Recent").classes("text-xs text-gray-500 px-2")
        session_list = ui.column().classes("w-full gap-1")

    with ui.column().classes("w-full max-w-3xl mx-auto").style("height: calc(100vh - 2rem)"):
        with ui.row().classes("w-full px-2 py-3 items-center justify-between"):
            ui.label("groundchat").classes("text-xl text-gray-200")
            ui.select(MODEL_LABELS, value=state.model).bind_value(state, "model").props(
                "dense borderless dark"
            ).classes("w-40")

        with ui.scroll_area().classes("flex-grow w-full"):
            messages_container = ui.column().classes("w-full gap-6 p-4")

        with ui.column().classes("w-full input-box px-4 py-2 gap-1"):
            attachment_row = ui.row().classes("gap-2 items-center")
            with ui.row().classes("w-full items-end gap-2"):
                ui.upload(on_upload=on_upload, auto_upload=True, max_files=1).props(
                    "accept=image/* flat dense"
                ).classes("w-12")
                input_field = (
                    ui.textarea(placeholder="Ask anything")
                    .props("autogrow borderless dense rows=1 dark")
                    .classes("flex-grow")
                    .on("keydown.enter.prevent", send_message)
                )
                send_btn = ui.button(icon="send", on_click=send_message).props("round flat")

    await reload_sessions()
    if state.sessions:
        current = next((s for s in state.sessions if s.current), state.sessions[0])
        await open_session(current.id)
    else:
        await new_chat()


def main() -> None:
    """Serve only the chat page; the API runs elsewhere at API_BASE_URL."""
    ui.run(
        title="groundchat",
        port=int(os.getenv("UI_PORT", "8080")),
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "groundchat-secret"),
        reload=False,
    )


if __name__ == "__main__":
    main()
