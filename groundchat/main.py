"""Command-line entry point for groundchat.

Two run modes, chosen with RUN_MODE:

    integrated  FastAPI and the NiceGUI page share one uvicorn server on PORT.
    separate    the API (PORT) and the UI (UI_PORT) run as child processes;
                the UI reaches the API through API_BASE_URL.

Settings come from the environment, with a .env file loaded first.
"""

import logging
import os
import subprocess
import sys
import time

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

DEFAULT_API_PORT = 8000
DEFAULT_UI_PORT = 8080


def api_port() -> int:
    return int(os.getenv("PORT", str(DEFAULT_API_PORT)))


def ui_port() -> int:
    return int(os.getenv("UI_PORT", str(DEFAULT_UI_PORT)))


def run_integrated() -> None:
    """Serve the API and the chat page from a single process."""
    import uvicorn
    from nicegui import ui

    from groundchat.api.app import create_app
    from groundchat.ui.chat_page import chat_page  # noqa: F401 - registers "/"

    app = create_app()
    ui.run_with(
        app,
        title="groundchat",
        favicon="✨",
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "groundchat-secret"),
    )

    port = api_port()
    logger.info(f"Chat UI and API on http://localhost:{port} (docs at /docs)")
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


def run_separate() -> None:
    """Run the API and the UI as two child processes until either exits."""
    host = os.getenv("HOST", "0.0.0.0")
    port = api_port()
    env = dict(os.environ)
    env.setdefault("API_BASE_URL", f"http://localhost:{port}")
    env["UI_PORT"] = str(ui_port())

    commands = {
        "api": [
            sys.executable, "-m", "uvicorn", "groundchat.api.app:create_app", "--factory",
            "--host", host, "--port", str(port),
        ],
        "ui": [sys.executable, "-m", "groundchat.ui.chat_page"],
    }
    logger.info(f"API on http://localhost:{port}, UI on http://localhost:{env['UI_PORT']}")
    procs = {name: subprocess.Popen(cmd, env=env) for name, cmd in commands.items()}

    try:
        while all(proc.poll() is None for proc in procs.values()):
            time.sleep(1)
        for name, proc in procs.items():
            if proc.returncode is not None:
                logger.warning(f"{name} process exited with code {proc.returncode}")
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping servers")
    finally:
        for proc in procs.values():
            proc.terminate()
        for proc in procs.values():
            proc.wait()


def main() -> None:
    mode = os.getenv("RUN_MODE", "integrated").lower()
    logger.info(f"Starting groundchat ({mode})")
    if mode == "separate":
        run_separate()
    else:
        run_integrated()


if __name__ == "__main__":
    main()
