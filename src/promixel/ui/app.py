"""Gradio terminal UI for Promixel."""

import html
import logging

import gradio as gr

from promixel import __version__
from promixel.core.config import PromixelConfig, config

from .state import initialize_terminal_state, persist_terminal_state
from .terminal import ERROR, INPUT, TerminalSession

logger = logging.getLogger(__name__)

BROWSER_STORAGE_KEY = "promixel_session"

CUSTOM_CSS = """
.terminal-history pre {
    background: #050505;
    color: #22d3ee;
    font-family: monospace;
    min-height: 320px;
    max-height: 480px;
    overflow-y: auto;
    padding: 12px;
    border: 1px solid #155e75;
}
.terminal-history .error { color: #f87171; }
.terminal-history .input { color: #e5e7eb; }
.pixel-img img { image-rendering: pixelated; width: 100%; }
"""

BANNER = "Promixel v{version} - type 'help' to list commands."


def render_history(session: TerminalSession | None) -> str:
    """Render history lines as escaped HTML."""
    if session is None or not session.history:
        return f"<pre>{html.escape(BANNER.format(version=__version__), quote=False)}</pre>"
    lines = []
    for kind, text in session.history:
        css = "error" if kind == ERROR else "input" if kind == INPUT else "output"
        lines.append(f'<span class="{css}">{html.escape(text, quote=False)}</span>')
    return "<pre>" + "\n".join(lines) + "</pre>"


def render_image(session: TerminalSession | None) -> str:
    if session is None or session.result is None or not session.image_url:
        return ""
    alt = html.escape(session.prompt, quote=True)
    src = html.escape(session.image_url, quote=True)
    return f'<img src="{src}" alt="{alt}" />'


def run_command(
    line: str,
    state: TerminalSession | None,
    stored: dict | None,
    cfg: PromixelConfig = config,
):
    """Execute one terminal command.

    Args:
        line: Command typed by the user.
        state: Per-session terminal state (None on first use).
        stored: Browser storage snapshot.
        cfg: Application configuration.

    Returns:
        Tuple of (history_html, image_html, download_path, cleared_input,
        state, stored).  ``download_path`` is only set right after a
        successful ``download``.
    """
    state = initialize_terminal_state(state, stored, cfg)
    try:
        state.execute(line)
    except Exception as e:
        logger.error(f"Unexpected error running command: {e}", exc_info=True)
        state.history.append((ERROR, "An unexpected error occurred. Please try again later."))

    return (
        render_history(state),
        render_image(state),
        str(state.last_download) if state.last_download else None,
        "",
        state,
        persist_terminal_state(state),
    )


def create_ui(cfg: PromixelConfig = config) -> gr.Blocks:
    """Create the Gradio terminal UI.

    Returns:
        Gradio Blocks app
    """
    app = gr.Blocks(title="Promixel")

    with app:
        # Session state - one TerminalSession per user, created lazily
        terminal_state = gr.State(None)
        # Survives page reloads: cooldown, quota, cached results, sign-in
        browser_state = gr.BrowserState(None, storage_key=BROWSER_STORAGE_KEY)

        gr.Markdown(
            """
            # PROMIXEL
            ### Pixel-art generation terminal
            """
        )

        with gr.Row():
            with gr.Column(scale=3):
                history = gr.HTML(render_history(None), elem_classes=["terminal-history"])
                command = gr.Textbox(
                    label="Command",
                    placeholder="generate pixel cat",
                    lines=1,
                    max_lines=1,
                    autofocus=True,
                )
                submit = gr.Button("Run", variant="primary")
            with gr.Column(scale=2):
                image = gr.HTML("", elem_classes=["pixel-img"])
                download = gr.File(label="Download", interactive=False)

        def _handler(line, state, stored):
            return run_command(line, state, stored, cfg)

        outputs = [history, image, download, command, terminal_state, browser_state]
        for trigger in (command.submit, submit.click):
            trigger(
                fn=_handler,
                inputs=[command, terminal_state, browser_state],
                outputs=outputs,
                concurrency_limit=None,
            )

    return app


def main():
    """Main entry point for the terminal UI."""
    logging.basicConfig(
        level=config.effective_log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting Promixel terminal UI...")
    logger.info(f"API base URL: {config.api_base_url}")

    app = create_ui(config)

    logger.info(f"Launching Gradio UI on {config.gradio_server_name}:{config.gradio_server_port}")

    app.launch(
        server_name=config.gradio_server_name,
        server_port=config.gradio_server_port,
        share=config.gradio_share,
        show_error=True,
        inbrowser=False,
        css=CUSTOM_CSS,
        allowed_paths=[str(config.downloads_dir)],
    )


if __name__ == "__main__":
    main()
