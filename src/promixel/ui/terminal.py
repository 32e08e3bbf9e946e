"""Command interpreter behind the terminal UI.

:class:`TerminalSession` turns one typed command line into history lines and
state changes.  It has no Gradio dependency; ``ui.app`` renders its state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from promixel.core.models import GenerationResult
from promixel.ui.auth import AuthError, AuthSession, SupabaseAuthClient
from promixel.ui.downloads import save_image, share_text
from promixel.ui.guard import RequestGuard

logger = logging.getLogger(__name__)

COMMANDS = {
    "help": "Display all available commands",
    "clear": "Clear terminal history",
    "login": "Sign in (usage: login <email> <password>)",
    "logout": "Sign out",
    "whoami": "Show the signed-in user",
    "generate": "Generate pixel art (usage: generate <your prompt>)",
    "regenerate": "Generate the last prompt again",
    "download": "Save the current image to disk",
    "share": "Show text for sharing the current image",
    "exit": "Exit the application",
}

INPUT = "input"
OUTPUT = "output"
ERROR = "error"

SAVE_FAILED_MESSAGE = "Error: Failed to save image"


@dataclass
class TerminalSession:
    """One user's terminal: history, current image and sign-in state.

    Attributes:
        guard: Client request guard used for generation.
        auth_client: Identity provider client.
        downloads_dir: Where ``download`` writes images.
        require_auth: Whether ``generate`` needs a signed-in user.
        history: ``(kind, text)`` lines, ``kind`` in input/output/error.
        prompt: Last prompt submitted with ``generate``.
        result: Last generation result.
        auth: Current sign-in session, if any.
        last_download: File written by the most recent command, if any.
    """

    guard: RequestGuard
    auth_client: SupabaseAuthClient | None = None
    downloads_dir: Path = Path("downloads")
    require_auth: bool = True
    history: list[tuple[str, str]] = field(default_factory=list)
    prompt: str = ""
    result: GenerationResult | None = None
    auth: AuthSession | None = None
    exited: bool = False
    last_download: Path | None = None

    def _out(self, text: str) -> None:
        self.history.append((OUTPUT, text))

    def _err(self, text: str) -> None:
        self.history.append((ERROR, text))

    @property
    def signed_in(self) -> bool:
        return self.auth is not None and not self.auth.is_expired()

    @property
    def image_url(self) -> str:
        return self.result.image_url if self.result else ""

    def execute(self, line: str) -> None:
        """Run one command line and append its output to ``history``."""
        self.last_download = None
        command = (line or "").strip()
        if not command:
            return

        name, _, argument = command.partition(" ")
        argument = argument.strip()

        if name == "login":
            # Never echo the password back into the history.
            self.history.append((INPUT, f"> login {argument.split(' ')[0]} ****"))
        else:
            self.history.append((INPUT, f"> {command}"))

        handler = getattr(self, f"_cmd_{name}", None)
        if name not in COMMANDS or handler is None:
            self._err(f"Unknown command: {command}\nType 'help' for available commands.")
            return
        handler(argument)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _cmd_help(self, argument: str) -> None:
        lines = ["Available commands:"]
        lines += [f"  {cmd} - {desc}" for cmd, desc in COMMANDS.items()]
        self._out("\n".join(lines))

    def _cmd_clear(self, argument: str) -> None:
        self.history = []
        self.result = None
        self.prompt = ""

    def _cmd_exit(self, argument: str) -> None:
        self.exited = True
        self._out("Goodbye!")

    def _cmd_login(self, argument: str) -> None:
        email, _, password = argument.partition(" ")
        if self.auth_client is None:
            self._err("Error: Sign-in is not available.")
            return
        try:
            self.auth = self.auth_client.sign_in(email.strip(), password.strip())
        except AuthError as e:
            self._err(f"Error: {e}")
            return
        self._out(f"Signed in as {self.auth.email}")

    def _cmd_logout(self, argument: str) -> None:
        if self.auth is None:
            self._out("Not signed in.")
            return
        if self.auth_client is not None:
            self.auth_client.sign_out(self.auth)
        self.auth = None
        self._out("Signed out.")

    def _cmd_whoami(self, argument: str) -> None:
        if self.signed_in:
            self._out(self.auth.email)
        else:
            self._out("Not signed in. Use: login <email> <password>")

    def _cmd_generate(self, argument: str) -> None:
        if not argument:
            self._err("Error: Please provide a prompt for the image.")
            return
        self._generate(argument)

    def _cmd_regenerate(self, argument: str) -> None:
        if not self.prompt:
            self._err("Error: Nothing to regenerate yet. Use: generate <your prompt>")
            return
        self._generate(self.prompt)

    def _cmd_download(self, argument: str) -> None:
        if not self.result or not self.result.success:
            self._err("Error: No image to download.")
            return
        try:
            path = save_image(
                self.result.image_url,
                self.downloads_dir,
                self.prompt,
                http_client=self.guard.http_client,
            )
        except ValueError as e:
            self._err(f"Error: {e}")
            return
        except OSError as e:
            logger.error(f"Failed to save image to {self.downloads_dir}: {e}")
            self._err(SAVE_FAILED_MESSAGE)
            return
        self.last_download = path
        self._out(f'Downloaded image as "{path.name}"')

    def _cmd_share(self, argument: str) -> None:
        if not self.result or not self.result.success:
            self._err("Error: No image to share.")
            return
        self._out(share_text(self.result))

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _generate(self, prompt: str) -> None:
        if self.require_auth and not self.signed_in:
            self._err("Error: Please sign in to generate images. Use: login <email> <password>")
            return

        self.prompt = prompt
        self._out(f'Generating pixel art for: "{prompt}"... This may take a few seconds.')

        result = self.guard.request_generation(prompt)
        self.result = result

        if not result.success:
            self._err(f"Error: {result.message or 'Failed to generate pixel art'}")
            return

        if result.message:
            self._out(result.message)
        self._out("✓ Pixel art generated!")
        if result.remaining_credits is not None:
            self._out(f"Credits remaining: {result.remaining_credits}")
