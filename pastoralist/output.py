"""User-facing output and one-time hints."""

import json
import logging
import os
import time
from pathlib import Path
from typing import Protocol

from rich.console import Console
from rich.panel import Panel

logger = logging.getLogger(__name__)

HINT_TTL_SECONDS = 7 * 24 * 60 * 60
HINT_RC_FILE_ID = "rc-file"
HINT_RC_FILE_TEXT = (
    "Your pastoralist config is getting large. Move it to a .pastoralistrc.json "
    "file to keep package.json tidy."
)


class Output(Protocol):
    def write(self, text: str) -> None: ...

    def write_line(self, text: str = "") -> None: ...


class ConsoleOutput:
    """Output backed by a rich console."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def write(self, text: str) -> None:
        self.console.print(text, end="", markup=False, highlight=False)

    def write_line(self, text: str = "") -> None:
        self.console.print(text, markup=False, highlight=False)

    def hint(self, text: str) -> None:
        self.console.print(Panel(text, title="hint", border_style="yellow", width=60))


def pastoralist_home() -> Path:
    return Path(os.environ.get("PASTORALIST_HOME") or Path.home() / ".pastoralist")


class HintStore:
    """Remembers when each hint was last shown."""

    def __init__(self, path: Path | None = None):
        self.path = path or pastoralist_home() / "hints.json"

    def load(self) -> dict[str, float]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def should_show(self, hint_id: str, ttl: float = HINT_TTL_SECONDS) -> bool:
        last_shown = self.load().get(hint_id)
        if not last_shown:
            return True
        return time.time() - last_shown > ttl

    def mark_shown(self, hint_id: str) -> None:
        cache = self.load()
        cache[hint_id] = time.time()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(cache), encoding="utf-8")
        except OSError as e:
            # Hints are informational only
            logger.debug("Could not save hint cache: %s", e)

    def clear(self) -> None:
        if self.path.exists():
            self.path.write_text("{}", encoding="utf-8")


def show_hint(
    hint_id: str,
    text: str,
    output: Output | None = None,
    store: HintStore | None = None,
    ttl: float = HINT_TTL_SECONDS,
) -> bool:
    """Show a hint unless it was shown within the TTL. Returns True if shown."""
    store = store or HintStore()
    if not store.should_show(hint_id, ttl):
        return False

    output = output or ConsoleOutput()
    if isinstance(output, ConsoleOutput):
        output.hint(text)
    else:
        output.write_line(f"hint: {text}")
    store.mark_shown(hint_id)
    return True
