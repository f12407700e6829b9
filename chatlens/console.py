"""Shared Rich console and per-attempt debug dumps."""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.text import Text

# Global console for Rich output (stderr keeps stdout free for JSON reports)
console = Console(stderr=True)

quiet = False


def log(stage: str, message: str, style: Optional[str] = None) -> None:
    """Print `[stage] message`; the tag is printed literally, not as markup."""
    if quiet:
        return
    console.print(Text.assemble((f"[{stage}] ", "bold cyan"), (message, style or "")))


def warn(stage: str, message: str) -> None:
    log(stage, f"⚠ {message}", "yellow")


def error(stage: str, message: str) -> None:
    # Errors are printed even in quiet mode
    console.print(Text.assemble((f"[{stage}] ", "bold red"), (message, "red")))


def write_debug(debug_dir: Optional[str], name: str, payload: Dict[str, Any]) -> Optional[Path]:
    """Dump one attempt (prompt, raw response, error) under debug_dir, if set."""
    if not debug_dir:
        return None
    debug_path = Path(debug_dir)
    debug_path.mkdir(parents=True, exist_ok=True)
    debug_file = debug_path / f"{name}.json"
    with open(debug_file, 'w', encoding='utf-8') as f:
        json.dump({**payload, "timestamp": time.time()}, f, indent=2, ensure_ascii=False, default=str)
    return debug_file
