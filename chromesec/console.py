"""
ChromeSec - Console output
Shared rich console used by every component for status and error lines.
"""

from rich.console import Console
from rich.markup import escape

console = Console(stderr=True, highlight=False)


def log(component: str, message: str, style: str = "") -> None:
    """Print a ``[Component] message`` line, optionally styled."""
    line = f"[{component}] {message}"
    if style:
        console.print(f"[{style}]{escape(line)}[/{style}]")
    else:
        console.print(escape(line))
