"""sharechat: ingest chat transcripts and share them under short ids.

The parse cascade, sanitizers, id allocator and rate limiter are importable
on their own; the HTTP layer lives in ``sharechat/server.py`` and exposes a
FastAPI application factory named ``create_app``.

Typical usage
-------------
from sharechat import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

from .parser import parse_transcript
from .sanitize import clean_html, sanitize_html
from .types import ConversationRecord, Format, Message, ParseResult, Role

__all__ = [
    "ConversationRecord",
    "Format",
    "Message",
    "ParseResult",
    "Role",
    "__version__",
    "clean_html",
    "create_app",
    "get_version",
    "parse_transcript",
    "sanitize_html",
]

# ---------------------------------------------------------------------
# Version handling
# ---------------------------------------------------------------------
__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


# ---------------------------------------------------------------------
# App factory export (imported lazily so the parsing core works without FastAPI)
# ---------------------------------------------------------------------
def create_app(*args, **kwargs):
    """Return a configured FastAPI application.

    This forwards to :func:`sharechat.server.create_app`.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
