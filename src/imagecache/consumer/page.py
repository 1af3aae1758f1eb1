from __future__ import annotations

import logging
import secrets
from pathlib import Path

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..store.atomic import atomic_write_text

LOGGER = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
TOKEN_NAME = "random.txt"
TODOS = ["Learn JavaScript", "Learn React", "Build a project"]
TODO_MAX_CHARS = 140


def load_or_create_token(data_dir: Path) -> str:
    """Random value generated once per data directory and reused across restarts."""
    path = data_dir / TOKEN_NAME
    try:
        existing = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        existing = ""
    if existing:
        return existing
    token = secrets.token_hex(16)
    data_dir.mkdir(parents=True, exist_ok=True)
    atomic_write_text(path, token + "\n")
    return token


def fetch_pingpong(session: requests.Session, url: str, timeout: float = 2.5) -> str:
    try:
        resp = session.get(url, timeout=timeout)
    except requests.RequestException as exc:
        LOGGER.warning("Ping-pong fetch failed: %s", exc)
        return f"pingpong error: {exc}"
    return resp.text.strip()


def _env() -> Environment:
    loader = FileSystemLoader(TEMPLATE_DIR)
    return Environment(loader=loader, autoescape=select_autoescape(["html", "xml"]))


def render_index(token: str, ping_text: str) -> str:
    template = _env().get_template("index.html")
    return template.render(
        token=token,
        ping_text=ping_text,
        todos=TODOS,
        max_chars=TODO_MAX_CHARS,
    )
