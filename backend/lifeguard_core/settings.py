from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from persistence.records import DEFAULT_LANGUAGE

from .orchestrator import DEFAULT_CHAT_MODEL, GEMINI_API_BASE

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def bootstrap_local_env(repo_root: Path | None = None) -> None:
    root = repo_root or Path(__file__).resolve().parents[2]
    for candidate in (root / ".env", root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    db_path: str
    gemini_api_key: str = ""
    chat_model: str = DEFAULT_CHAT_MODEL
    gemini_base_url: str = GEMINI_API_BASE
    remote_store_url: str = ""
    remote_store_token: str = ""
    remote_store_timeout_seconds: float = 10.0
    default_language: str = DEFAULT_LANGUAGE
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    allow_anonymous: bool = False
    max_sessions: int = 256

    @classmethod
    def from_env(cls) -> "Settings":
        db_path = os.getenv(
            "LIFEGUARD_DB_PATH",
            str(Path(__file__).resolve().parents[1] / "lifeguard.sqlite"),
        )
        api_key = (os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or "").strip()
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
        return cls(
            db_path=db_path,
            gemini_api_key=api_key,
            chat_model=(os.getenv("LIFEGUARD_CHAT_MODEL") or DEFAULT_CHAT_MODEL).strip(),
            gemini_base_url=os.getenv("GEMINI_API_BASE_URL", GEMINI_API_BASE).rstrip("/"),
            remote_store_url=(os.getenv("LIFEGUARD_REMOTE_STORE_URL") or "").strip().rstrip("/"),
            remote_store_token=(os.getenv("LIFEGUARD_REMOTE_STORE_TOKEN") or "").strip(),
            remote_store_timeout_seconds=float(os.getenv("LIFEGUARD_REMOTE_STORE_TIMEOUT_SECONDS", "10")),
            default_language=(os.getenv("LIFEGUARD_DEFAULT_LANGUAGE") or DEFAULT_LANGUAGE).strip(),
            allowed_origins=[origin.strip() for origin in origins if origin.strip()],
            allow_anonymous=_env_flag("ALLOW_ANON"),
            max_sessions=max(1, int(os.getenv("LIFEGUARD_MAX_SESSIONS", "256"))),
        )
