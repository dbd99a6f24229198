from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import re
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from lifeguard_core import AIOrchestrator, SessionController, Settings, bootstrap_local_env, language_name
from persistence import (
    HttpDocumentStore,
    LocalCache,
    PersistenceError,
    PersistenceGateway,
    Profile,
    SQLiteCacheDB,
    UnconfiguredDocumentStore,
)

bootstrap_local_env()

logging.basicConfig(
    level=os.getenv("LIFEGUARD_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("lifeguard.api")


class ProfilePayload(BaseModel):
    display_name: str = ""
    email: str = ""
    mobile: str = ""
    emergency_contact: str = ""
    blood_group: str = ""
    health_issues: str = ""
    language: str = "en-US"


class ProfileUpdatePayload(BaseModel):
    display_name: str | None = None
    email: str | None = None
    mobile: str | None = None
    emergency_contact: str | None = None
    blood_group: str | None = None
    health_issues: str | None = None
    language: str | None = None


class ChatSendRequest(BaseModel):
    message: str


class NearbyPlacesRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    query: str = "hospitals and clinics"


class LifeGuardApp:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.db = SQLiteCacheDB(settings.db_path)
        if settings.remote_store_url:
            remote = HttpDocumentStore(
                base_url=settings.remote_store_url,
                token=settings.remote_store_token,
                timeout_seconds=settings.remote_store_timeout_seconds,
            )
        else:
            logger.info("No remote document store configured; profiles stay on the local cache")
            remote = UnconfiguredDocumentStore()
        self.gateway = PersistenceGateway(remote=remote, cache=LocalCache(self.db))
        self.orchestrator = AIOrchestrator(
            api_key=settings.gemini_api_key,
            model=settings.chat_model,
            base_url=settings.gemini_base_url,
        )
        # Least recently used first; bounded by settings.max_sessions.
        self.sessions: OrderedDict[str, SessionController] = OrderedDict()
        self._sessions_lock = asyncio.Lock()

    async def language_for(self, user_id: str) -> str:
        try:
            profile = await self.gateway.load_profile(user_id)
        except PersistenceError:
            logger.exception("Profile for %s unavailable; using default language", user_id)
            return self.settings.default_language
        if profile is None or not profile.language:
            return self.settings.default_language
        return profile.language

    async def session_for(self, user_id: str) -> SessionController:
        async with self._sessions_lock:
            session = self.sessions.get(user_id)
            if session is None or session.closed:
                session = SessionController(
                    user_id=user_id,
                    language_code=await self.language_for(user_id),
                    gateway=self.gateway,
                    orchestrator=self.orchestrator,
                )
                self.sessions[user_id] = session
                await self._evict_idle_sessions(keep=user_id)
            self.sessions.move_to_end(user_id)
            if not session.loaded:
                await session.load()
            return session

    async def _evict_idle_sessions(self, keep: str) -> None:
        idle = [user_id for user_id, session in self.sessions.items() if user_id != keep and not session.pending]
        while len(self.sessions) > self.settings.max_sessions and idle:
            user_id = idle.pop(0)
            logger.info("Closing idle session for %s", user_id)
            await self.end_session(user_id)

    async def end_session(self, user_id: str) -> None:
        session = self.sessions.pop(user_id, None)
        if session is not None:
            await session.close()

    async def apply_language(self, user_id: str, language: str) -> None:
        # Speech and replies are bound to the language the session started with.
        session = self.sessions.get(user_id)
        if session is not None and session.language_code != language:
            await self.end_session(user_id)

    async def shutdown(self) -> None:
        for user_id in list(self.sessions):
            await self.end_session(user_id)


container = LifeGuardApp(Settings.from_env())


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await container.shutdown()


app = FastAPI(title="LifeGuard Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=container.settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_TRUSTED_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


def _validated_trusted_user_id(x_user_id: str) -> str:
    candidate = x_user_id.strip()
    if not candidate or not _TRUSTED_USER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid X-User-Id")
    return candidate


def get_user_id(auth_header: str | None) -> str:
    raw = (auth_header or "").replace("Bearer", "", 1).strip()
    if not raw:
        if container.settings.allow_anonymous:
            return "demo-user"
        raise HTTPException(status_code=401, detail="Missing Authorization")
    # Opaque bearer token; long tokens are hashed into a bounded identifier.
    if len(raw) > 96:
        return f"token_{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:24]}"
    return raw


def resolve_user_id(authorization: str | None, x_user_id: str | None) -> str:
    if x_user_id is not None:
        return _validated_trusted_user_id(x_user_id)
    return get_user_id(authorization)


def _storage_unavailable(exc: PersistenceError) -> HTTPException:
    logger.error("Storage unavailable: %s", exc)
    return HTTPException(status_code=503, detail="Profile storage is unavailable.")


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "ok": True,
        "assistant_configured": container.orchestrator.configured,
        "remote_store_configured": bool(container.settings.remote_store_url),
    }


@app.get("/profile")
async def get_profile(authorization: str | None = Header(default=None), x_user_id: str | None = Header(default=None)):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        profile = await container.gateway.load_profile(user_id)
    except PersistenceError as exc:
        raise _storage_unavailable(exc) from exc
    if profile is None:
        return {}
    return {**profile.to_dict(), "language_name": language_name(profile.language)}


@app.post("/profile")
async def save_profile(
    payload: ProfilePayload,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    profile = Profile(uid=user_id, **payload.model_dump())
    try:
        outcome = await container.gateway.save_profile(profile)
    except PersistenceError as exc:
        raise _storage_unavailable(exc) from exc
    await container.apply_language(user_id, profile.language)
    return {"ok": True, "tier": outcome.tier}


@app.patch("/profile")
async def update_profile(
    payload: ProfileUpdatePayload,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No profile fields supplied.")
    try:
        outcome = await container.gateway.update_profile(user_id, fields)
    except PersistenceError as exc:
        raise _storage_unavailable(exc) from exc
    if "language" in fields:
        await container.apply_language(user_id, fields["language"])
    return {"ok": True, "tier": outcome.tier}


@app.get("/chat/history")
async def chat_history(authorization: str | None = Header(default=None), x_user_id: str | None = Header(default=None)):
    user_id = resolve_user_id(authorization, x_user_id)
    session = await container.session_for(user_id)
    return {"items": [message.to_dict() for message in session.transcript]}


@app.post("/chat/send")
async def chat_send(
    payload: ChatSendRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty.")
    session = await container.session_for(user_id)
    if session.pending:
        raise HTTPException(status_code=409, detail="A reply is already pending.")
    reply = await session.send(payload.message)
    if reply is None:
        raise HTTPException(status_code=409, detail="Message was not sent.")
    return {"reply": reply.to_dict(), "transcript_length": len(session.transcript)}


@app.post("/places/nearby")
async def places_nearby(
    payload: NearbyPlacesRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    resolve_user_id(authorization, x_user_id)
    result = await container.orchestrator.find_nearby_places(payload.latitude, payload.longitude, payload.query)
    return {
        "text": result.text,
        "places": [{"name": place.name, "uri": place.uri} for place in result.places],
    }
