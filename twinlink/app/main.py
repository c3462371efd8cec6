from typing import List, Optional
from datetime import datetime
import logging
import re
from pathlib import Path

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from twinlink.app.schemas import (
    CharacterCard,
    CharacterCreate,
    CharacterUpdate,
    ChatRequest,
    ImageGenerateRequest,
    LinkChatRequest,
    ProfileUpdate,
    SessionCreate,
    SettingsUpdate,
    StatusUpdate,
    UserCreate,
)
from twinlink.services import config, models, storage
from twinlink.services.database import SessionLocal, engine
from twinlink.services.errors import TwinLinkError, UnauthorizedError
from twinlink.services.images import IMAGE_TYPES, UPLOAD_EXTENSIONS, UPLOAD_TYPES, generate_and_store, object_key
from twinlink.services.llm import PROVIDERS, build_system_prompt, open_chat_stream, resolve_provider
from twinlink.services.missions import MISSION_TEMPLATES, build_mission, suggested_options
from twinlink.services.samples import SAMPLE_CHARACTERS
from twinlink.services.secrets import decrypt_optional, encrypt_optional
from twinlink.services.sessions import (
    InvalidTransition,
    append_message,
    history_for_prompt,
    new_link_token,
    seed_greeting,
    share_path,
    transition_status,
)
from twinlink.services.sse import SSEParser


models.Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


app = FastAPI(title="DigitalTwinLink")
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
logger = logging.getLogger("uvicorn.error")

# Quotes, parens, backslashes and whitespace would end a CSS url('...')
_UNSAFE_URL_CHARS = re.compile(r"[\s'\"()\\<>;]")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-AI-Provider"],
)
app.mount(
    "/storage",
    StaticFiles(directory=str(storage.ensure_storage_root())),
    name="storage",
)


@app.exception_handler(TwinLinkError)
async def twinlink_error_handler(request: Request, exc: TwinLinkError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> models.User:
    """Resolve the bearer token to a user or fail with 401."""
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Authorization header required")
    token = authorization[len("Bearer "):].strip()
    user = db.query(models.User).filter(models.User.access_token == token).first()
    if not user:
        raise UnauthorizedError()
    return user


# --- Serialisation helpers ---
def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _character_out(c: models.Character) -> dict:
    return {
        "id": c.id,
        "user_id": c.user_id,
        "name": c.name,
        "avatar_url": c.avatar_url,
        "background_url": c.background_url,
        "v3_data": c.v3_data or {},
        "created_at": _iso(c.created_at),
        "updated_at": _iso(c.updated_at),
    }


def _session_out(s: models.MissionSession) -> dict:
    return {
        "id": s.id,
        "character_id": s.character_id,
        "sender_id": s.sender_id,
        "link_token": s.link_token,
        "share_url": config.public_url(share_path(s.link_token)),
        "mission": s.mission or {},
        "status": s.status,
        "created_at": _iso(s.created_at),
        "completed_at": _iso(s.completed_at),
    }


def _message_out(m: models.ChatMessage) -> dict:
    return {
        "id": m.id,
        "session_id": m.session_id,
        "role": m.role,
        "content": m.content,
        "suggested_options": m.suggested_options,
        "created_at": _iso(m.created_at),
    }


def _settings_out(s: models.UserSettings) -> dict:
    return {
        "ai_provider": s.ai_provider,
        "has_groq_api_key": bool(s.groq_api_key_enc),
        "has_gemini_api_key": bool(s.gemini_api_key_enc),
        "updated_at": _iso(s.updated_at),
    }


def _profile_out(p: models.Profile) -> dict:
    return {
        "user_id": p.user_id,
        "display_name": p.display_name,
        "avatar_url": p.avatar_url,
        "updated_at": _iso(p.updated_at),
    }


def _get_settings(db: Session, user_id: str) -> models.UserSettings:
    """Return the user's settings row, creating the default one on first use."""
    settings = db.query(models.UserSettings).filter(models.UserSettings.user_id == user_id).first()
    if settings is None:
        settings = models.UserSettings(user_id=user_id, ai_provider="default")
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


def _provider_for(db: Session, user_id: Optional[str]):
    if not user_id:
        return resolve_provider("default")
    settings = _get_settings(db, user_id)
    return resolve_provider(
        settings.ai_provider,
        decrypt_optional(settings.groq_api_key_enc),
        decrypt_optional(settings.gemini_api_key_enc),
    )


def _owned_character(db: Session, user: models.User, char_id: str) -> models.Character:
    c = (
        db.query(models.Character)
        .filter(models.Character.id == char_id, models.Character.user_id == user.id)
        .first()
    )
    if not c:
        raise HTTPException(status_code=404, detail="Character not found")
    return c


def _owned_session(db: Session, user: models.User, session_id: str) -> models.MissionSession:
    s = (
        db.query(models.MissionSession)
        .filter(models.MissionSession.id == session_id, models.MissionSession.sender_id == user.id)
        .first()
    )
    if not s:
        raise HTTPException(status_code=404, detail="Session not found")
    return s


def _session_by_token(db: Session, token: str) -> models.MissionSession:
    s = db.query(models.MissionSession).filter(models.MissionSession.link_token == token).first()
    if not s:
        raise HTTPException(status_code=404, detail="Session not found")
    if s.status == "expired":
        raise HTTPException(status_code=410, detail="This session has expired")
    return s


def _page_image_url(url: Optional[str]) -> Optional[str]:
    """Return ``url`` if it is safe inside the share page's inline CSS, else None."""
    if not url or not url.startswith(("https://", "http://", "/storage/")):
        return None
    if _UNSAFE_URL_CHARS.search(url):
        return None
    return url


def _session_messages(db: Session, session_id: str) -> List[models.ChatMessage]:
    return (
        db.query(models.ChatMessage)
        .filter(models.ChatMessage.session_id == session_id)
        .order_by(models.ChatMessage.created_at)
        .all()
    )


# --- Users, profile and settings ---
@app.post("/users")
def create_user(req: UserCreate, db: Session = Depends(get_db)):
    """Register a user and issue the bearer token used by every other route."""
    user = models.User()
    db.add(user)
    db.flush()
    db.add(models.Profile(user_id=user.id, display_name=req.display_name))
    db.add(models.UserSettings(user_id=user.id, ai_provider="default"))
    db.commit()
    db.refresh(user)
    logger.info("Created user %s", user.id)
    return {"id": user.id, "access_token": user.access_token, "display_name": req.display_name}


@app.get("/profile")
def get_profile(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    profile = db.query(models.Profile).filter(models.Profile.user_id == user.id).first()
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_out(profile)


@app.put("/profile")
def update_profile(
    req: ProfileUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = db.query(models.Profile).filter(models.Profile.user_id == user.id).first()
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    for key, value in req.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)
    db.commit()
    db.refresh(profile)
    return _profile_out(profile)


@app.get("/settings")
def get_settings(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Return the AI provider choice without exposing stored key values."""
    return _settings_out(_get_settings(db, user.id))


@app.put("/settings")
def update_settings(
    req: SettingsUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    settings = _get_settings(db, user.id)
    if req.ai_provider is not None:
        if req.ai_provider not in PROVIDERS:
            raise HTTPException(status_code=400, detail=f"ai_provider must be one of {', '.join(PROVIDERS)}")
        settings.ai_provider = req.ai_provider
    if req.groq_api_key is not None:
        settings.groq_api_key_enc = encrypt_optional(req.groq_api_key.strip())
    if req.gemini_api_key is not None:
        settings.gemini_api_key_enc = encrypt_optional(req.gemini_api_key.strip())
    db.commit()
    db.refresh(settings)
    return _settings_out(settings)


# --- Characters CRUD ---
@app.get("/characters/samples")
def list_sample_characters():
    """Built-in personas for guest mode; no sign-in required."""
    return {"samples": [{"key": k, "v3_data": v} for k, v in SAMPLE_CHARACTERS.items()]}


@app.get("/characters")
def list_characters(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    chars = (
        db.query(models.Character)
        .filter(models.Character.user_id == user.id)
        .order_by(models.Character.created_at.desc())
        .all()
    )
    return {"characters": [_character_out(c) for c in chars]}


@app.post("/characters")
def create_character(
    req: CharacterCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    c = models.Character(
        user_id=user.id,
        name=req.name,
        v3_data=req.v3_data.document(),
        avatar_url=req.avatar_url,
        background_url=req.background_url,
    )
    db.add(c)
    db.commit()
    db.refresh(c)
    return _character_out(c)


@app.post("/characters/import")
def import_character(
    card: CharacterCard,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a character from a Character Card V3 document."""
    if card.spec != "chara_card_v3":
        raise HTTPException(status_code=400, detail="Unsupported card spec")
    c = models.Character(user_id=user.id, name=card.data.name, v3_data=card.data.document())
    db.add(c)
    db.commit()
    db.refresh(c)
    return _character_out(c)


@app.get("/characters/{char_id}")
def get_character(char_id: str, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _character_out(_owned_character(db, user, char_id))


@app.get("/characters/{char_id}/card")
def export_character(char_id: str, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    c = _owned_character(db, user, char_id)
    return {"spec": "chara_card_v3", "spec_version": "3.0", "data": c.v3_data or {}}


@app.put("/characters/{char_id}")
def update_character(
    char_id: str,
    req: CharacterUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    c = _owned_character(db, user, char_id)
    if req.name is not None:
        c.name = req.name
    if req.v3_data is not None:
        # Whole-document replace
        c.v3_data = req.v3_data.document()
    if req.avatar_url is not None:
        c.avatar_url = req.avatar_url
    if req.background_url is not None:
        c.background_url = req.background_url
    c.updated_at = models.utcnow()
    db.commit()
    db.refresh(c)
    return _character_out(c)


@app.delete("/characters/{char_id}")
def delete_character(char_id: str, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    c = _owned_character(db, user, char_id)
    # Delete dependents explicitly to avoid FK constraint issues
    for s in list(c.sessions):
        db.query(models.ChatMessage).filter(models.ChatMessage.session_id == s.id).delete(
            synchronize_session=False
        )
        db.delete(s)
    db.delete(c)
    db.commit()
    return {"deleted": True}


# --- Missions and sessions ---
@app.get("/missions/templates")
def list_mission_templates():
    return {"templates": MISSION_TEMPLATES}


@app.get("/sessions")
def list_sessions(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    sessions = (
        db.query(models.MissionSession)
        .filter(models.MissionSession.sender_id == user.id)
        .order_by(models.MissionSession.created_at.desc())
        .all()
    )
    return {"sessions": [_session_out(s) for s in sessions]}


@app.post("/sessions")
def create_session(
    req: SessionCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Start a mission with one of the caller's characters and mint its share link."""
    c = _owned_character(db, user, req.character_id)
    try:
        mission = build_mission(req.mission.mission_type, req.mission.mission_title, req.mission.initial_details)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    mission["generated_by"] = req.mission.generated_by
    if req.mission.confirmation is not None:
        mission["confirmation"] = req.mission.confirmation
    s = models.MissionSession(
        character_id=c.id,
        sender_id=user.id,
        mission=mission,
        link_token=new_link_token(),
        status="active",
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    seed_greeting(db, s, c)
    logger.info("Created session %s for character %s", s.id, c.id)
    return _session_out(s)


@app.get("/sessions/{session_id}")
def get_session(session_id: str, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _session_out(_owned_session(db, user, session_id))


@app.put("/sessions/{session_id}/status")
def update_session_status(
    session_id: str,
    req: StatusUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    s = _owned_session(db, user, session_id)
    try:
        changed = transition_status(s, req.status)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    if changed:
        db.commit()
        db.refresh(s)
    return _session_out(s)


@app.get("/sessions/{session_id}/messages")
def get_session_messages(
    session_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    s = _owned_session(db, user, session_id)
    return {"messages": [_message_out(m) for m in _session_messages(db, s.id)]}


# --- Chat relay ---
@app.post("/chat")
async def chat(
    req: ChatRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Relay a chat turn to the user's AI provider as a server-sent event stream."""
    if not req.messages or not req.messages[-1].content.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    provider, api_key = _provider_for(db, user.id)
    system_prompt = build_system_prompt(req.character.model_dump(), req.mission.model_dump())
    messages = [{"role": m.role, "content": m.content} for m in req.messages]

    chunks = await open_chat_stream(provider, api_key, system_prompt, messages)
    return StreamingResponse(
        chunks,
        media_type="text/event-stream",
        headers={"X-AI-Provider": provider},
    )


# --- Share links ---
@app.get("/s/{token}")
def session_page(token: str, request: Request, db: Session = Depends(get_db)):
    """Render the chat page a shared link opens."""
    try:
        s = _session_by_token(db, token)
    except HTTPException as e:
        return templates.TemplateResponse(
            request, "session_error.html", {"message": e.detail}, status_code=e.status_code
        )
    messages = _session_messages(db, s.id)
    last = messages[-1] if messages else None
    options = last.suggested_options if last is not None and last.role == "assistant" else None
    return templates.TemplateResponse(
        request,
        "session.html",
        {
            "token": token,
            "session": s,
            "character": s.character,
            "avatar_url": _page_image_url(s.character.avatar_url),
            "background_url": _page_image_url(s.character.background_url),
            "mission": s.mission or {},
            "messages": messages,
            "options": options or [],
        },
    )


@app.get("/api/s/{token}")
def resolve_share_link(token: str, db: Session = Depends(get_db)):
    s = _session_by_token(db, token)
    return {
        "session": _session_out(s),
        "character": _character_out(s.character),
        "messages": [_message_out(m) for m in _session_messages(db, s.id)],
    }


@app.post("/api/s/{token}/chat")
async def share_link_chat(token: str, req: LinkChatRequest, db: Session = Depends(get_db)):
    """Chat on a shared link; the turn and the reply are stored with the session."""
    s = _session_by_token(db, token)
    if s.status != "active":
        raise HTTPException(status_code=409, detail="This session is already completed")
    content = req.message.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message is required")

    # Copy what the stream needs; ORM instances may be expired once it starts
    session_id = s.id
    mission = dict(s.mission or {})
    v3 = s.character.v3_data or {}
    character = {
        "name": s.character.name,
        "personality": v3.get("personality", ""),
        "description": v3.get("description", ""),
        "first_mes": v3.get("first_mes", ""),
    }

    provider, api_key = _provider_for(db, s.sender_id)
    history = history_for_prompt(db, session_id) + [{"role": "user", "content": content}]
    chunks = await open_chat_stream(provider, api_key, build_system_prompt(character, mission), history)
    append_message(db, session_id, "user", content)
    options = suggested_options(mission.get("mission_type", ""))

    async def event_gen():
        parts: List[str] = []
        parser = SSEParser(parts.append, provider=provider)
        async for chunk in chunks:
            parser.feed(chunk)
            yield chunk
        parser.close()
        reply = "".join(parts)
        if reply:
            append_message(db, session_id, "assistant", reply, options)

    return StreamingResponse(
        event_gen(),
        media_type="text/event-stream",
        headers={"X-AI-Provider": provider},
    )


# --- Images ---
@app.post("/images/generate")
async def generate_character_image(
    req: ImageGenerateRequest,
    user: models.User = Depends(get_current_user),
):
    """Generate an avatar/background/full-scene image and store it in the bucket."""
    if not req.prompt or not req.type:
        raise HTTPException(status_code=400, detail="Missing required fields: prompt, type")
    if req.type not in IMAGE_TYPES:
        raise HTTPException(
            status_code=400,
            detail="Invalid type. Must be 'avatar', 'background', or 'full-scene'",
        )
    user_id = user.id
    try:
        url = await generate_and_store(user_id, req.prompt, req.type)
    except OSError:
        logger.exception("Storing generated %s image for %s failed", req.type, user_id)
        raise HTTPException(status_code=500, detail="Failed to upload image")
    return {"url": url, "type": req.type}


@app.post("/images/upload")
async def upload_image(
    file: UploadFile = File(...),
    image_type: str = Form(..., alias="type"),
    user: models.User = Depends(get_current_user),
):
    if image_type not in UPLOAD_TYPES:
        raise HTTPException(status_code=400, detail="Invalid type. Must be 'avatar' or 'background'")
    ext = Path(file.filename or "").suffix.lstrip(".").lower()
    if ext not in UPLOAD_EXTENSIONS or not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only PNG, JPEG or WebP images can be uploaded")
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    try:
        url = storage.put_object(object_key(user.id, image_type, ext), data)
    except (OSError, ValueError):
        logger.exception("Image upload for %s failed", user.id)
        raise HTTPException(status_code=500, detail="Failed to upload image")
    return {"url": url}
