import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .errors import InvalidInput, StoryError
from .generator import StoryOrchestrator
from .governor import RateGovernor
from .images import to_image_url
from .llm import GeminiClient, ModelFallbackDriver
from .models import CamelModel, ChoiceId, StoryRequest, StoryResponse, StoryState
from .sessions import DREAMS, StateStore, apply_response, build_request, new_state, step_back

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME, docs_url=None, redoc_url=None)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─────────────────────────────────────────────
# process-wide collaborators
# ─────────────────────────────────────────────
governor = RateGovernor(
    per_minute = settings.RATE_LIMIT_PER_MINUTE,
    per_day    = settings.RATE_LIMIT_PER_DAY,
)
gemini = GeminiClient(settings)
orchestrator = StoryOrchestrator(
    governor,
    ModelFallbackDriver(settings.model_ids, gemini.invoke),
    history_window = settings.HISTORY_WINDOW,
)
store = StateStore()


def get_orchestrator() -> StoryOrchestrator:
    return orchestrator


def get_store() -> StateStore:
    return store


def get_governor() -> RateGovernor:
    return governor


# ─────────────────────────────────────────────
# error mapping
# ─────────────────────────────────────────────
@app.exception_handler(StoryError)
def story_error(req: Request, exc: StoryError):
    if exc.status_code >= 500:
        logger.error("[%s] %s failed: %s", exc.category, req.url.path, exc.details)
    else:
        logger.warning("[%s] %s: %s", exc.category, req.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
def bad_request(req: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    err = InvalidInput(details=f"{where or 'body'}: {first.get('msg', 'invalid request')}")
    if first.get("type") == "json_invalid":
        err.error = "Invalid JSON in request body"
    elif first.get("loc", ())[-1:] == ("dream",):
        err.error = "Invalid request: dream is required"
    return story_error(req, err)


# ─────────────────────────────────────────────
# cookie helper
# ─────────────────────────────────────────────
def get_sid(req: Request, resp: Response, *, create: bool = True) -> Optional[str]:
    sid = req.cookies.get("sid")
    if sid or not create:
        return sid

    sid = uuid4().hex
    resp.set_cookie(
        "sid", sid,
        max_age=60*60*24*30,
        path="/",
        samesite="lax",
    )
    return sid


# ─────────────────────────────────────────────
# stateless generation
# ─────────────────────────────────────────────
@app.get("/")
def health():
    return {"ok": True}


@app.get("/api/dreams")
def dreams():
    return {"dreams": DREAMS}


@app.get("/api/debug-env")
def debug_env(gov: RateGovernor = Depends(get_governor)):
    return {
        "status": "ok",
        "env": settings.describe_key(),
        "models": settings.model_ids,
        "limits": gov.snapshot(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/story/next", response_model=StoryResponse, response_model_by_alias=True)
def next_beat(
    body: StoryRequest = Body(...),
    orch: StoryOrchestrator = Depends(get_orchestrator),
):
    logger.info("generating beat for dream %r", body.dream[:50])
    result = orch.run(body)
    logger.info("beat generated: %s", result.beat.title)
    return result


# ─────────────────────────────────────────────
# server-side sessions
# ─────────────────────────────────────────────
class StartIn(CamelModel):
    dream: str


class ChoiceIn(CamelModel):
    choice_id: ChoiceId
    sid: Optional[str] = None      # fallback when the cookie is not sent


class SidIn(CamelModel):
    sid: Optional[str] = None


def session_view(sid: str, state: Optional[StoryState]) -> dict:
    return {
        "sid": sid,
        "state": state.model_dump(by_alias=True) if state else None,
        "imageUrl": to_image_url(state.image_prompt) if state and state.image_prompt else None,
    }


def _require_state(sid: Optional[str], states: StateStore) -> StoryState:
    state = states.load(sid)
    if state is None:
        raise InvalidInput(details="no story in progress; POST /api/session/start first")
    return state


@app.post("/api/session/start")
def start_session(
    req : Request,
    resp: Response,
    body: StartIn = Body(...),
    orch: StoryOrchestrator = Depends(get_orchestrator),
    states: StateStore = Depends(get_store),
):
    if not body.dream.strip():
        raise InvalidInput(details="dream is required")
    sid = get_sid(req, resp)

    # a new dream replaces whatever story this session had
    state = new_state(body.dream)
    result = orch.run(build_request(state, window=settings.HISTORY_WINDOW))
    state = apply_response(state, result)
    states.save(sid, state)
    return session_view(sid, state)


@app.post("/api/session/choice")
def choose(
    req : Request,
    resp: Response,
    body: ChoiceIn = Body(...),
    orch: StoryOrchestrator = Depends(get_orchestrator),
    states: StateStore = Depends(get_store),
):
    sid = body.sid or get_sid(req, resp, create=False)
    state = _require_state(sid, states)

    result = orch.run(build_request(state, body.choice_id, window=settings.HISTORY_WINDOW))
    state = apply_response(state, result, body.choice_id)
    states.save(sid, state)
    return session_view(sid, state)


@app.post("/api/session/back")
def go_back(
    req : Request,
    resp: Response,
    body: SidIn = Body(None),
    states: StateStore = Depends(get_store),
):
    sid = (body.sid if body else None) or get_sid(req, resp, create=False)
    state = _require_state(sid, states)

    previous = step_back(state)
    if previous is None:
        # nothing behind the opening beat; the client returns to dream selection
        return {**session_view(sid, state), "home": True}
    states.save(sid, previous)
    return {**session_view(sid, previous), "home": False}


@app.get("/api/session")
def current_session(
    req : Request,
    resp: Response,
    sid : Optional[str] = None,
    states: StateStore = Depends(get_store),
):
    sid = sid or get_sid(req, resp, create=False)
    return session_view(sid, states.load(sid))


@app.delete("/api/session")
def restart(
    req : Request,
    resp: Response,
    sid : Optional[str] = None,
    states: StateStore = Depends(get_store),
):
    sid = sid or get_sid(req, resp, create=False)
    states.clear(sid)
    resp.delete_cookie("sid", path="/")
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("beatsmith.main:app", host="0.0.0.0", port=8000, reload=False)
