# src/agentic_intake/api/main.py
import os
import uuid
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Optional, List, Dict, Any, Literal, Iterator

from fastapi import FastAPI, Depends, Header
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from dotenv import load_dotenv
load_dotenv()
# --- Logging ---
from agentic_intake.core.logging import setup_logging, get_logger

from agentic_intake.core.cache import get_cache
from agentic_intake.core.config import AgentConfig
from agentic_intake.core.errors import ConfigurationError, DecisionParseError, ModelCallError
from agentic_intake.core.llm.client import ChatLLM
from agentic_intake.core.profile import BotStore, BotConfig
from agentic_intake.core.retry import retrying
from agentic_intake.core.schema import UploadedFile, UploadedDocument
from agentic_intake.core.sessions import SessionStore
from agentic_intake.core.submission import FileSubmissionSink, HttpSubmissionSink, SubmissionSink

from agentic_intake.agent.decision import DecisionParser
from agentic_intake.agent.session import ConversationSession, TurnResult, CONNECTIVITY_APOLOGY
from agentic_intake.agent.streaming import SSE_HEADERS, encode_sse, wants_event_stream, StreamChunk
from agentic_intake.agent.summary import summarize_conversation

# ------------------------------------------------------------------------------
# main.py is at: <project>/src/agentic_intake/api/main.py
API_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = API_DIR.parent.parent.parent
DATA_DIR = Path(os.getenv("INTAKE_DATA_DIR", str(PROJECT_ROOT / "data")))

app = FastAPI(title="Agentic Intake – API")

setup_logging()
log = get_logger("api")

# ------------------------------------------------------------------------------
@dataclass
class Runtime:
    bots: BotStore
    sessions: SessionStore
    parser: DecisionParser
    sink: Optional[SubmissionSink]
    config: AgentConfig

    def session(self, bot: BotConfig, mode: str, session_id: str,
                snapshot: Optional[Dict[str, Any]] = None) -> ConversationSession:
        cfg = self.config
        decide = retrying(self.parser.decide, attempts=cfg.retry_attempts, base_delay=cfg.retry_base_delay)
        open_stream = retrying(self.parser.open_stream, attempts=cfg.retry_attempts, base_delay=cfg.retry_base_delay)
        summarizer = partial(
            _summarize, self.parser.llm, cfg, self.sessions.cache,
        )
        kwargs = dict(
            decide=decide,
            open_stream=open_stream,
            sink=self.sink if mode == "live" else None,
            config=cfg,
            summarizer=summarizer,
            session_id=session_id,
        )
        if snapshot:
            return ConversationSession.from_snapshot(bot, snapshot, **kwargs)
        return ConversationSession(bot, **kwargs)

def _summarize(llm, cfg: AgentConfig, cache, messages, gathered):
    return summarize_conversation(
        llm, messages, gathered,
        threshold=cfg.summarize_threshold,
        keep_recent=cfg.summarize_keep_recent,
        cache=cache,
        ttl=cfg.summary_cache_ttl_seconds,
    )

_runtime: Optional[Runtime] = None

def build_runtime() -> Runtime:
    cfg = AgentConfig()
    llm = ChatLLM(cfg.model, temperature=cfg.temperature, timeout=cfg.llm_timeout_seconds)
    url = os.getenv("INTAKE_SUBMISSION_URL")
    sink = HttpSubmissionSink(url) if url else FileSubmissionSink(DATA_DIR / "submissions")
    log.info(f"runtime ready: model={llm.model} sink={type(sink).__name__}", extra={"stage": "api.env"})
    return Runtime(
        bots=BotStore(DATA_DIR / "bots"),
        sessions=SessionStore(get_cache(), ttl=cfg.session_ttl_seconds),
        parser=DecisionParser(llm, cfg),
        sink=sink,
        config=cfg,
    )

def get_runtime() -> Runtime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime

# ------------------------------------------------------------------------------
# API Models
Mode = Literal["live", "simulator"]

class StartRequest(BaseModel):
    botId: str
    mode: Mode = "live"

class StartResponse(BaseModel):
    sessionId: str
    reply: str
    updated_state: Dict[str, Any]

class MessageRequest(BaseModel):
    sessionId: str
    botId: str
    mode: Mode = "live"
    text: str = Field(default="")
    files: List[UploadedFile] = Field(default_factory=list)
    documents: List[UploadedDocument] = Field(default_factory=list)
    imageAnalysis: Optional[str] = None

class MessageResponse(BaseModel):
    reply: str
    updated_state: Dict[str, Any]
    service_mismatch: Optional[bool] = None
    notice: Optional[str] = None
    simulation: Optional[Dict[str, Any]] = None

BUSY = "Still working on your previous message, one moment please."
EXPIRED = "Conversation not found or expired. Please start a new one."
MISCONFIGURED = "This assistant isn't set up correctly yet. Please contact the business directly."

def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})

def _load_bot(rt: Runtime, bot_id: str) -> Optional[BotConfig]:
    return rt.bots.load(bot_id)

def _persist(rt: Runtime, mode: str, sess: ConversationSession):
    bot_id, sid = sess.bot.id, sess.session_id
    if sess.completed and sess.submitted:
        rt.sessions.clear(bot_id, mode, sid)
    else:
        rt.sessions.save(bot_id, mode, sid, sess.to_snapshot())

def _message_response(result: TurnResult) -> MessageResponse:
    return MessageResponse(
        reply=result.reply,
        updated_state=result.state.model_dump(mode="json"),
        service_mismatch=True if result.service_mismatch else None,
        notice=result.notice,
        simulation=result.simulation,
    )

# ------------------------------------------------------------------------------
@app.get("/health")
def health():
    return {"ok": True}

@app.post("/chat/start", response_model=StartResponse)
def start(req: StartRequest, rt: Runtime = Depends(get_runtime)):
    bot = _load_bot(rt, req.botId)
    if bot is None:
        return _error(404, "Bot not found")
    session_id = str(uuid.uuid4())
    try:
        sess = rt.session(bot, req.mode, session_id)
        result = sess.start()
    except ConfigurationError as e:
        log.error(f"bot misconfigured: {e}", extra={"stage": "api.config", "botId": bot.id})
        return _error(500, MISCONFIGURED)
    except (ModelCallError, DecisionParseError) as e:
        log.error(f"start failed after retries: {e}", extra={"stage": "api.model", "botId": bot.id})
        return _error(503, CONNECTIVITY_APOLOGY)
    _persist(rt, req.mode, sess)
    log.info("session started", extra={"stage": "api.start", "sessionId": session_id, "botId": bot.id})
    return StartResponse(sessionId=session_id, reply=result.reply, updated_state=result.state.model_dump(mode="json"))

@app.post("/chat/message", response_model=MessageResponse)
def message(req: MessageRequest, rt: Runtime = Depends(get_runtime),
            accept: Optional[str] = Header(default=None)):
    bot = _load_bot(rt, req.botId)
    if bot is None:
        return _error(404, "Bot not found")
    snapshot = rt.sessions.load(req.botId, req.mode, req.sessionId)
    if snapshot is None:
        return _error(404, EXPIRED)
    log.info("turn in", extra={"stage": "api.turn", "sessionId": req.sessionId, "botId": req.botId})
    if wants_event_stream(accept):
        # the stream claims the turn itself, a response that never starts holds nothing
        if rt.sessions.is_busy(req.botId, req.mode, req.sessionId):
            return _error(409, BUSY)
        return StreamingResponse(_sse(rt, req, bot), headers=SSE_HEADERS, media_type="text/event-stream")

    if not rt.sessions.try_begin(req.botId, req.mode, req.sessionId):
        return _error(409, BUSY)
    try:
        sess = rt.session(bot, req.mode, req.sessionId, snapshot)
    except ConfigurationError as e:
        rt.sessions.end(req.botId, req.mode, req.sessionId)
        log.error(f"bot misconfigured: {e}", extra={"stage": "api.config", "botId": bot.id})
        return _error(500, MISCONFIGURED)

    try:
        result = sess.send(req.text, req.files, req.documents, req.imageAnalysis)
    except (ModelCallError, DecisionParseError) as e:
        log.error(f"turn failed after retries: {e}", extra={"stage": "api.model", "sessionId": req.sessionId})
        return _error(503, CONNECTIVITY_APOLOGY)
    finally:
        rt.sessions.end(req.botId, req.mode, req.sessionId)
    _persist(rt, req.mode, sess)
    log.info("outcome", extra={"stage": "api.out", "sessionId": req.sessionId, "phase": result.state.phase})
    return _message_response(result)

def _sse(rt: Runtime, req: MessageRequest, bot: BotConfig) -> Iterator[str]:
    if not rt.sessions.try_begin(req.botId, req.mode, req.sessionId):
        yield encode_sse(StreamChunk.failure(BUSY))
        return
    committed = False
    try:
        # reloaded under the claim, another turn may have committed since the request arrived
        snapshot = rt.sessions.load(req.botId, req.mode, req.sessionId)
        if snapshot is None:
            yield encode_sse(StreamChunk.failure(EXPIRED))
            return
        sess = rt.session(bot, req.mode, req.sessionId, snapshot)
        for chunk in sess.stream(req.text, req.files, req.documents, req.imageAnalysis):
            if chunk.type == "state_update":
                _persist(rt, req.mode, sess)
                committed = True
            yield encode_sse(chunk)
    except ConfigurationError as e:
        log.error(f"bot misconfigured: {e}", extra={"stage": "api.config", "botId": req.botId})
        yield encode_sse(StreamChunk.failure("This assistant isn't set up correctly yet."))
    finally:
        rt.sessions.end(req.botId, req.mode, req.sessionId)
        log.info("stream closed", extra={"stage": "api.stream.closed", "sessionId": req.sessionId,
                                         "status": "committed" if committed else "uncommitted"})
