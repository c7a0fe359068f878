"""
Turn loop for one intake conversation.

A turn works on copies of the transcript and state; they replace the committed
ones only after the decision has been parsed, merged and passed through the
guardrails. A failed or cancelled turn therefore leaves the session untouched.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from agentic_intake.agent.decision import decision_from_stream
from agentic_intake.agent.guardrails import enforce_guardrails
from agentic_intake.agent.identity import fix_bot_identity
from agentic_intake.agent.prompt_builder import build_system_prompt
from agentic_intake.agent.state import merge_extracted
from agentic_intake.agent.streaming import StreamAccumulator, StreamChunk
from agentic_intake.core.config import AgentConfig
from agentic_intake.core.errors import (
    ConfigurationError,
    DecisionParseError,
    ModelCallError,
    SubmissionError,
    TransportError,
)
from agentic_intake.core.logging import get_logger
from agentic_intake.core.profile import BotConfig
from agentic_intake.core.schema import (
    ConversationState,
    Decision,
    Message,
    UploadedDocument,
    UploadedFile,
    missing_keys,
)
from agentic_intake.core.submission import SubmissionPayload, SubmissionSink

_log = get_logger("agent.session")

Decide = Callable[[str, Sequence[Message]], Decision]
OpenStream = Callable[[str, Sequence[Message]], Iterator[Any]]
Summarizer = Callable[[Sequence[Message], Dict[str, str]], Optional[str]]

CONNECTIVITY_APOLOGY = "I'm sorry, I'm having trouble connecting right now. Could you try sending that again in a moment?"
SUBMISSION_APOLOGY = ("I'm sorry, something went wrong while submitting your information. "
                      "Nothing was lost, just send any message and I'll try again.")
ALREADY_SUBMITTED = "Your information has already been submitted. Thanks again, we'll be in touch!"
SUBMITTED_AFTER_RETRY = "All set, your information has now been submitted. Thanks again!"

@dataclass
class TurnResult:
    reply: str
    state: ConversationState
    service_mismatch: bool = False
    enforcement_applied: bool = False
    rules_applied: List[str] = field(default_factory=list)
    submitted: bool = False
    submission_id: Optional[str] = None
    notice: Optional[str] = None
    simulation: Optional[Dict[str, Any]] = None

@dataclass
class _Turn:
    messages: List[Message]
    state: ConversationState
    prompt: str

def upload_markers(files: Sequence[UploadedFile], documents: Sequence[UploadedDocument]) -> List[str]:
    lines = []
    for f in files:
        if (f.type or "").startswith("image/"):
            lines.append(f"[IMAGE] {f.url}")
        else:
            lines.append(f"[FILE] {f.url} | {f.filename}")
    for d in documents:
        lines.append(f"[DOCUMENT] {d.url} | {d.filename}")
    return lines

class ConversationSession:
    def __init__(
        self,
        bot: BotConfig,
        decide: Optional[Decide] = None,
        *,
        open_stream: Optional[OpenStream] = None,
        sink: Optional[SubmissionSink] = None,
        config: Optional[AgentConfig] = None,
        summarizer: Optional[Summarizer] = None,
        messages: Optional[Sequence[Message]] = None,
        state: Optional[ConversationState] = None,
        submitted: bool = False,
        session_id: Optional[str] = None,
    ):
        self.bot = bot
        self.schema = bot.agentic_schema()
        self.decide = decide
        self.open_stream = open_stream
        self.sink = sink
        self.config = config or AgentConfig()
        self.summarizer = summarizer
        self.messages: List[Message] = list(messages or [])
        self.state = state or ConversationState.initial(self.schema)
        self.submitted = submitted
        self.session_id = session_id
        self._extra = {"sessionId": session_id, "botId": bot.id}

    # ------------------------------------------------------------------ persistence
    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "messages": [m.model_dump() for m in self.messages],
            "conversationState": self.state.model_dump(mode="json"),
            "submitted": self.submitted,
        }

    @classmethod
    def from_snapshot(cls, bot: BotConfig, snapshot: Dict[str, Any], **kwargs: Any) -> "ConversationSession":
        return cls(
            bot,
            messages=[Message.model_validate(m) for m in snapshot.get("messages", [])],
            state=ConversationState.model_validate(snapshot["conversationState"]),
            submitted=bool(snapshot.get("submitted")),
            **kwargs,
        )

    @property
    def completed(self) -> bool:
        return self.state.phase == "completed"

    # ------------------------------------------------------------------ turns
    def start(self) -> TurnResult:
        """Run the introduction turn on an empty transcript."""
        if self.messages:
            raise ConfigurationError("conversation already started")
        return self.send(None)

    def send(
        self,
        text: Optional[str],
        files: Sequence[UploadedFile] = (),
        documents: Sequence[UploadedDocument] = (),
        image_analysis: Optional[str] = None,
    ) -> TurnResult:
        if self.completed:
            return self._completed_turn()
        if self.decide is None:
            raise ConfigurationError("session has no decision function")
        turn = self._prepare(text, files, documents, image_analysis, response_mode="json")
        decision = self.decide(turn.prompt, turn.messages)
        return self._finalize(turn, decision)

    def stream(
        self,
        text: Optional[str],
        files: Sequence[UploadedFile] = (),
        documents: Sequence[UploadedDocument] = (),
        image_analysis: Optional[str] = None,
    ) -> Iterator[StreamChunk]:
        """Yield tokens as the model writes them, then one state_update and done.

        Any failure ends the stream with a single error chunk instead of done;
        nothing is committed in that case or when the consumer stops early.
        """
        if self.completed:
            result = self._completed_turn()
            yield self._state_chunk(result)
            yield StreamChunk.failure(result.notice) if result.notice else StreamChunk.done()
            return
        if self.open_stream is None:
            raise ConfigurationError("session has no stream opener")

        turn = self._prepare(text, files, documents, image_analysis, response_mode="stream")
        try:
            raw = self.open_stream(turn.prompt, turn.messages)
        except ModelCallError as e:
            _log.error(f"could not open model stream: {e}", extra={**self._extra, "stage": "session.stream.open"})
            yield StreamChunk.failure(CONNECTIVITY_APOLOGY)
            return

        acc = StreamAccumulator()
        try:
            for piece in raw:
                for chunk in acc.feed(piece):
                    yield chunk
            for chunk in acc.finish():
                yield chunk
            decision = decision_from_stream(acc.full_message, acc.tool_calls)
        except (TransportError, ModelCallError, DecisionParseError) as e:
            _log.error(f"stream failed, nothing committed: {e}", extra={**self._extra, "stage": "session.stream.error"})
            yield StreamChunk.failure(CONNECTIVITY_APOLOGY)
            return
        finally:
            close = getattr(raw, "close", None)
            if close is not None:
                close()

        result = self._finalize(turn, decision)
        yield self._state_chunk(result)
        yield StreamChunk.failure(result.notice) if result.notice else StreamChunk.done()

    # ------------------------------------------------------------------ internals
    def _prepare(self, text, files, documents, image_analysis, *, response_mode: str) -> _Turn:
        messages = list(self.messages)
        state = self.state.model_copy(deep=True)
        docs = [d.model_copy(update={"uploaded_at_turn": len(messages)}) for d in documents]

        if text or files or docs:
            lines = [text] if text else []
            lines += upload_markers(files, docs)
            messages.append(Message(role="user", content="\n".join(lines)))
            state.last_user_message = text
        state.uploaded_files.extend(files)
        state.uploaded_documents.extend(docs)
        state.missing_info = missing_keys(state.gathered_information, self.schema.required_keys)

        summary = None
        if self.summarizer is not None:
            summary = self.summarizer(messages, state.gathered_information)

        prompt = build_system_prompt(
            self.bot.business_name,
            self.schema,
            self.bot.business_profile,
            state,
            state.uploaded_documents,
            self.schema.required_keys,
            state.missing_info,
            image_analysis=image_analysis,
            messages=messages,
            conversation_summary=summary,
            response_mode=response_mode,
        )
        return _Turn(messages=messages, state=state, prompt=prompt)

    def _finalize(self, turn: _Turn, decision: Decision) -> TurnResult:
        merged = merge_extracted(turn.state, decision.extracted_information, self.schema)
        guard = enforce_guardrails(
            decision, self.state, turn.messages, self.schema, merged.gathered, self.schema.required_keys,
        )
        phase, reply = guard.final_phase, guard.reply
        if merged.rejections:
            reply = merged.correction_prompt or reply
            if phase in ("confirmation", "completed"):
                phase = "collecting"
        reply = fix_bot_identity(reply, self.bot.business_name, self.schema, self.bot.name)

        state = turn.state.model_copy(update={
            "gathered_information": merged.gathered,
            "missing_info": merged.missing,
            "phase": phase,
            "current_topic": decision.current_topic or turn.state.current_topic,
        })
        self.messages = turn.messages + [Message(role="bot", content=reply)]
        self.state = state
        _log.info(f"turn committed in phase {phase}", extra={**self._extra, "stage": "session.commit", "phase": phase})

        result = TurnResult(
            reply=reply,
            state=state,
            service_mismatch=decision.service_mismatch,
            enforcement_applied=guard.enforcement_applied,
            rules_applied=list(guard.rules_applied),
        )
        if phase == "completed" and not self.submitted:
            self._hand_off(result)
        return result

    def _hand_off(self, result: TurnResult):
        payload = SubmissionPayload(
            botId=self.bot.id,
            gathered_information=dict(self.state.gathered_information),
            conversationTranscript=list(self.messages),
            uploadedFiles=list(self.state.uploaded_files),
        )
        if self.sink is None:
            self.submitted = True
            result.submitted = True
            result.simulation = payload.model_dump(mode="json")
            _log.info("simulator mode, submission skipped", extra={**self._extra, "stage": "submission.simulated"})
            return
        try:
            receipt = self.sink.submit(payload)
        except SubmissionError as e:
            _log.error(f"hand-off failed, will retry on next message: {e}",
                       extra={**self._extra, "stage": "submission.failed", "status": "error"})
            self.messages = self.messages + [Message(role="bot", content=SUBMISSION_APOLOGY)]
            result.notice = SUBMISSION_APOLOGY
            return
        self.submitted = True
        result.submitted = True
        result.submission_id = receipt.submissionId
        _log.info("conversation submitted", extra={**self._extra, "stage": "submission.done", "status": "ok"})

    def _completed_turn(self) -> TurnResult:
        """A completed conversation never goes back to the model."""
        if self.submitted:
            return TurnResult(reply=ALREADY_SUBMITTED, state=self.state.model_copy(deep=True), submitted=True)
        result = TurnResult(reply=SUBMITTED_AFTER_RETRY, state=self.state.model_copy(deep=True))
        self._hand_off(result)
        if result.notice:
            result.reply = result.notice
        return result

    def _state_chunk(self, result: TurnResult) -> StreamChunk:
        return StreamChunk(
            type="state_update",
            state=result.state.model_dump(mode="json"),
            reply=result.reply,
            service_mismatch=True if result.service_mismatch else None,
            simulation=result.simulation,
        )
