import json, uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field

from agentic_intake.core.errors import SubmissionError
from agentic_intake.core.logging import get_logger
from agentic_intake.core.schema import Message, UploadedFile, is_agentic_schema, is_legacy_schema

_log = get_logger("submission")

class SubmissionPayload(BaseModel):
    botId: str
    gathered_information: Dict[str, str]
    conversationTranscript: List[Message]
    uploadedFiles: List[UploadedFile] = Field(default_factory=list)

class SubmissionReceipt(BaseModel):
    success: bool
    submissionId: Optional[str] = None

class SubmissionSink(Protocol):
    def submit(self, payload: SubmissionPayload) -> SubmissionReceipt: ...

def format_key(key: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in key.split("_"))

def field_label(key: str, schema: Any) -> str:
    """Human label for a gathered key, for either schema flavour."""
    if is_legacy_schema(schema):
        for f in schema:
            fid = f.get("id") if isinstance(f, dict) else getattr(f, "id", None)
            if fid == key:
                label = f.get("label") if isinstance(f, dict) else getattr(f, "label", None)
                return label or format_key(key)
        return format_key(key)
    if is_agentic_schema(schema):
        info = schema.required_info.get(key) if not isinstance(schema, dict) else schema["required_info"].get(key)
        if info is None:
            return format_key(key)
        desc = info.get("description") if isinstance(info, dict) else info.description
        return desc or format_key(key)
    return format_key(key)

class FileSubmissionSink:
    """Dev sink: one JSON document per submission under data/submissions/."""
    def __init__(self, base: Path):
        self.base = base
        self.base.mkdir(parents=True, exist_ok=True)

    def submit(self, payload: SubmissionPayload) -> SubmissionReceipt:
        submission_id = str(uuid.uuid4())
        rec = {
            "id": submission_id,
            "bot_id": payload.botId,
            "data": payload.gathered_information,
            "conversation": [m.model_dump() for m in payload.conversationTranscript],
            "uploaded_files": [f.model_dump() for f in payload.uploadedFiles],
            "status": "new",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            (self.base / f"{submission_id}.json").write_text(json.dumps(rec, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            raise SubmissionError(f"could not store submission: {e}") from e
        _log.info("submission saved", extra={"stage": "submission.saved", "botId": payload.botId, "status": "ok"})
        return SubmissionReceipt(success=True, submissionId=submission_id)

class HttpSubmissionSink:
    """Posts the payload to an external intake endpoint returning {success, submissionId}."""
    def __init__(self, url: str, timeout: float = 15.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self.client = client or httpx.Client(timeout=timeout, headers={"User-Agent": "AgenticIntake/1.0"})

    def submit(self, payload: SubmissionPayload) -> SubmissionReceipt:
        try:
            resp = self.client.post(self.url, json=payload.model_dump(mode="json"))
            resp.raise_for_status()
            receipt = SubmissionReceipt.model_validate(resp.json())
        except (httpx.HTTPError, ValueError) as e:
            _log.error(f"submission failed: {e}", extra={"stage": "submission.error", "botId": payload.botId, "status": "error"})
            raise SubmissionError(f"submission endpoint failed: {e}") from e
        if not receipt.success:
            raise SubmissionError("submission endpoint reported failure")
        return receipt
