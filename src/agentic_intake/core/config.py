import os
from dataclasses import dataclass

@dataclass
class AgentConfig:
    model: str = os.getenv("INTAKE_MODEL", "gpt-4o-mini")
    temperature: float = float(os.getenv("INTAKE_TEMPERATURE", "0.7"))
    recent_window: int = int(os.getenv("INTAKE_RECENT_WINDOW", "6"))
    summarize_threshold: int = int(os.getenv("INTAKE_SUMMARIZE_THRESHOLD", "20"))
    summarize_keep_recent: int = int(os.getenv("INTAKE_SUMMARIZE_KEEP", "10"))
    llm_timeout_seconds: float = float(os.getenv("INTAKE_LLM_TIMEOUT_SECONDS", "45"))
    retry_attempts: int = int(os.getenv("INTAKE_RETRY_ATTEMPTS", "3"))
    retry_base_delay: float = float(os.getenv("INTAKE_RETRY_BASE_DELAY", "0.5"))
    session_ttl_seconds: int = int(os.getenv("INTAKE_SESSION_TTL", "86400"))  # 24h
    summary_cache_ttl_seconds: int = int(os.getenv("INTAKE_SUMMARY_CACHE_TTL", "3600"))
