from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class AppSettings:
    data_dir: Path
    doc_store_path: Path
    llm_base_url: str
    llm_api_key: str
    llm_model: str
    llm_temperature: float
    llm_top_p: Optional[float]
    llm_request_timeout: float
    llm_max_tool_iterations: int
    default_threshold: float
    classification_text_chars: int
    extraction_text_chars: int
    frontend_origin: str
    log_level: str
    backend_port: int


def _int_env(name: str, default: str) -> int:
    return int(os.environ.get(name, default) or default)


def _float_env(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw or default)
    except (TypeError, ValueError):
        return float(default)


def _str_env(name: str, default: str = "") -> str:
    return (os.environ.get(name, default) or default).strip()


def load_settings() -> AppSettings:
    data_dir = Path(os.environ.get("DATA_DIR", "/app_data/docflow"))
    doc_store_path = Path(os.environ.get("DOC_STORE_PATH") or (data_dir / "docflow.db"))

    return AppSettings(
        data_dir=data_dir,
        doc_store_path=doc_store_path,
        llm_base_url=_str_env("LLM_BASE_URL", "http://localhost:11434/v1").rstrip("/"),
        llm_api_key=_str_env("LLM_API_KEY", "ollama"),
        llm_model=_str_env("LLM_MODEL", "llama3.2:3b"),
        llm_temperature=_float_env("LLM_TEMPERATURE", "0.1"),
        llm_top_p=_optional_float_env("LLM_TOP_P"),
        llm_request_timeout=_float_env("LLM_REQUEST_TIMEOUT", "120"),
        llm_max_tool_iterations=_int_env("LLM_MAX_TOOL_ITERATIONS", "3"),
        default_threshold=_float_env("DEFAULT_THRESHOLD", "0.7"),
        classification_text_chars=_int_env("CLASSIFICATION_TEXT_CHARS", "2000"),
        extraction_text_chars=_int_env("EXTRACTION_TEXT_CHARS", "4000"),
        frontend_origin=_str_env("FRONTEND_ORIGIN", f"http://localhost:{os.environ.get('FRONTEND_PORT', '5173')}"),
        log_level=_str_env("LOG_LEVEL", "INFO").upper(),
        backend_port=_int_env("BACKEND_PORT", "8000"),
    )


def _optional_float_env(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None
