"""
Settings loaded from the environment (and a .env file when present).

Every entry point calls load_settings() once and passes the resulting
dict down; modules never read os.environ themselves.
"""

import os

from dotenv import load_dotenv

LLM_PROVIDERS = ("openai", "huggingface", "none")


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> dict:
    """
    Read settings from the environment.

    Returns:
        dict: Settings keyed by environment variable name

    Raises:
        ValueError: If LLM_PROVIDER is not one of LLM_PROVIDERS
    """
    load_dotenv()

    provider = (os.getenv("LLM_PROVIDER") or "none").strip().lower()
    if provider not in LLM_PROVIDERS:
        raise ValueError(f"LLM_PROVIDER must be one of {LLM_PROVIDERS}, got '{provider}'")

    return {
        "CATALOG_PATH": os.getenv("CATALOG_PATH", "data/subsidy_catalog.json"),
        "CRITERIA_PATH": os.getenv("CRITERIA_PATH", "data/evaluation_criteria.json"),
        "OUTPUT_DIR": os.getenv("OUTPUT_DIR", "outputs"),
        "LLM_PROVIDER": provider,
        "OPENAI_API_KEY": os.getenv("OPENAI_API_KEY"),
        "OPENAI_BASE_URL": os.getenv("OPENAI_BASE_URL"),
        "OPENAI_MODEL": os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        "OPENAI_TIMEOUT": float(os.getenv("OPENAI_TIMEOUT", "60") or 60),
        "OPENAI_MAX_RETRIES": int(os.getenv("OPENAI_MAX_RETRIES", "2") or 0),
        "HF_MODEL_NAME": os.getenv("HF_MODEL_NAME", "Qwen/Qwen2.5-1.5B-Instruct"),
        "HF_LOAD_IN_4BIT": _as_bool(os.getenv("HF_LOAD_IN_4BIT", "true")),
        "HF_DEVICE": os.getenv("HF_DEVICE", "cuda"),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),
    }
