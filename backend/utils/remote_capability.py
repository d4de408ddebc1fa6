"""
Remote Capability Client - Single entry point for LLM-backed capabilities

Responsibilities:
- Validate capability payloads against CAPABILITY_SCHEMAS
- Build chat messages per capability and call the configured backend
- Parse backend text into a structured response
- Never raise: every failure becomes CapabilityResult(ok=False, error=...)

Capabilities:
    draft_section       payload {section_title, facts}  -> {'text': str}
    followup_questions  payload {facts}                 -> {'questions': [str]}

A backend is any object with
    complete(messages, max_tokens=..., temperature=...) -> str
(OpenAIChatClient, HuggingFaceClient, or a test double).
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_FOLLOWUP_QUESTIONS = 5

CAPABILITY_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "draft_section": {
        "required": ("section_title", "facts"),
        "max_tokens": 800,
        "temperature": 0.3,
    },
    "followup_questions": {
        "required": ("facts",),
        "max_tokens": 400,
        "temperature": 0.5,
    },
}

SYSTEM_PROMPT = (
    "あなたは小規模事業者持続化補助金の申請書作成を支援する専門家です。"
    "事業者から聞き取った事実だけを使い、誇張せず具体的に記述してください。"
)

NUMBERED_LINE = re.compile(r"^\s*\d+\s*[.)、:]\s*(.+?)\s*$")


@dataclass(frozen=True)
class CapabilityResult:
    """
    Outcome of one capability invocation.

    Attributes:
        ok: True if the response was produced and parsed
        response: Parsed response (empty on failure)
        error: Failure description ('' on success)
    """
    ok: bool
    response: Dict[str, Any] = field(default_factory=dict)
    error: str = ""


def _format_facts(facts: List[Mapping[str, Any]]) -> str:
    lines = []
    for fact in facts:
        answer = fact.get("answer")
        if isinstance(answer, (list, tuple)):
            answer = "、".join(str(a) for a in answer)
        lines.append(f"- {fact.get('question', '')}: {answer}")
    return "\n".join(lines)


def parse_numbered_lines(text: str, limit: int = MAX_FOLLOWUP_QUESTIONS) -> List[str]:
    """
    Extract items from '1. ...' / '2) ...' style lines.

    Full-width digits and punctuation are normalized first.
    """
    items = []
    for line in unicodedata.normalize("NFKC", text).splitlines():
        match = NUMBERED_LINE.match(line)
        if match:
            items.append(match.group(1))
        if len(items) >= limit:
            break
    return items


# =============================================================================
# Per-capability prompt builders and response parsers
# =============================================================================

def _draft_section_messages(payload: Mapping[str, Any]) -> List[Dict[str, str]]:
    prompt = (
        f"申請書の「{payload['section_title']}」欄の文章を作成してください。\n"
        f"以下は事業者への聞き取り結果です。\n\n"
        f"{_format_facts(payload['facts'])}\n\n"
        "400字程度の「です・ます」調の文章で、見出しや箇条書きは使わないでください。"
    )
    if payload.get("instructions"):
        prompt += f"\n追加の指示: {payload['instructions']}"
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt}
    ]


def _parse_draft_section(text: str) -> Dict[str, Any]:
    text = text.strip()
    if not text:
        raise ValueError("empty response")
    return {"text": text}


def _followup_messages(payload: Mapping[str, Any]) -> List[Dict[str, str]]:
    prompt = (
        "以下の聞き取り結果を読み、申請書の説得力を高めるために"
        "追加で確認すべき質問を考えてください。\n\n"
        f"{_format_facts(payload['facts'])}\n\n"
        f"質問は最大{MAX_FOLLOWUP_QUESTIONS}個、"
        "「1. 質問」の形式で1行に1つずつ書いてください。"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt}
    ]


def _parse_followups(text: str) -> Dict[str, Any]:
    questions = parse_numbered_lines(text)
    if not questions:
        raise ValueError("no numbered questions in response")
    return {"questions": questions}


CAPABILITY_HANDLERS = {
    "draft_section": (_draft_section_messages, _parse_draft_section),
    "followup_questions": (_followup_messages, _parse_followups),
}


class RemoteCapabilityClient:
    """Dispatches named capabilities to one chat backend"""

    def __init__(self, backend: Optional[Any] = None, schemas: Optional[Mapping[str, Mapping[str, Any]]] = None):
        """
        Args:
            backend: Object with complete(messages, max_tokens, temperature);
                None disables every capability (all invocations fail)
            schemas: Capability schemas (defaults to CAPABILITY_SCHEMAS)
        """
        self.backend = backend
        self.schemas = dict(schemas if schemas is not None else CAPABILITY_SCHEMAS)
        logger.info(
            f"Remote capability client initialized "
            f"(backend={type(backend).__name__ if backend is not None else 'none'})"
        )

    @property
    def available(self) -> bool:
        return self.backend is not None

    def _fail(self, name: str, error: str) -> CapabilityResult:
        logger.error(f"Capability '{name}' failed: {error}")
        return CapabilityResult(ok=False, error=error)

    def invoke(self, name: str, payload: Mapping[str, Any]) -> CapabilityResult:
        """
        Run a capability.

        Args:
            name: Capability name (key of the schemas)
            payload: Capability input; must contain the schema's required keys

        Returns:
            CapabilityResult: ok=True with parsed response, or ok=False with error
        """
        schema = self.schemas.get(name)
        if schema is None or name not in CAPABILITY_HANDLERS:
            return self._fail(name, f"unknown capability '{name}'")

        missing = [key for key in schema.get("required", ()) if key not in payload]
        if missing:
            return self._fail(name, f"payload missing keys: {missing}")

        if self.backend is None:
            return self._fail(name, "no backend configured")

        build_messages, parse_response = CAPABILITY_HANDLERS[name]

        try:
            text = self.backend.complete(
                build_messages(payload),
                max_tokens=schema.get("max_tokens", 512),
                temperature=schema.get("temperature", 0.3)
            )
            response = parse_response(text or "")
        except Exception as e:
            return self._fail(name, f"{type(e).__name__}: {e}")

        logger.info(f"Capability '{name}' succeeded")
        return CapabilityResult(ok=True, response=response)


def build_backend(settings: Mapping[str, Any]) -> Optional[Any]:
    """
    Create the chat backend selected by LLM_PROVIDER.

    Returns:
        Backend instance, or None for provider 'none'

    Raises:
        ValueError: If the provider is unknown or misconfigured
    """
    provider = settings.get("LLM_PROVIDER", "none")

    if provider == "none":
        return None
    if provider == "openai":
        from backend.utils.openai_client import OpenAIChatClient
        return OpenAIChatClient(dict(settings))
    if provider == "huggingface":
        # torch/transformers are only installed with the local-llm extra
        from backend.utils.hf_client import HuggingFaceClient
        return HuggingFaceClient(
            model_name=settings["HF_MODEL_NAME"],
            load_in_4bit=settings.get("HF_LOAD_IN_4BIT", True),
            device=settings.get("HF_DEVICE", "cuda")
        )

    raise ValueError(f"Unknown LLM provider: {provider}")
