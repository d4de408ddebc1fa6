"""
Draft Generator - Application text drafted from collected answers

Responsibilities:
- Group answers into the catalog's draft sections
- Ask the remote capability client to draft each section
- Fall back to a deterministic bullet list of facts when drafting fails
- Suggest follow-up questions (remote, or one generic question as fallback)

Design principles:
- Stateless: answers in, sections out
- Never raises on remote failure; the source of each section says which
  path produced it ('remote' or 'fallback')
"""

import logging
from typing import Any, Dict, List, Mapping

from backend.core.condition_dsl import is_blank
from backend.core.question_catalog import QuestionCatalog
from backend.core.template_resolver import resolve_question

logger = logging.getLogger(__name__)

SOURCE_REMOTE = "remote"
SOURCE_FALLBACK = "fallback"

GENERIC_FOLLOWUP = "申請書をより魅力的にするために、御社の事業について補足したい情報があれば自由に教えてください。"
NO_FACTS_TEXT = "(この項目に関する回答はまだありません)"


def _format_answer(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return "、".join(str(v) for v in value)
    if isinstance(value, dict):
        return "、".join(f"{k}: {v}" for k, v in value.items())
    return str(value)


class DraftGenerator:
    """Drafts application sections through a remote capability client"""

    def __init__(self, capability_client, catalog: QuestionCatalog):
        """
        Args:
            capability_client: Object with invoke(name, payload) -> CapabilityResult
            catalog: Question catalog (provides draft_sections)

        Raises:
            TypeError: If capability_client has no callable invoke()
        """
        if not callable(getattr(capability_client, 'invoke', None)):
            raise TypeError("capability_client must have callable invoke() method")

        self.client = capability_client
        self.catalog = catalog
        logger.info(f"Draft Generator initialized with {len(catalog.draft_sections)} sections")

    def collect_facts(self, answers: Mapping[str, Any], phases=None) -> List[Dict[str, Any]]:
        """
        Answered questions as (question, answer) facts in catalog order.

        Args:
            answers: Answer map
            phases: Phase names to include (None = all phases)
        """
        facts = []
        for name in (phases if phases is not None else self.catalog.phase_order):
            for question in self.catalog.phase_questions(name):
                value = answers.get(question.id)
                if is_blank(value):
                    continue
                facts.append({
                    'question_id': question.id,
                    'question': resolve_question(question, answers).text,
                    'answer': value
                })
        return facts

    @staticmethod
    def fallback_text(facts: List[Dict[str, Any]]) -> str:
        if not facts:
            return NO_FACTS_TEXT
        return "\n".join(f"・{f['question']}: {_format_answer(f['answer'])}" for f in facts)

    def generate(self, answers: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """
        Draft every section of the catalog.

        Returns:
            list[dict]: [{'id', 'title', 'text', 'source'}] in catalog order
        """
        sections = []
        for section in self.catalog.draft_sections:
            facts = self.collect_facts(answers, section.get("phases"))
            text = None

            if facts:
                result = self.client.invoke("draft_section", {
                    'section_title': section["title"],
                    'facts': facts,
                    'instructions': section.get("instructions", "")
                })
                if result.ok:
                    text = result.response["text"]
                else:
                    logger.warning(f"Section '{section['id']}' drafted with fallback: {result.error}")

            sections.append({
                'id': section["id"],
                'title': section["title"],
                'text': text if text is not None else self.fallback_text(facts),
                'source': SOURCE_REMOTE if text is not None else SOURCE_FALLBACK
            })

        logger.info(
            f"Drafted {len(sections)} sections "
            f"({sum(1 for s in sections if s['source'] == SOURCE_REMOTE)} remote)"
        )
        return sections

    def suggest_followup_questions(self, answers: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Follow-up questions that would strengthen the application.

        Returns:
            dict: {'questions': [str] (1-5 items), 'source': 'remote' | 'fallback'}
        """
        result = self.client.invoke("followup_questions", {'facts': self.collect_facts(answers)})
        if result.ok and result.response.get("questions"):
            return {'questions': list(result.response["questions"]), 'source': SOURCE_REMOTE}

        return {'questions': [GENERIC_FOLLOWUP], 'source': SOURCE_FALLBACK}
