"""
Completeness Tracker - Score collected answers against the review criteria

Responsibilities:
- Load the weighted review criteria (which questions support each one)
- Score each criterion 0-100 and classify complete / partial / missing
- Compute the weighted overall score and the critical gaps
- Suggest which questions to ask next and render a progress summary

Scoring:
- An answer counts when it is non-empty; free text needs at least
  MIN_TEXT_LENGTH characters, lists at least one item
- Criterion status: 100 -> complete, >= 50 -> partial, else missing
- Overall status: >= 95 excellent, >= 80 good, >= 60 acceptable,
  else insufficient
- Critical gaps: criteria scoring below 80, lowest first
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 5
CRITICAL_GAP_THRESHOLD = 80


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _counts_as_answered(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return len(value.strip()) >= MIN_TEXT_LENGTH
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def _criterion_status(score: int) -> str:
    if score == 100:
        return 'complete'
    if score >= 50:
        return 'partial'
    return 'missing'


def _overall_status(score: int) -> str:
    if score >= 95:
        return 'excellent'
    if score >= 80:
        return 'good'
    if score >= 60:
        return 'acceptable'
    return 'insufficient'


class CompletenessTracker:
    """Scores an answer map against weighted review criteria"""

    STATUS_MESSAGES = {
        'excellent': '申請書は審査基準を満たす高い水準に達しています。',
        'good': '良好な状態です。あと少しで完成です。',
        'acceptable': '基本的な情報は揃っていますが、採択率を高めるためにさらなる充実が必要です。',
        'insufficient': '重要な情報が不足しています。以下の項目を重点的に充実させましょう。'
    }

    def __init__(self, criteria_path: str = "data/evaluation_criteria.json"):
        """
        Load review criteria.

        Args:
            criteria_path: Path to evaluation_criteria.json

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the criteria are malformed
        """
        path = Path(criteria_path)
        if not path.exists():
            raise FileNotFoundError(f"Evaluation criteria not found: {criteria_path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        self.criteria: List[Dict[str, Any]] = data.get("criteria", [])
        self._validate_criteria()

        logger.info(f"Completeness Tracker initialized with {len(self.criteria)} criteria")

    def _validate_criteria(self) -> None:
        errors = []
        seen = set()

        if not self.criteria:
            errors.append("No criteria defined")

        for i, criterion in enumerate(self.criteria):
            c_id = criterion.get("id")
            if not c_id:
                errors.append(f"Criterion at index {i} missing 'id'")
                continue
            if c_id in seen:
                errors.append(f"Duplicate criterion id '{c_id}'")
            seen.add(c_id)

            weight = criterion.get("weight")
            if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0:
                errors.append(f"Criterion '{c_id}' needs a positive numeric 'weight'")
            if not criterion.get("question_ids"):
                errors.append(f"Criterion '{c_id}' has no question_ids")

        if errors:
            raise ValueError("Criteria validation failed:\n  - " + "\n  - ".join(errors))

    def unknown_question_ids(self, known_ids: Iterable[str]) -> List[str]:
        """Question ids referenced by criteria but absent from `known_ids`."""
        known = set(known_ids)
        unknown = []
        for criterion in self.criteria:
            for q_id in criterion["question_ids"]:
                if q_id not in known and q_id not in unknown:
                    unknown.append(q_id)
        return unknown

    # ==================== SCORING ====================

    def calculate_criterion_completeness(self, answers: Mapping[str, Any], criterion: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Score one criterion.

        Returns:
            dict: {score, completed_fields, total_fields, missing_fields, status}
        """
        question_ids = criterion["question_ids"]
        missing = [q_id for q_id in question_ids if not _counts_as_answered(answers.get(q_id))]
        completed = len(question_ids) - len(missing)
        score = _round_half_up(completed / len(question_ids) * 100)

        return {
            'score': score,
            'completed_fields': completed,
            'total_fields': len(question_ids),
            'missing_fields': missing,
            'status': _criterion_status(score)
        }

    def calculate_overall_completeness(self, answers: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Weighted overall score across all criteria.

        Returns:
            dict: {
                'overall_score': int 0-100,
                'overall_status': str,
                'criteria_details': {criterion_id: {...criterion, ...score}},
                'critical_gaps': [{id, name, score, missing_fields}],
                'total_criteria', 'complete_criteria',
                'partial_criteria', 'missing_criteria': int
            }
        """
        details = {}
        weighted = 0.0
        total_weight = 0.0

        for criterion in self.criteria:
            result = self.calculate_criterion_completeness(answers, criterion)
            details[criterion["id"]] = {**criterion, **result}
            weighted += result['score'] * criterion["weight"]
            total_weight += criterion["weight"]

        overall = _round_half_up(weighted / total_weight)

        # sorted() is stable: equal scores keep criteria order
        ranked = sorted(details.values(), key=lambda d: d['score'])
        critical_gaps = [
            {
                'id': d['id'],
                'name': d.get('name', d['id']),
                'score': d['score'],
                'missing_fields': d['missing_fields']
            }
            for d in ranked if d['score'] < CRITICAL_GAP_THRESHOLD
        ]

        statuses = [d['status'] for d in details.values()]
        return {
            'overall_score': overall,
            'overall_status': _overall_status(overall),
            'criteria_details': details,
            'critical_gaps': critical_gaps,
            'total_criteria': len(details),
            'complete_criteria': statuses.count('complete'),
            'partial_criteria': statuses.count('partial'),
            'missing_criteria': statuses.count('missing')
        }

    def suggest_next_questions(self, answers: Mapping[str, Any], available_question_ids: Iterable[str]) -> List[str]:
        """
        Missing question ids ordered by how weak their criterion is.

        Args:
            answers: Answer map
            available_question_ids: Ids that can still be asked

        Returns:
            list[str]: Question ids, weakest criterion first, no duplicates
        """
        available = set(available_question_ids)
        completeness = self.calculate_overall_completeness(answers)

        suggestions = []
        for gap in completeness['critical_gaps']:
            for q_id in gap['missing_fields']:
                if q_id in available and q_id not in suggestions:
                    suggestions.append(q_id)
        return suggestions

    def generate_missing_info_report(self, answers: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """One entry per missing question of each critical gap."""
        report = []
        for gap in self.calculate_overall_completeness(answers)['critical_gaps']:
            for q_id in gap['missing_fields']:
                report.append({
                    'criterion_name': gap['name'],
                    'question_id': q_id,
                    'priority': 'high' if gap['score'] < 50 else 'medium',
                    'impact': f"この情報がないと「{gap['name']}」の評価が{gap['score']}%にとどまります"
                })
        return report

    def generate_progress_summary(self, answers: Mapping[str, Any]) -> str:
        """Human-readable progress summary."""
        completeness = self.calculate_overall_completeness(answers)

        lines = [
            f"【申請書完成度: {completeness['overall_score']}%】",
            "",
            self.STATUS_MESSAGES[completeness['overall_status']],
            "",
            f"完成: {completeness['complete_criteria']}項目",
            f"一部完成: {completeness['partial_criteria']}項目",
            f"不足: {completeness['missing_criteria']}項目",
        ]

        if completeness['critical_gaps']:
            lines.append("")
            lines.append("【優先して改善すべきポイント】")
            for i, gap in enumerate(completeness['critical_gaps'][:3], 1):
                lines.append(f"{i}. {gap['name']} ({gap['score']}%)")

        return "\n".join(lines)
