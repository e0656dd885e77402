"""Pure scoring of a submitted answer sheet.

Nothing here touches the database or the clock, so the same inputs always
produce the same result.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class ScoreResult:
    score: int
    total_marks: int
    percentage: int
    passed: bool
    breakdown: List[Dict[str, Any]] = field(default_factory=list)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _selected_by_question(answers: Sequence[Any]) -> Dict[int, Optional[int]]:
    out: Dict[int, Optional[int]] = {}
    for a in answers or []:
        if isinstance(a, dict):
            q, sel = a.get("question"), a.get("selected_option")
        else:
            q, sel = getattr(a, "question", None), getattr(a, "selected_option", None)
        if q is None:
            continue
        out[int(q)] = None if sel is None else int(sel)
    return out


def score_answers(questions: Sequence[Any], answers: Sequence[Any], passing_marks: int) -> ScoreResult:
    """Score ``answers`` against ``questions`` (in quiz order).

    Each question needs ``correct_option`` and ``marks``. Answers are
    ``{"question": idx, "selected_option": opt | None}``; missing entries count
    as unanswered.
    """
    selected = _selected_by_question(answers)

    score = 0
    total = 0
    breakdown: List[Dict[str, Any]] = []
    for idx, q in enumerate(questions):
        marks = int(getattr(q, "marks", 1) or 0)
        correct = int(getattr(q, "correct_option"))
        total += marks

        sel = selected.get(idx)
        is_correct = sel is not None and sel == correct
        awarded = marks if is_correct else 0
        score += awarded
        breakdown.append(
            {
                "question": idx,
                "selected_option": sel,
                "correct_option": correct,
                "is_correct": is_correct,
                "marks_awarded": awarded,
            }
        )

    percentage = round_half_up(score / total * 100) if total > 0 else 0
    return ScoreResult(
        score=score,
        total_marks=total,
        percentage=percentage,
        passed=score >= int(passing_marks),
        breakdown=breakdown,
    )


def normalize_answers(question_count: int, answers: Sequence[Any]) -> List[Dict[str, Any]]:
    """One entry per question, in order; unanswered questions get ``None``."""
    selected = _selected_by_question(answers)
    return [{"question": i, "selected_option": selected.get(i)} for i in range(int(question_count))]
