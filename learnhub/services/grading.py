"""Percentage, letter grade and GPA calculus. Pure functions, no rounding."""
import enum
from typing import Iterable, Optional


class LetterGrade(str, enum.Enum):
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C_PLUS = "C+"
    C = "C"
    D = "D"
    F = "F"

    @property
    def weight(self) -> float:
        return GPA_WEIGHTS[self.value]

    def __ge__(self, other):
        if not isinstance(other, LetterGrade):
            return NotImplemented
        return _RANK[self] <= _RANK[other]

    def __gt__(self, other):
        if not isinstance(other, LetterGrade):
            return NotImplemented
        return _RANK[self] < _RANK[other]

    def __le__(self, other):
        if not isinstance(other, LetterGrade):
            return NotImplemented
        return _RANK[self] >= _RANK[other]

    def __lt__(self, other):
        if not isinstance(other, LetterGrade):
            return NotImplemented
        return _RANK[self] > _RANK[other]


_RANK = {g: i for i, g in enumerate(LetterGrade)}

GPA_WEIGHTS = {"A+": 4.0, "A": 4.0, "B+": 3.5, "B": 3.0, "C+": 2.5, "C": 2.0, "D": 1.0, "F": 0.0}

# inclusive lower bounds, highest first
THRESHOLDS = (
    (95.0, LetterGrade.A_PLUS),
    (90.0, LetterGrade.A),
    (85.0, LetterGrade.B_PLUS),
    (80.0, LetterGrade.B),
    (75.0, LetterGrade.C_PLUS),
    (70.0, LetterGrade.C),
    (60.0, LetterGrade.D),
)


def percentage(score: Optional[float], max_score: float) -> Optional[float]:
    if score is None or not max_score:
        return None
    return 100.0 * score / max_score


def letter_grade(pct: Optional[float]) -> Optional[LetterGrade]:
    if pct is None:
        return None
    for bound, grade in THRESHOLDS:
        if pct >= bound:
            return grade
    return LetterGrade.F


def gpa(letter_grades: Iterable[Optional[str]]) -> float:
    """Mean grade-point weight; unknown or missing grades weigh 0."""
    grades = list(letter_grades)
    if not grades:
        return 0.0
    total = sum(GPA_WEIGHTS.get(_value(g), 0.0) for g in grades)
    return total / len(grades)


def _value(grade) -> Optional[str]:
    return grade.value if isinstance(grade, LetterGrade) else grade
