from typing import Iterable, NamedTuple, Optional

from schemas import CheckResult, HistorySummary

# (threshold_ms, deduction), largest first; only the first match applies
LOAD_TIME_DEDUCTIONS = (
    (5000, 50),
    (3000, 35),
    (2000, 25),
    (1000, 15),
    (500, 5),
)

GRADES = (
    (90, "A+", "Excellent"),
    (80, "A", "Great"),
    (70, "B", "Good"),
    (60, "C", "Fair"),
    (50, "D", "Poor"),
)


class Grade(NamedTuple):
    grade: str
    label: str


def calculate_performance_score(load_time: int, status_code: Optional[int] = None) -> int:
    """Map a load time and an HTTP status code to a score between 0 and 100."""
    score = 100

    for threshold, deduction in LOAD_TIME_DEDUCTIONS:
        if load_time > threshold:
            score -= deduction
            break

    if status_code is not None and status_code != 200:
        if status_code >= 500:
            score -= 30
        elif status_code >= 400:
            score -= 20
        elif status_code >= 300:
            score -= 10

    return max(0, min(100, score))


def performance_grade(score: int) -> Grade:
    for minimum, grade, label in GRADES:
        if score >= minimum:
            return Grade(grade, label)
    return Grade("F", "Critical")


def summarize_history(results: Iterable[CheckResult]) -> HistorySummary:
    """Aggregate a run of check results into averages and an uptime percentage."""
    results = list(results)
    count = len(results)
    if not count:
        grade = performance_grade(0)
        return HistorySummary(
            count=0, avg_load_time=0, avg_score=0, uptime=0, grade=grade.grade, label=grade.label
        )

    avg_load_time = round(sum(r.load_time for r in results) / count)
    avg_score = round(sum(r.performance_score for r in results) / count)
    online = sum(1 for r in results if r.status == "online")
    grade = performance_grade(avg_score)

    return HistorySummary(
        count=count,
        avg_load_time=avg_load_time,
        avg_score=avg_score,
        uptime=round(online / count * 100),
        grade=grade.grade,
        label=grade.label,
    )
