"""
Status and progress derivation rules.

Everything here is pure so the cascade can be computed on an in-memory copy
before anything is written. Progress above the deliverable level is weighted
by task count: a phase with one 1-task deliverable done and one 9-task
deliverable untouched is 10% complete, not 50%.
"""
import math
from typing import Iterable, Optional

from timekeeper.models.hierarchy import ProjectStatus, Task, WorkStatus


def percentage(completed: int, total: int) -> int:
    """Whole percent, rounded half up; 0 when there is nothing to complete."""
    if total <= 0:
        return 0
    return math.floor(completed * 100 / total + 0.5)


def task_counts(tasks: Iterable[Task]) -> tuple[int, int]:
    """(completed, total) for a group of tasks."""
    tasks = list(tasks)
    return sum(1 for t in tasks if t.completed), len(tasks)


def deliverable_status(tasks: Iterable[Task], time_logged: bool = False) -> WorkStatus:
    """
    Status of a deliverable from its tasks.

    Completed needs at least one task and all of them done. Logged time moves
    an untouched deliverable to In Progress but can never complete it.
    """
    completed, total = task_counts(tasks)
    if total > 0 and completed == total:
        return WorkStatus.COMPLETED
    if completed > 0 or time_logged:
        return WorkStatus.IN_PROGRESS
    return WorkStatus.PENDING


def phase_status(deliverable_statuses: Iterable[WorkStatus]) -> WorkStatus:
    statuses = list(deliverable_statuses)
    if statuses and all(s == WorkStatus.COMPLETED for s in statuses):
        return WorkStatus.COMPLETED
    if any(s in (WorkStatus.IN_PROGRESS, WorkStatus.COMPLETED) for s in statuses):
        return WorkStatus.IN_PROGRESS
    return WorkStatus.PENDING


class StatusPolicy:
    """Decides a project's status from its overall progress."""

    def status_for(self, progress: int, current: ProjectStatus) -> ProjectStatus:
        raise NotImplementedError


class ThresholdStatusPolicy(StatusPolicy):
    """
    New at 0%, In Progress above 0%, Completed at 100%.

    With a review threshold, progress at or above it (but below 100%) maps to
    Review.
    """

    def __init__(self, review_threshold: Optional[float] = None, completed_at: int = 100):
        if review_threshold is not None and not 0 < review_threshold < completed_at:
            raise ValueError("Review threshold must lie between 0 and the completion threshold")
        self.review_threshold = review_threshold
        self.completed_at = completed_at

    def status_for(self, progress: int, current: ProjectStatus) -> ProjectStatus:
        if progress >= self.completed_at:
            return ProjectStatus.COMPLETED
        if self.review_threshold is not None and progress >= self.review_threshold:
            return ProjectStatus.REVIEW
        if progress > 0:
            return ProjectStatus.IN_PROGRESS
        return ProjectStatus.NEW


class ManualStatusPolicy(StatusPolicy):
    """Never moves the status; for projects managed by hand."""

    def status_for(self, progress: int, current: ProjectStatus) -> ProjectStatus:
        return current
