"""Item tasks: the per-item work each batch variant performs."""

from variance_batch.tasks.base import ItemTask, LineMutator, TaskRegistry, default_task_registry
from variance_batch.tasks.rate_correction import RateCorrectionTask
from variance_batch.tasks.review_mark import ReviewMarkTask

__all__ = [
    "ItemTask",
    "LineMutator",
    "RateCorrectionTask",
    "ReviewMarkTask",
    "TaskRegistry",
    "default_task_registry",
]
