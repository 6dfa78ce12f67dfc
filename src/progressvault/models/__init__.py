"""Core data models for progressvault."""

from progressvault.models.metric import (
    MetricRecord,
    Orientation,
    RecordState,
    SubmissionReceipt,
    metric_id_from_label,
    normalize_metric_id,
    normalize_principal,
)

__all__ = [
    "MetricRecord",
    "Orientation",
    "RecordState",
    "SubmissionReceipt",
    "metric_id_from_label",
    "normalize_metric_id",
    "normalize_principal",
]
