"""
ethval_shared.models — Pydantic models for the collector bookkeeping tables.

Metric tables are described by the pipeline's MetricSeries declarations;
these models cover the two tables every metric shares:
  data_collection_status  — one RunStatus row per metric
  data_collection_logs    — append-only diagnostic log

All models provide .from_db_row(row) and/or a to_*_dict() serializer.
"""

from ethval_shared.models.status import CollectionLogEntry, RunStatus

__all__ = [
    "RunStatus",
    "CollectionLogEntry",
]
