"""Artifact writers: export buckets -> file bytes."""

from __future__ import annotations

import csv
import io
import json
from typing import Callable, Dict, List

from ..harvester.aggregator import ExportBucket

CSV_COLUMNS = [
    "article",
    "title",
    "price",
    "currency",
    "availability",
    "quantity",
    "category",
    "vendor",
    "images",
    "description",
]


def write_csv(buckets: List[ExportBucket]) -> bytes:
    """Flat CSV of every bucket's records, one header row."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_COLUMNS)
    for bucket in buckets:
        for record in bucket.records:
            writer.writerow(
                [
                    record.article,
                    record.title,
                    "" if record.price is None else str(record.price),
                    record.currency,
                    record.availability.value,
                    "" if record.quantity is None else record.quantity,
                    record.category or "",
                    record.vendor or "",
                    ",".join(record.images),
                    record.description or "",
                ]
            )
    return buf.getvalue().encode("utf-8")


def write_json(buckets: List[ExportBucket]) -> bytes:
    payload = {
        "buckets": [
            {
                "options": bucket.options.model_dump(mode="json"),
                "records": [r.model_dump(mode="json") for r in bucket.records],
            }
            for bucket in buckets
        ]
    }
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


WRITERS: Dict[str, Callable[[List[ExportBucket]], bytes]] = {
    "csv": write_csv,
    "json": write_json,
}
