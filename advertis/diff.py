"""Schema drift detection: classify an interview dataset against the catalog."""
from __future__ import annotations

from collections.abc import Mapping, Sequence

from pydantic import BaseModel

from advertis.utils import is_blank


class SchemaDiff(BaseModel):
    missing_ids: list[str]
    """In the schema, absent from the dataset."""
    empty_ids: list[str]
    """Present in the dataset but blank."""
    obsolete_ids: list[str]
    """In the dataset, no longer in the schema."""
    filled_ids: list[str]
    total_schema_vars: int

    @property
    def ids_to_fill(self) -> list[str]:
        return [*self.missing_ids, *self.empty_ids]

    @property
    def has_gaps(self) -> bool:
        return bool(self.missing_ids or self.empty_ids)


def compute_diff(dataset: Mapping[str, str | None] | None, schema_ids: Sequence[str]) -> SchemaDiff:
    """Partition schema ids into missing / empty / filled and list obsolete dataset keys.

    Pure: no I/O, output order follows ``schema_ids`` (obsolete ids follow the
    dataset's key order).
    """
    data = dataset or {}
    schema_set = set(schema_ids)

    missing: list[str] = []
    empty: list[str] = []
    filled: list[str] = []
    for vid in schema_ids:
        if vid not in data:
            missing.append(vid)
        elif is_blank(data[vid]):
            empty.append(vid)
        else:
            filled.append(vid)

    obsolete = [k for k in data if k not in schema_set]

    return SchemaDiff(
        missing_ids=missing,
        empty_ids=empty,
        obsolete_ids=obsolete,
        filled_ids=filled,
        total_schema_vars=len(schema_ids),
    )
