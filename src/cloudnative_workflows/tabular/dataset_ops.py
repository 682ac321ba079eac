"""Lazy access to remote columnar (Parquet) datasets.

Network transfer happens in two places only:

- ``open_dataset`` lists files and reads Parquet footers to learn the schema.
- ``query`` materializes the pruned, filtered column chunks.

Building a ``QueryDescriptor`` or a ``Scanner`` transfers nothing.
"""

import operator
import os
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

import pandas as pd
import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.dataset as ds
import pyarrow.fs as pafs

from cloudnative_workflows.exceptions import DatasetConnectionError, SchemaError, UnsupportedOperationError
from cloudnative_workflows.models.models import Aggregation, Predicate, QueryDescriptor

SUPPORTED_SCHEMES = frozenset({"", "file", "s3", "gs", "gcs"})

_COMPARISONS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "eq": operator.eq,
    "!=": operator.ne,
    "ne": operator.ne,
    "<": operator.lt,
    "lt": operator.lt,
    "<=": operator.le,
    "le": operator.le,
    ">": operator.gt,
    "gt": operator.gt,
    ">=": operator.ge,
    "ge": operator.ge,
}
_MEMBERSHIP = {"in", "isin", "not_in"}
_NULL_CHECKS = {"is_null", "not_null"}

# Aggregation name -> (grouped hash kernel, scalar kernel)
_AGGREGATIONS: dict[str, tuple[str, Callable[..., Any]]] = {
    "count": ("count", pc.count),
    "count_distinct": ("count_distinct", pc.count_distinct),
    "sum": ("sum", pc.sum),
    "mean": ("mean", pc.mean),
    "min": ("min", pc.min),
    "max": ("max", pc.max),
}


class DatasetHandle:
    """Reference to a remote columnar dataset.

    Holds schema metadata but no row data. Never mutated after creation.
    """

    def __init__(self, locator: str, dataset: ds.Dataset) -> None:
        self.locator = locator
        self._dataset = dataset

    def __repr__(self) -> str:
        return f"DatasetHandle({self.locator!r}, columns={len(self.columns)})"

    @property
    def schema(self) -> pa.Schema:
        return self._dataset.schema

    @property
    def columns(self) -> list[str]:
        return list(self.schema.names)

    @property
    def files(self) -> list[str]:
        return list(getattr(self._dataset, "files", []))

    def scanner(self, descriptor: QueryDescriptor) -> ds.Scanner:
        """Build a lazy scanner with column pruning and predicate pushdown.

        :param descriptor: Query descriptor
        :returns: Scanner that has not read any rows yet
        """
        validate_columns(self, descriptor)
        if descriptor.aggregations or descriptor.group_keys:
            aggregated = [a.column for a in descriptor.aggregations if a.column]
            projection = list(dict.fromkeys([*descriptor.group_keys, *aggregated]))
        else:
            projection = descriptor.columns
        filter_expression = build_filter_expression(descriptor.predicates)
        check_filter_expression(self, filter_expression)
        return self._dataset.scanner(columns=projection, filter=filter_expression)


def _resolve_filesystem(locator: str, filesystem: pafs.FileSystem | None) -> tuple[pafs.FileSystem, str]:
    """Resolve filesystem and path for a locator.

    :param locator: Remote locator
    :param filesystem: Optional explicit filesystem
    :returns: Tuple of (filesystem, path)
    """
    parsed = urlparse(locator)
    scheme = parsed.scheme.lower()
    # Windows drive letters parse as one-letter schemes.
    if len(scheme) == 1:
        scheme = ""

    if filesystem is not None:
        path = f"{parsed.netloc}{parsed.path}" if scheme else locator
        return filesystem, path.rstrip("/")

    if scheme not in SUPPORTED_SCHEMES:
        raise DatasetConnectionError(f"Unsupported locator scheme '{scheme}' in {locator}")

    try:
        if scheme:
            resolved_fs, path = pafs.FileSystem.from_uri(locator)
        else:
            resolved_fs, path = pafs.LocalFileSystem(), os.path.abspath(locator)
    except (OSError, pa.ArrowException) as e:
        raise DatasetConnectionError(f"Could not resolve filesystem for {locator}: {e}") from e
    return resolved_fs, path.rstrip("/")


def open_dataset(
    locator: str,
    filesystem: pafs.FileSystem | None = None,
    partitioning: str | None = None,
) -> DatasetHandle:
    """Open a remote Parquet dataset without reading row data.

    :param locator: Dataset URI, e.g. ``s3://bucket/prefix/``
    :param filesystem: Optional filesystem; the locator scheme is stripped when given
    :param partitioning: Optional partitioning flavor, e.g. "hive"
    :returns: DatasetHandle
    :raises DatasetConnectionError: If the scheme is unsupported or the resource unreachable
    """
    fs, path = _resolve_filesystem(locator, filesystem)
    try:
        dataset = ds.dataset(path, filesystem=fs, format="parquet", partitioning=partitioning)
    except (OSError, pa.ArrowException) as e:
        raise DatasetConnectionError(f"Could not open dataset at {locator}: {e}") from e
    return DatasetHandle(locator, dataset)


def validate_columns(handle: DatasetHandle, descriptor: QueryDescriptor) -> None:
    """Check every column the query touches exists in the schema.

    :param handle: Dataset handle
    :param descriptor: Query descriptor
    :raises SchemaError: If a column is absent
    """
    available = set(handle.columns)
    missing = [name for name in descriptor.required_columns() if name not in available]
    if missing:
        raise SchemaError(f"Columns {missing} not found in {handle.locator}. Available: {sorted(available)}")


def _predicate_expression(predicate: Predicate) -> ds.Expression:
    field = pc.field(predicate.column)
    op = predicate.op.lower()

    if op in _COMPARISONS:
        return _COMPARISONS[op](field, predicate.value)
    if op in _MEMBERSHIP:
        values = predicate.value
        if isinstance(values, str) or not hasattr(values, "__iter__"):
            values = [values]
        expression = field.isin(list(values))
        return ~expression if op == "not_in" else expression
    if op in _NULL_CHECKS:
        return field.is_null() if op == "is_null" else field.is_valid()
    raise UnsupportedOperationError(f"Unsupported predicate verb '{predicate.op}' on column {predicate.column}")


def build_filter_expression(predicates: list[Predicate]) -> ds.Expression | None:
    """Combine predicates into one pushdown expression.

    :param predicates: Predicates to conjoin
    :returns: Expression, or None when there are no predicates
    """
    expression = None
    for predicate in predicates:
        term = _predicate_expression(predicate)
        expression = term if expression is None else expression & term
    return expression


def _check_aggregations(descriptor: QueryDescriptor) -> None:
    for aggregation in descriptor.aggregations:
        if aggregation.func not in _AGGREGATIONS:
            raise UnsupportedOperationError(
                f"Unsupported aggregation '{aggregation.func}'. Supported: {sorted(_AGGREGATIONS)}"
            )
        if aggregation.column is None and aggregation.func != "count":
            raise UnsupportedOperationError(f"Aggregation '{aggregation.func}' requires a column")

    output_names = [*descriptor.group_keys, *(a.output_name for a in descriptor.aggregations)]
    duplicates = sorted({name for name in output_names if output_names.count(name) > 1})
    if descriptor.aggregations and duplicates:
        raise UnsupportedOperationError(f"Duplicate output columns {duplicates}; give each aggregation an alias")


def check_filter_expression(handle: DatasetHandle, expression: ds.Expression | None) -> None:
    """Bind a filter expression to the schema without reading any rows.

    :param handle: Dataset handle
    :param expression: Filter expression or None
    :raises UnsupportedOperationError: If the predicates cannot be evaluated against the column types
    """
    if expression is None:
        return
    try:
        handle.schema.empty_table().filter(expression)
    except (pa.ArrowNotImplementedError, pa.ArrowTypeError, pa.ArrowInvalid) as e:
        raise UnsupportedOperationError(f"Filter {expression} cannot be evaluated on {handle.locator}: {e}") from e


def _grouped_aggregate(table: pa.Table, descriptor: QueryDescriptor) -> pa.Table:
    specs: list[tuple[Any, str]] = []
    for aggregation in descriptor.aggregations:
        if aggregation.column is None:
            specs.append(([], "count_all"))
        else:
            specs.append((aggregation.column, _AGGREGATIONS[aggregation.func][0]))

    grouped = table.group_by(descriptor.group_keys).aggregate(specs)
    # Generated names can collide, so aggregation columns are renamed by position.
    aliases = [a.output_name for a in descriptor.aggregations]
    keys = list(descriptor.group_keys)
    if grouped.column_names[len(specs):] == keys:
        names = [*aliases, *keys]
    else:
        names = [*keys, *aliases]
    grouped = grouped.rename_columns(names)
    ordered = grouped.select([*keys, *aliases])
    return ordered.sort_by([(key, "ascending") for key in keys])


def _scalar_aggregate(table: pa.Table, descriptor: QueryDescriptor) -> pa.Table:
    row: dict[str, list[Any]] = {}
    for aggregation in descriptor.aggregations:
        if aggregation.column is None:
            row[aggregation.output_name] = [table.num_rows]
        else:
            kernel = _AGGREGATIONS[aggregation.func][1]
            row[aggregation.output_name] = [kernel(table[aggregation.column]).as_py()]
    return pa.table(row)


def _materialize(scanner: ds.Scanner, descriptor: QueryDescriptor) -> pa.Table:
    if descriptor.group_keys and not descriptor.aggregations:
        table = scanner.to_table()
        return table.group_by(descriptor.group_keys).aggregate([]).sort_by(
            [(key, "ascending") for key in descriptor.group_keys]
        )
    if descriptor.group_keys:
        return _grouped_aggregate(scanner.to_table(), descriptor)
    if descriptor.aggregations:
        return _scalar_aggregate(scanner.to_table(), descriptor)
    if descriptor.limit is not None:
        return scanner.head(descriptor.limit)
    return scanner.to_table()


def query(handle: DatasetHandle, descriptor: QueryDescriptor) -> pd.DataFrame:
    """Evaluate a query descriptor and materialize the result.

    This is the step that transfers row data. Only the columns the query
    needs are requested and the predicates are pushed down to the scan.
    Grouped results are sorted by their keys, so repeating a query against
    an unchanged dataset returns an identical frame.

    :param handle: Dataset handle
    :param descriptor: Query descriptor
    :returns: Materialized result
    :raises SchemaError: If a referenced column is absent
    :raises UnsupportedOperationError: If a verb, aggregation or literal cannot be evaluated
    """
    _check_aggregations(descriptor)
    scanner = handle.scanner(descriptor)

    try:
        result = _materialize(scanner, descriptor)
    except (pa.ArrowNotImplementedError, pa.ArrowTypeError) as e:
        raise UnsupportedOperationError(f"Query cannot be evaluated on {handle.locator}: {e}") from e
    return result.to_pandas()
