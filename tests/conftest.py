import hashlib
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pandas as pd
import pyarrow as pa
import pyarrow.fs as pafs
import pyarrow.parquet as pq
import pytest

OCCURRENCE_ROWS = [
    ("US", "Animalia", 2020),
    ("US", "Animalia", 2020),
    ("US", "Plantae", 2020),
    ("US", "Animalia", 2021),
    ("US", "Fungi", 2022),
    ("CA", "Fungi", 2020),
    ("CA", "Animalia", 2020),
    ("MX", "Plantae", 2021),
]


class CountingFile:
    """File-like wrapper that counts bytes read from an Arrow input file."""

    def __init__(self, native: Any, counter: dict[str, int]) -> None:
        self._native = native
        self._counter = counter

    def read(self, nbytes: int | None = -1) -> bytes:
        data = self._native.read() if nbytes is None or nbytes < 0 else self._native.read(nbytes)
        self._counter["bytes"] += len(data)
        return data

    def seek(self, pos: int, whence: int = 0) -> int:
        return self._native.seek(pos, whence)

    def tell(self) -> int:
        return self._native.tell()

    def close(self) -> None:
        self._native.close()

    @property
    def closed(self) -> bool:
        return self._native.closed

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False


class CountingHandler(pafs.FileSystemHandler):
    """Filesystem test double recording how many bytes are transferred."""

    def __init__(self, base: pafs.FileSystem) -> None:
        self.base = base
        self.counter = {"bytes": 0, "opens": 0}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CountingHandler) and self.base.equals(other.base)

    def __ne__(self, other: object) -> bool:
        return not self == other

    def get_type_name(self) -> str:
        return "counting"

    def normalize_path(self, path: str) -> str:
        return self.base.normalize_path(path)

    def get_file_info(self, paths: list[str]) -> list[pafs.FileInfo]:
        return self.base.get_file_info(paths)

    def get_file_info_selector(self, selector: pafs.FileSelector) -> list[pafs.FileInfo]:
        return self.base.get_file_info(selector)

    def create_dir(self, path: str, recursive: bool) -> None:
        self.base.create_dir(path, recursive=recursive)

    def delete_dir(self, path: str) -> None:
        self.base.delete_dir(path)

    def delete_dir_contents(self, path: str, missing_dir_ok: bool = False) -> None:
        self.base.delete_dir_contents(path, missing_dir_ok=missing_dir_ok)

    def delete_root_dir_contents(self) -> None:
        self.base.delete_dir_contents("", accept_root_dir=True)

    def delete_file(self, path: str) -> None:
        self.base.delete_file(path)

    def move(self, src: str, dest: str) -> None:
        self.base.move(src, dest)

    def copy_file(self, src: str, dest: str) -> None:
        self.base.copy_file(src, dest)

    def _open_counted(self, path: str) -> pa.PythonFile:
        self.counter["opens"] += 1
        return pa.PythonFile(CountingFile(self.base.open_input_file(path), self.counter), mode="r")

    def open_input_stream(self, path: str) -> pa.PythonFile:
        return self._open_counted(path)

    def open_input_file(self, path: str) -> pa.PythonFile:
        return self._open_counted(path)

    def open_output_stream(self, path: str, metadata: Any) -> Any:
        return self.base.open_output_stream(path, metadata=metadata)

    def open_append_stream(self, path: str, metadata: Any) -> Any:
        return self.base.open_append_stream(path, metadata=metadata)


def make_occurrences(repeat: int = 250) -> pd.DataFrame:
    """
    Build an occurrence table with a wide, unused payload column.

    Args:
      repeat: How many times the base rows are repeated

    Returns:
      DataFrame with country, kingdom, year and payload columns
    """
    rows = OCCURRENCE_ROWS * repeat
    return pd.DataFrame(
        {
            "country": [r[0] for r in rows],
            "kingdom": [r[1] for r in rows],
            "year": [r[2] for r in rows],
            # ~1 KiB of distinct text per row
            "payload": [hashlib.sha256(str(i).encode()).hexdigest() * 16 for i in range(len(rows))],
        }
    )


@pytest.fixture
def occurrences() -> pd.DataFrame:
    return make_occurrences()


@pytest.fixture
def occurrence_dataset(tmp_path: Path, occurrences: pd.DataFrame) -> Path:
    """Write the occurrence table as an uncompressed Parquet dataset under tmp_path/bucket/dataset."""
    dataset_dir = tmp_path / "bucket" / "dataset"
    dataset_dir.mkdir(parents=True)
    table = pa.Table.from_pandas(occurrences, preserve_index=False)
    pq.write_table(table, dataset_dir / "part-0.parquet", compression="none", use_dictionary=False)
    return dataset_dir


@pytest.fixture
def counting_fs(tmp_path: Path) -> tuple[pafs.FileSystem, CountingHandler]:
    handler = CountingHandler(pafs.SubTreeFileSystem(str(tmp_path), pafs.LocalFileSystem()))
    return pafs.PyFileSystem(handler), handler


@pytest.fixture
def fake_context() -> Any:
    """Fake Dagster context collecting log records."""
    records: list[tuple[str, str]] = []

    def _logger(level: str) -> Any:
        return lambda msg, *_, **__: records.append((level, msg))

    log = SimpleNamespace(
        info=_logger("info"),
        debug=_logger("debug"),
        warning=_logger("warning"),
        error=_logger("error"),
    )
    return SimpleNamespace(log=log, records=records)
