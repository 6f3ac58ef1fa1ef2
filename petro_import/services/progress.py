from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Batch progress display with tqdm (TTY only).

In non-TTY environments (CI, the HTTP server) no bar is created, so no ANSI
control sequences end up in logs.
"""

__all__ = [
    "BatchProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class BatchProgress:
    """Progress over upsert batches with running success/failure postfix."""

    def __init__(self, total_batches: int, *, description: str = "Importing") -> None:
        self.total_batches = total_batches
        self.description = description
        self.done = 0
        self.failed = 0
        self.written = 0

        self.enabled = is_tty_enabled() and total_batches > 0
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_batches,
                desc=description,
                unit="batch",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, success: bool = True, written: int = 0) -> None:
        self.done += 1
        self.written += written
        if not success:
            self.failed += 1
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(rows=self.written, failed_batches=self.failed)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> BatchProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
