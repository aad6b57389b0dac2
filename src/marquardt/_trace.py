from __future__ import annotations

from typing import Any, Callable, Dict, List, NamedTuple

__all__ = [
    "TraceRecord",
    "OptimizationTrace",
]


class TraceRecord(NamedTuple):
    """State of the solver recorded at the end of an iteration.

    Attributes
    ----------
    iter : int
        Iteration number (0 for the initial point).
    ssr : float
        Sum of squared residuals at the current parameters.
    maxabs_gr : float
        Infinity norm of the approximate gradient ``J^T f``.
    metadata : dict
        Additional solver quantities, e.g. the trust-region radius.
    """

    iter: int
    ssr: float
    maxabs_gr: float
    metadata: Dict[str, Any]


class OptimizationTrace:
    """Record and display per-iteration progress.

    Records are appended to :py:attr:`records` when ``store_trace`` is set,
    printed as a table every ``show_every`` iterations when ``show_trace`` is
    set, and passed to ``callback`` when one is given.
    """

    def __init__(
        self,
        store_trace: bool = False,
        show_trace: bool = False,
        show_every: int = 1,
        callback: Callable[[TraceRecord], Any] | None = None,
    ):
        if show_every < 1:
            raise ValueError(f"show_every must be a positive integer, got {show_every}")
        self.store_trace = store_trace
        self.show_trace = show_trace
        self.show_every = show_every
        self.callback = callback
        self.records: List[TraceRecord] = []
        self.header_printed = False

    @property
    def enabled(self) -> bool:
        return self.store_trace or self.show_trace or self.callback is not None

    def update(
        self,
        iter: int,
        ssr: float,
        maxabs_gr: float,
        metadata: Dict[str, Any] | None = None,
    ) -> TraceRecord:
        record = TraceRecord(iter, float(ssr), float(maxabs_gr), dict(metadata or {}))

        if self.store_trace:
            self.records.append(record)

        if self.show_trace and iter % self.show_every == 0:
            if not self.header_printed:
                self._print_header()
                self.header_printed = True
            self._print_record(record)

        if self.callback is not None:
            self.callback(record)

        return record

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def __getitem__(self, index):
        return self.records[index]

    def _print_header(self):
        print(f"{'Iteration':^10} {'Sum of squares':^15} {'Gradient norm':^15} "
              f"{'Radius':^12}")

    def _print_record(self, record: TraceRecord):
        radius = record.metadata.get("radius")
        radius_str = f"{radius:.2e}" if radius is not None else ""
        print(f"{record.iter:^10} {record.ssr:^15.6e} {record.maxabs_gr:^15.2e} "
              f"{radius_str:^12}")
