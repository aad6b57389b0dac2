import numpy as np
import pytest

from marquardt import (
    LeastSquaresProblem,
    LMStatus,
    OptimizationTrace,
    TraceRecord,
    levenberg_marquardt,
)


@pytest.fixture
def problem():
    c = np.array([3.0, 5.0])
    return LeastSquaresProblem(np.zeros(2), lambda x: x - c, lambda x: np.eye(2))


class TestOptimizationTrace:
    def test_disabled_by_default(self, problem):
        result = levenberg_marquardt(problem)
        assert len(result.trace) == 0
        assert not OptimizationTrace().enabled

    def test_store_trace(self, problem):
        result = levenberg_marquardt(problem, store_trace=True)

        assert len(result.trace) == result.iterations + 1
        assert [r.iter for r in result.trace] == list(range(result.iterations + 1))

        first = result.trace[0]
        assert isinstance(first, TraceRecord)
        assert first.ssr == pytest.approx(34.0)
        assert first.maxabs_gr == np.inf
        assert first.metadata == {"radius": 10.0}

        last = result.trace[-1]
        assert last.ssr == pytest.approx(result.ssr)
        assert set(last.metadata) == {"radius", "gain_ratio"}

    def test_show_every(self, capsys):
        trace = OptimizationTrace(show_trace=True, show_every=2)
        for i in range(5):
            trace.update(i, 1.0 / (i + 1), 0.1, {"radius": 10.0})

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 4  # Header plus iterations 0, 2, 4
        assert "Iteration" in lines[0]
        assert "Sum of squares" in lines[0]
        assert lines[1].split()[0] == "0"
        assert lines[3].split()[0] == "4"

        # Nothing is stored unless requested
        assert len(trace) == 0

    def test_show_trace_prints_status(self, problem, capsys):
        result = levenberg_marquardt(problem, show_trace=True)
        out = capsys.readouterr().out.strip().splitlines()

        assert out[0].split()[0] == "Iteration"
        assert out[-1] == result.message
        assert result.status == LMStatus.GRTOL_REACHED

    def test_callback(self, problem):
        records = []
        result = levenberg_marquardt(problem, callback=records.append)

        assert len(records) == result.iterations + 1
        assert all(isinstance(r, TraceRecord) for r in records)
        # Callbacks alone do not store the trace
        assert len(result.trace) == 0

    def test_invalid_show_every(self):
        with pytest.raises(ValueError, match="show_every"):
            OptimizationTrace(show_every=0)
