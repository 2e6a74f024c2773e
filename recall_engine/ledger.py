from collections import deque
from typing import Dict, Iterable, List

import pandas as pd

from .algorithms import Algorithm, parse_algorithm
from .models import AlgorithmStats, RetentionSample

DEFAULT_CAPACITY = 1000
RETAINED_THRESHOLD = 0.7


class RetentionLedger:
    """Fixed-capacity log of retention samples; the oldest sample is evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, samples: Iterable[RetentionSample] = ()):
        if capacity < 1:
            raise ValueError("Ledger capacity must be positive")
        self.capacity = capacity
        self._samples = deque(samples, maxlen=capacity)

    def __len__(self) -> int:
        return len(self._samples)

    def append(self, sample: RetentionSample) -> None:
        self._samples.append(sample)

    def samples(self) -> List[RetentionSample]:
        return list(self._samples)

    def to_frame(self) -> pd.DataFrame:
        columns = list(RetentionSample.model_fields)
        return pd.DataFrame([s.model_dump() for s in self._samples], columns=columns)

    def compare(self) -> Dict[str, AlgorithmStats]:
        """Per-algorithm averages. Algorithms without samples are left out."""
        df = self.to_frame()
        if df.empty:
            return {}

        df["retained"] = df["retention"] >= RETAINED_THRESHOLD
        grouped = df.groupby("algorithm").agg(
            count=("retention", "size"),
            avg_retention=("retention", "mean"),
            avg_performance=("performance", "mean"),
            retained=("retained", "mean"),
        )

        comparison = {}
        for algorithm_id, row in grouped.iterrows():
            algorithm = parse_algorithm(algorithm_id)
            comparison[algorithm_id] = AlgorithmStats(
                name=algorithm.label if algorithm else str(algorithm_id),
                count=int(row["count"]),
                avg_retention=float(row["avg_retention"]),
                avg_performance=float(row["avg_performance"]),
                retention_rate=float(row["retained"]) * 100,
            )

        # Declared algorithm order first, anything unrecognised after
        order = [a.value for a in Algorithm]
        return dict(sorted(comparison.items(), key=lambda kv: order.index(kv[0]) if kv[0] in order else len(order)))
