"""
Metric primitives and the storage that holds them.

- Counter: monotonically increasing value
- Gauge: current value, can go up or down
- Histogram: distribution of observed values over fixed buckets

Every instrument is keyed by a label set and guarded by its own lock.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


@dataclass
class MetricSample:
    labels: Dict[str, str]
    value: float


class _Instrument:
    kind = "untyped"

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._lock = threading.Lock()

    @staticmethod
    def _key(labels: Optional[Dict[str, str]]) -> LabelKey:
        return tuple(sorted((labels or {}).items()))

    @staticmethod
    def _labels(key: LabelKey) -> Dict[str, str]:
        return dict(key)


class Counter(_Instrument):
    """Use for: request counts, repository calls, errors."""

    kind = "counter"

    def __init__(self, name: str, help_text: str = ""):
        super().__init__(name, help_text)
        self._values: Dict[LabelKey, float] = defaultdict(float)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        if amount < 0:
            raise ValueError(f"Counter {self.name} cannot be decreased")
        key = self._key(labels)
        with self._lock:
            self._values[key] += amount

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def total(self) -> float:
        with self._lock:
            return sum(self._values.values())

    def samples(self) -> List[MetricSample]:
        with self._lock:
            return [MetricSample(self._labels(k), v) for k, v in self._values.items()]


class Gauge(_Instrument):
    """Use for: memory usage, CPU usage."""

    kind = "gauge"

    def __init__(self, name: str, help_text: str = ""):
        super().__init__(name, help_text)
        self._values: Dict[LabelKey, float] = {}

    def set(self, value: float, labels: Optional[Dict[str, str]] = None):
        key = self._key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def dec(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        self.inc(labels, -amount)

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def samples(self) -> List[MetricSample]:
        with self._lock:
            return [MetricSample(self._labels(k), v) for k, v in self._values.items()]


@dataclass
class HistogramSample:
    labels: Dict[str, str]
    sum: float
    count: int
    buckets: List[Tuple[float, int]]


class Histogram(_Instrument):
    """
    Distribution of observed values.

    Bucket counts are cumulative: an observation is counted in every bucket
    whose upper bound it does not exceed. Sum and count are kept per label
    set for averages.
    """

    kind = "histogram"

    # Seconds: 1ms .. 10s
    DEFAULT_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

    def __init__(
        self, name: str, help_text: str = "", buckets: Optional[List[float]] = None
    ):
        super().__init__(name, help_text)
        self.buckets = tuple(sorted(buckets)) if buckets else self.DEFAULT_BUCKETS
        self._bucket_counts: Dict[LabelKey, List[int]] = {}
        self._sum: Dict[LabelKey, float] = defaultdict(float)
        self._count: Dict[LabelKey, int] = defaultdict(int)

    def observe(self, value: float, labels: Optional[Dict[str, str]] = None):
        key = self._key(labels)
        with self._lock:
            counts = self._bucket_counts.setdefault(key, [0] * len(self.buckets))
            for i, upper_bound in enumerate(self.buckets):
                if value <= upper_bound:
                    counts[i] += 1
            self._sum[key] += value
            self._count[key] += 1

    def get_sum(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._sum.get(key, 0.0)

    def get_count(self, labels: Optional[Dict[str, str]] = None) -> int:
        key = self._key(labels)
        with self._lock:
            return self._count.get(key, 0)

    def get_buckets(
        self, labels: Optional[Dict[str, str]] = None
    ) -> List[Tuple[float, int]]:
        key = self._key(labels)
        with self._lock:
            counts = self._bucket_counts.get(key, [0] * len(self.buckets))
            return list(zip(self.buckets, counts))

    def samples(self) -> List[HistogramSample]:
        with self._lock:
            return [
                HistogramSample(
                    labels=self._labels(key),
                    sum=self._sum[key],
                    count=self._count[key],
                    buckets=list(zip(self.buckets, self._bucket_counts[key])),
                )
                for key in self._count
            ]


class MetricsStorage:
    """Registry of named instruments. Instruments are created on first use."""

    def __init__(self):
        self.counters: Dict[str, Counter] = {}
        self.gauges: Dict[str, Gauge] = {}
        self.histograms: Dict[str, Histogram] = {}
        self.enabled = False
        self._lock = threading.Lock()

    def enable(self):
        self.enabled = True

    def disable(self):
        self.enabled = False

    def counter(self, name: str, help_text: str = "") -> Counter:
        with self._lock:
            if name not in self.counters:
                self.counters[name] = Counter(name, help_text)
            return self.counters[name]

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        with self._lock:
            if name not in self.gauges:
                self.gauges[name] = Gauge(name, help_text)
            return self.gauges[name]

    def histogram(
        self, name: str, help_text: str = "", buckets: Optional[List[float]] = None
    ) -> Histogram:
        with self._lock:
            if name not in self.histograms:
                self.histograms[name] = Histogram(name, help_text, buckets)
            return self.histograms[name]

    def names(self) -> Dict[str, List[str]]:
        return {
            "counters": sorted(self.counters),
            "gauges": sorted(self.gauges),
            "histograms": sorted(self.histograms),
        }
