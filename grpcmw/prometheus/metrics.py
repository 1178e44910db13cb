"""Counters and histograms with label vectors, and their Prometheus text exposition."""

from __future__ import annotations

import bisect
import math
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

DEF_BUCKETS: tuple[float, ...] = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
EXEMPLAR_MAX_RUNES = 128

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts with underscores; an empty ``name`` gives ""."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


@dataclass
class CounterOpts:
    """Options describing a counter metric."""

    name: str = ""
    help: str = ""
    namespace: str = ""
    subsystem: str = ""
    const_labels: Mapping[str, str] | None = None

    @property
    def fq_name(self) -> str:
        return build_fq_name(self.namespace, self.subsystem, self.name)


@dataclass
class HistogramOpts:
    """Options describing a histogram metric."""

    name: str = ""
    help: str = ""
    namespace: str = ""
    subsystem: str = ""
    const_labels: Mapping[str, str] | None = None
    buckets: Sequence[float] | None = None
    native_histogram_bucket_factor: float = 0.0
    native_histogram_zero_threshold: float = 0.0
    native_histogram_max_bucket_number: int = 0
    native_histogram_min_reset_duration: float = 0.0
    native_histogram_max_zero_threshold: float = 0.0

    @property
    def fq_name(self) -> str:
        return build_fq_name(self.namespace, self.subsystem, self.name)


@dataclass(frozen=True)
class Desc:
    """Descriptor of a metric family."""

    fq_name: str
    help: str
    type: str
    const_labels: tuple[tuple[str, str], ...] = ()
    variable_labels: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not _METRIC_NAME_RE.match(self.fq_name):
            raise ValueError(f"{self.fq_name!r} is not a valid metric name")
        seen: set[str] = set()
        for name in [key for key, _ in self.const_labels] + list(self.variable_labels):
            if not _LABEL_NAME_RE.match(name) or name.startswith("__"):
                raise ValueError(f"{name!r} is not a valid label name for metric {self.fq_name!r}")
            if self.type == "histogram" and name == "le":
                raise ValueError(f"'le' is not allowed as label name in histogram {self.fq_name!r}")
            if name in seen:
                raise ValueError(f"duplicate label name {name!r} in metric {self.fq_name!r}")
            seen.add(name)


@dataclass(frozen=True)
class Exemplar:
    """A labelled example observation attached to a metric."""

    labels: Mapping[str, str]
    value: float
    timestamp: float


@dataclass(frozen=True)
class Sample:
    """One exposed line: a series name, its labels and value."""

    family: str
    name: str
    labels: tuple[tuple[str, str], ...]
    value: float


def _new_exemplar(value: float, labels: Mapping[str, str]) -> Exemplar:
    runes = 0
    for name, label_value in labels.items():
        if not _LABEL_NAME_RE.match(name):
            raise ValueError(f"exemplar label name {name!r} is invalid")
        runes += len(name) + len(label_value)
    if runes > EXEMPLAR_MAX_RUNES:
        raise ValueError(
            f"exemplar labels have {runes} runes, exceeding the limit of {EXEMPLAR_MAX_RUNES}"
        )
    return Exemplar(dict(labels), float(value), time.time())


def _series_labels(desc: Desc, label_values: tuple[str, ...]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(desc.const_labels + tuple(zip(desc.variable_labels, label_values))))


class Counter:
    """A monotonically increasing value."""

    def __init__(self, desc: Desc, label_values: Iterable[str] = ()) -> None:
        self.desc = desc
        self.label_values = tuple(label_values)
        self._value = 0.0
        self._exemplar: Exemplar | None = None
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        return self._value

    @property
    def exemplar(self) -> Exemplar | None:
        return self._exemplar

    def inc(self) -> None:
        """Add one."""
        self.add(1.0)

    def add(self, value: float) -> None:
        """Add a non-negative ``value``."""
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += value

    def add_with_exemplar(self, value: float, exemplar: Mapping[str, str] | None) -> None:
        """Add ``value`` and, if ``exemplar`` labels are given, record them as the exemplar."""
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        new = None if exemplar is None else _new_exemplar(value, exemplar)
        with self._lock:
            self._value += value
            if new is not None:
                self._exemplar = new

    def _samples(self) -> list[Sample]:
        labels = _series_labels(self.desc, self.label_values)
        return [Sample(self.desc.fq_name, self.desc.fq_name, labels, self._value)]


def _check_buckets(buckets: Sequence[float] | None) -> tuple[float, ...]:
    bounds = [float(b) for b in (buckets if buckets else DEF_BUCKETS)]
    if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
        bounds.pop()
    for lower, upper in zip(bounds, bounds[1:]):
        if not lower < upper:
            raise ValueError("histogram buckets must be in increasing order")
    return tuple(bounds)


class Histogram:
    """Counts observations into cumulative buckets."""

    def __init__(
        self,
        desc: Desc,
        buckets: Sequence[float] | None = None,
        label_values: Iterable[str] = (),
    ) -> None:
        self.desc = desc
        self.label_values = tuple(label_values)
        self.upper_bounds = _check_buckets(buckets)
        self._counts = [0] * (len(self.upper_bounds) + 1)
        self._exemplars: list[Exemplar | None] = [None] * (len(self.upper_bounds) + 1)
        self._sum = 0.0
        self._count = 0
        self._lock = threading.Lock()

    @property
    def sample_count(self) -> int:
        return self._count

    @property
    def sample_sum(self) -> float:
        return self._sum

    @property
    def bucket_counts(self) -> list[tuple[float, int]]:
        """Cumulative counts per upper bound, ending with +Inf."""
        with self._lock:
            counts = list(self._counts)
        result = []
        running = 0
        for bound, count in zip(self.upper_bounds + (math.inf,), counts):
            running += count
            result.append((bound, running))
        return result

    @property
    def exemplars(self) -> list[Exemplar | None]:
        return list(self._exemplars)

    def _index(self, value: float) -> int:
        if math.isnan(value):
            return len(self.upper_bounds)
        return bisect.bisect_left(self.upper_bounds, value)

    def observe(self, value: float) -> None:
        """Record one observation."""
        index = self._index(value)
        with self._lock:
            self._counts[index] += 1
            self._sum += value
            self._count += 1

    def observe_with_exemplar(self, value: float, exemplar: Mapping[str, str] | None) -> None:
        """Record one observation and, if labels are given, keep them as its bucket's exemplar."""
        new = None if exemplar is None else _new_exemplar(value, exemplar)
        index = self._index(value)
        with self._lock:
            self._counts[index] += 1
            self._sum += value
            self._count += 1
            if new is not None:
                self._exemplars[index] = new

    def _samples(self) -> list[Sample]:
        fq = self.desc.fq_name
        labels = _series_labels(self.desc, self.label_values)
        samples = [
            Sample(fq, f"{fq}_bucket", labels + (("le", _format_float(bound)),), float(count))
            for bound, count in self.bucket_counts
        ]
        samples.append(Sample(fq, f"{fq}_sum", labels, self._sum))
        samples.append(Sample(fq, f"{fq}_count", labels, float(self._count)))
        return samples


def _const_labels(labels: Mapping[str, str] | None) -> tuple[tuple[str, str], ...]:
    return tuple(sorted((labels or {}).items()))


class _MetricVec:
    """Children keyed by label values, created on demand by ``factory``."""

    def __init__(self, desc: Desc, factory: Callable[[tuple[str, ...]], Any]) -> None:
        self.desc = desc
        self._factory = factory
        self._children: dict[tuple[str, ...], Any] = {}
        self._lock = threading.Lock()

    def _child(self, values: tuple[str, ...]) -> Any:
        expected = len(self.desc.variable_labels)
        if len(values) != expected:
            raise ValueError(
                f"inconsistent label cardinality: expected {expected} label values "
                f"but got {len(values)} in {list(values)!r}"
            )
        with self._lock:
            child = self._children.get(values)
            if child is None:
                child = self._children[values] = self._factory(values)
            return child

    def _reset(self) -> None:
        with self._lock:
            self._children.clear()

    def _collect(self) -> list[Sample]:
        with self._lock:
            children = sorted(self._children.items())
        return [sample for _, child in children for sample in child._samples()]


class CounterVec:
    """Counters partitioned by label values."""

    def __init__(self, opts: CounterOpts, label_names: Sequence[str]) -> None:
        self.desc = Desc(
            opts.fq_name, opts.help, "counter", _const_labels(opts.const_labels), tuple(label_names)
        )
        self._vec = _MetricVec(self.desc, lambda values: Counter(self.desc, values))

    def with_label_values(self, *values: str) -> Counter:
        """Return the counter for ``values``, creating it at zero if needed."""
        return self._vec._child(tuple(values))

    def reset(self) -> None:
        """Drop every child counter."""
        self._vec._reset()

    def describe(self) -> list[Desc]:
        """Return the descriptors of what this vector exposes."""
        return [self.desc]

    def collect(self) -> list[Sample]:
        """Return the samples of every child, ordered by label values."""
        return self._vec._collect()


class HistogramVec:
    """Histograms partitioned by label values."""

    def __init__(self, opts: HistogramOpts, label_names: Sequence[str]) -> None:
        self.desc = Desc(
            opts.fq_name, opts.help, "histogram", _const_labels(opts.const_labels), tuple(label_names)
        )
        self.opts = opts
        self.upper_bounds = _check_buckets(opts.buckets)
        self._vec = _MetricVec(
            self.desc, lambda values: Histogram(self.desc, self.upper_bounds, values)
        )

    def with_label_values(self, *values: str) -> Histogram:
        """Return the histogram for ``values``, creating it empty if needed."""
        return self._vec._child(tuple(values))

    def reset(self) -> None:
        """Drop every child histogram."""
        self._vec._reset()

    def describe(self) -> list[Desc]:
        """Return the descriptors of what this vector exposes."""
        return [self.desc]

    def collect(self) -> list[Sample]:
        """Return the samples of every child, ordered by label values."""
        return self._vec._collect()


class Collector(Protocol):
    def describe(self) -> list[Desc]: ...

    def collect(self) -> list[Sample]: ...


def _format_float(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_sample(sample: Sample) -> str:
    if sample.labels:
        labels = ",".join(f'{name}="{_escape_label_value(value)}"' for name, value in sample.labels)
        return f"{sample.name}{{{labels}}} {_format_float(sample.value)}"
    return f"{sample.name} {_format_float(sample.value)}"


def exposition(*collectors: Collector) -> str:
    """Render the collectors in the Prometheus text format.

    Families are ordered by name; those without samples are left out.
    """
    families: dict[str, tuple[Desc, list[Sample]]] = {}
    for collector in collectors:
        samples = collector.collect()
        for desc in collector.describe():
            if desc.fq_name in families:
                raise ValueError(f"duplicate metric family {desc.fq_name!r}")
            families[desc.fq_name] = (desc, [s for s in samples if s.family == desc.fq_name])
    lines = []
    for name in sorted(families):
        desc, samples = families[name]
        if not samples:
            continue
        lines.append(f"# HELP {name} {_escape_help(desc.help)}")
        lines.append(f"# TYPE {name} {desc.type}")
        lines.extend(_format_sample(sample) for sample in samples)
    return "".join(line + "\n" for line in lines)