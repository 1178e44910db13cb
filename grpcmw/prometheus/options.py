"""Options for the gRPC Prometheus metrics, call types and interceptor settings."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Mapping, Sequence

from grpcmw.prometheus.metrics import CounterOpts, HistogramOpts
from grpcmw.wrappers import Context


class GrpcType(str, enum.Enum):
    """The shape of a gRPC call."""

    UNARY = "unary"
    CLIENT_STREAM = "client_stream"
    SERVER_STREAM = "server_stream"
    BIDI_STREAM = "bidi_stream"

    def __str__(self) -> str:
        return self.value


class Kind(str, enum.Enum):
    """Whether an interceptor runs on the client or the server."""

    CLIENT = "client"
    SERVER = "server"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MethodInfo:
    """A registered method and whether each side streams."""

    name: str
    is_client_stream: bool = False
    is_server_stream: bool = False


CounterOption = Callable[[CounterOpts], None]
HistogramOption = Callable[[HistogramOpts], None]
ExemplarFromContext = Callable[[Context], Mapping[str, str] | None]


def _apply_counter_opts(opts: Iterable[CounterOption], base: CounterOpts) -> CounterOpts:
    result = replace(base)
    for opt in opts:
        opt(result)
    return result


def _apply_histogram_opts(opts: Iterable[HistogramOption], base: HistogramOpts) -> HistogramOpts:
    result = replace(base)
    for opt in opts:
        opt(result)
    return result


def with_const_labels(labels: Mapping[str, str]) -> CounterOption:
    """Set constant labels on counter metrics."""

    def apply(o: CounterOpts) -> None:
        o.const_labels = labels

    return apply


def with_subsystem(subsystem: str) -> CounterOption:
    """Set the subsystem of counter metrics."""

    def apply(o: CounterOpts) -> None:
        o.subsystem = subsystem

    return apply


def with_namespace(namespace: str) -> CounterOption:
    """Set the namespace of counter metrics."""

    def apply(o: CounterOpts) -> None:
        o.namespace = namespace

    return apply


def with_histogram_buckets(buckets: Sequence[float]) -> HistogramOption:
    """Use custom bucket bounds for histograms."""

    def apply(o: HistogramOpts) -> None:
        o.buckets = buckets

    return apply


def with_histogram_opts(opts: HistogramOpts) -> HistogramOption:
    """Copy buckets and native-histogram settings from ``opts``, keeping name and labels."""

    def apply(o: HistogramOpts) -> None:
        o.buckets = opts.buckets
        o.native_histogram_bucket_factor = opts.native_histogram_bucket_factor
        o.native_histogram_zero_threshold = opts.native_histogram_zero_threshold
        o.native_histogram_max_bucket_number = opts.native_histogram_max_bucket_number
        o.native_histogram_min_reset_duration = opts.native_histogram_min_reset_duration
        o.native_histogram_max_zero_threshold = opts.native_histogram_max_zero_threshold

    return apply


def with_histogram_const_labels(labels: Mapping[str, str]) -> HistogramOption:
    """Set constant labels on histogram metrics."""

    def apply(o: HistogramOpts) -> None:
        o.const_labels = labels

    return apply


def with_histogram_subsystem(subsystem: str) -> HistogramOption:
    """Set the subsystem of histogram metrics."""

    def apply(o: HistogramOpts) -> None:
        o.subsystem = subsystem

    return apply


def with_histogram_namespace(namespace: str) -> HistogramOption:
    """Set the namespace of histogram metrics."""

    def apply(o: HistogramOpts) -> None:
        o.namespace = namespace

    return apply


def type_from_method_info(info: MethodInfo) -> GrpcType:
    """Return the call type implied by which sides of ``info`` stream."""
    if info.is_client_stream and info.is_server_stream:
        return GrpcType.BIDI_STREAM
    if info.is_client_stream:
        return GrpcType.CLIENT_STREAM
    if info.is_server_stream:
        return GrpcType.SERVER_STREAM
    return GrpcType.UNARY


@dataclass
class _Config:
    exemplar_fn: ExemplarFromContext | None = None


Option = Callable[[_Config], None]


def _apply_options(opts: Iterable[Option]) -> _Config:
    config = _Config()
    for opt in opts:
        opt(config)
    return config


def with_exemplar_from_context(exemplar_fn: ExemplarFromContext) -> Option:
    """Derive exemplar labels for every counter and histogram update from the call context."""

    def apply(config: _Config) -> None:
        config.exemplar_fn = exemplar_fn

    return apply