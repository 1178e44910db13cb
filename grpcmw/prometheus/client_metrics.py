"""Prometheus metrics for gRPC clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from grpcmw.prometheus.metrics import (
    DEF_BUCKETS,
    CounterOpts,
    CounterVec,
    Desc,
    HistogramOpts,
    HistogramVec,
    Sample,
)
from grpcmw.prometheus.options import (
    CounterOption,
    HistogramOption,
    Option,
    _apply_counter_opts,
    _apply_histogram_opts,
)
from grpcmw.prometheus.reporter import Reportable

_LABELS = ("grpc_type", "grpc_service", "grpc_method")
_HANDLED_LABELS = _LABELS + ("grpc_code",)


@dataclass
class _ClientMetricsConfig:
    counter_opts: tuple[CounterOption, ...] = field(default_factory=tuple)
    client_handled_histogram: HistogramVec | None = None
    client_stream_recv_histogram: HistogramVec | None = None
    client_stream_send_histogram: HistogramVec | None = None


ClientMetricsOption = Callable[[_ClientMetricsConfig], None]


def with_client_counter_options(*opts: CounterOption) -> ClientMetricsOption:
    """Apply ``opts`` to every client counter."""

    def apply(config: _ClientMetricsConfig) -> None:
        config.counter_opts = opts

    return apply


def _histogram(opts: tuple[HistogramOption, ...], name: str, help_text: str) -> HistogramVec:
    return HistogramVec(
        _apply_histogram_opts(opts, HistogramOpts(name=name, help=help_text, buckets=DEF_BUCKETS)),
        _LABELS,
    )


def with_client_handling_time_histogram(*opts: HistogramOption) -> ClientMetricsOption:
    """Record the handling time of RPCs in a histogram."""

    def apply(config: _ClientMetricsConfig) -> None:
        config.client_handled_histogram = _histogram(
            opts,
            "grpc_client_handling_seconds",
            "Histogram of response latency (seconds) of the gRPC until it is finished by the application.",
        )

    return apply


def with_client_stream_recv_histogram(*opts: HistogramOption) -> ClientMetricsOption:
    """Record the receive time of single stream messages in a histogram."""

    def apply(config: _ClientMetricsConfig) -> None:
        config.client_stream_recv_histogram = _histogram(
            opts,
            "grpc_client_msg_recv_handling_seconds",
            "Histogram of response latency (seconds) of the gRPC single message receive.",
        )

    return apply


def with_client_stream_send_histogram(*opts: HistogramOption) -> ClientMetricsOption:
    """Record the send time of single stream messages in a histogram."""

    def apply(config: _ClientMetricsConfig) -> None:
        config.client_stream_send_histogram = _histogram(
            opts,
            "grpc_client_msg_send_handling_seconds",
            "Histogram of response latency (seconds) of the gRPC single message send.",
        )

    return apply


class ClientMetrics:
    """The metrics kept for a gRPC client."""

    def __init__(self, *opts: ClientMetricsOption) -> None:
        config = _ClientMetricsConfig()
        for opt in opts:
            opt(config)

        def counter(name: str, help_text: str, labels: tuple[str, ...]) -> CounterVec:
            return CounterVec(
                _apply_counter_opts(config.counter_opts, CounterOpts(name=name, help=help_text)),
                labels,
            )

        self.client_started_counter = counter(
            "grpc_client_started_total", "Total number of RPCs started on the client.", _LABELS
        )
        self.client_handled_counter = counter(
            "grpc_client_handled_total",
            "Total number of RPCs completed by the client, regardless of success or failure.",
            _HANDLED_LABELS,
        )
        self.client_stream_msg_received = counter(
            "grpc_client_msg_received_total",
            "Total number of RPC stream messages received by the client.",
            _LABELS,
        )
        self.client_stream_msg_sent = counter(
            "grpc_client_msg_sent_total",
            "Total number of gRPC stream messages sent by the client.",
            _LABELS,
        )
        self.client_handled_histogram = config.client_handled_histogram
        self.client_stream_recv_histogram = config.client_stream_recv_histogram
        self.client_stream_send_histogram = config.client_stream_send_histogram

    def _vectors(self) -> list[CounterVec | HistogramVec]:
        vectors: list[CounterVec | HistogramVec] = [
            self.client_started_counter,
            self.client_handled_counter,
            self.client_stream_msg_received,
            self.client_stream_msg_sent,
        ]
        vectors.extend(
            vec
            for vec in (
                self.client_handled_histogram,
                self.client_stream_recv_histogram,
                self.client_stream_send_histogram,
            )
            if vec is not None
        )
        return vectors

    def describe(self) -> list[Desc]:
        """Return the descriptors of every metric kept."""
        return [desc for vec in self._vectors() for desc in vec.describe()]

    def collect(self) -> list[Sample]:
        """Return the current samples of every metric kept."""
        return [sample for vec in self._vectors() for sample in vec.collect()]

    def reportable(self, *opts: Option) -> Reportable:
        """Return the reporter factory that client interceptors use to update these metrics."""
        return Reportable(client_metrics=self, opts=opts)