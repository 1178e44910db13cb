"""Prometheus metrics for gRPC servers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

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
    MethodInfo,
    Option,
    _apply_counter_opts,
    _apply_histogram_opts,
    type_from_method_info,
)
from grpcmw.prometheus.reporter import Reportable
from grpcmw.status import Code

_LABELS = ("grpc_type", "grpc_service", "grpc_method")
_HANDLED_LABELS = _LABELS + ("grpc_code",)


@dataclass
class _ServerMetricsConfig:
    counter_opts: tuple[CounterOption, ...] = field(default_factory=tuple)
    server_handled_histogram: HistogramVec | None = None


ServerMetricsOption = Callable[[_ServerMetricsConfig], None]


def with_server_counter_options(*opts: CounterOption) -> ServerMetricsOption:
    """Apply ``opts`` to every server counter."""

    def apply(config: _ServerMetricsConfig) -> None:
        config.counter_opts = opts

    return apply


def with_server_handling_time_histogram(*opts: HistogramOption) -> ServerMetricsOption:
    """Record the handling time of RPCs in a histogram."""

    def apply(config: _ServerMetricsConfig) -> None:
        config.server_handled_histogram = HistogramVec(
            _apply_histogram_opts(
                opts,
                HistogramOpts(
                    name="grpc_server_handling_seconds",
                    help="Histogram of response latency (seconds) of gRPC that had been "
                    "application-level handled by the server.",
                    buckets=DEF_BUCKETS,
                ),
            ),
            _LABELS,
        )

    return apply


def _methods(info: Any) -> Iterable[MethodInfo]:
    return getattr(info, "methods", info)


class ServerMetrics:
    """The metrics kept for a gRPC server."""

    def __init__(self, *opts: ServerMetricsOption) -> None:
        config = _ServerMetricsConfig()
        for opt in opts:
            opt(config)

        def counter(name: str, help_text: str, labels: tuple[str, ...]) -> CounterVec:
            return CounterVec(
                _apply_counter_opts(config.counter_opts, CounterOpts(name=name, help=help_text)),
                labels,
            )

        self.server_started_counter = counter(
            "grpc_server_started_total", "Total number of RPCs started on the server.", _LABELS
        )
        self.server_handled_counter = counter(
            "grpc_server_handled_total",
            "Total number of RPCs completed on the server, regardless of success or failure.",
            _HANDLED_LABELS,
        )
        self.server_stream_msg_received = counter(
            "grpc_server_msg_received_total",
            "Total number of RPC stream messages received on the server.",
            _LABELS,
        )
        self.server_stream_msg_sent = counter(
            "grpc_server_msg_sent_total",
            "Total number of gRPC stream messages sent by the server.",
            _LABELS,
        )
        self.server_handled_histogram = config.server_handled_histogram

    def _vectors(self) -> list[CounterVec | HistogramVec]:
        vectors: list[CounterVec | HistogramVec] = [
            self.server_started_counter,
            self.server_handled_counter,
            self.server_stream_msg_received,
            self.server_stream_msg_sent,
        ]
        if self.server_handled_histogram is not None:
            vectors.append(self.server_handled_histogram)
        return vectors

    def describe(self) -> list[Desc]:
        """Return the descriptors of every metric kept."""
        return [desc for vec in self._vectors() for desc in vec.describe()]

    def collect(self) -> list[Sample]:
        """Return the current samples of every metric kept."""
        return [sample for vec in self._vectors() for sample in vec.collect()]

    def initialize_metrics(self, service_info: Mapping[str, Any]) -> None:
        """Create every metric, at zero, for each method of each service.

        ``service_info`` maps a service name to its ``MethodInfo`` entries, or to
        an object whose ``methods`` attribute holds them.
        """
        for service_name, info in service_info.items():
            for method in _methods(info):
                self._pre_register_method(service_name, method)

    def _pre_register_method(self, service_name: str, info: MethodInfo) -> None:
        labels = (str(type_from_method_info(info)), service_name, info.name)
        self.server_started_counter.with_label_values(*labels)
        self.server_stream_msg_received.with_label_values(*labels)
        self.server_stream_msg_sent.with_label_values(*labels)
        if self.server_handled_histogram is not None:
            self.server_handled_histogram.with_label_values(*labels)
        for code in Code:
            self.server_handled_counter.with_label_values(*labels, str(code))

    def reportable(self, *opts: Option) -> Reportable:
        """Return the reporter factory that server interceptors use to update these metrics."""
        return Reportable(server_metrics=self, opts=opts)