"""Per-call reporters that update client or server gRPC metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping

from grpcmw.prometheus.metrics import CounterVec, HistogramVec
from grpcmw.prometheus.options import GrpcType, Kind, Option, _apply_options
from grpcmw.status import from_error
from grpcmw.wrappers import Context


@dataclass(frozen=True)
class CallMeta:
    """What is known about a call when it starts."""

    typ: GrpcType | str
    service: str
    method: str


def _seconds(duration: timedelta | float) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


@dataclass
class Reporter:
    """Records the outcome and messages of one call."""

    kind: Kind
    typ: str
    service: str
    method: str
    client_metrics: Any = None
    server_metrics: Any = None
    exemplar: Mapping[str, str] | None = None

    def _labels(self) -> tuple[str, str, str]:
        return (self.typ, self.service, self.method)

    def _increment(self, vec: CounterVec, *label_values: str) -> None:
        vec.with_label_values(*label_values).add_with_exemplar(1.0, self.exemplar)

    def _observe(self, vec: HistogramVec, value: float, *label_values: str) -> None:
        vec.with_label_values(*label_values).observe_with_exemplar(value, self.exemplar)

    def post_call(self, err: BaseException | None, rpc_duration: timedelta | float) -> None:
        """Count the finished call under its status code and record its duration."""
        code = str(from_error(err).code)
        if self.kind is Kind.SERVER:
            metrics = self.server_metrics
            handled, histogram = metrics.server_handled_counter, metrics.server_handled_histogram
        else:
            metrics = self.client_metrics
            handled, histogram = metrics.client_handled_counter, metrics.client_handled_histogram
        self._increment(handled, *self._labels(), code)
        if histogram is not None:
            self._observe(histogram, _seconds(rpc_duration), *self._labels())

    def post_msg_send(self, msg: Any, err: BaseException | None, send_duration: timedelta | float) -> None:
        """Count a sent stream message."""
        if self.kind is Kind.SERVER:
            self._increment(self.server_metrics.server_stream_msg_sent, *self._labels())
            return
        metrics = self.client_metrics
        self._increment(metrics.client_stream_msg_sent, *self._labels())
        if metrics.client_stream_send_histogram is not None:
            self._observe(metrics.client_stream_send_histogram, _seconds(send_duration), *self._labels())

    def post_msg_receive(self, msg: Any, err: BaseException | None, recv_duration: timedelta | float) -> None:
        """Count a received stream message."""
        if self.kind is Kind.SERVER:
            self._increment(self.server_metrics.server_stream_msg_received, *self._labels())
            return
        metrics = self.client_metrics
        self._increment(metrics.client_stream_msg_received, *self._labels())
        if metrics.client_stream_recv_histogram is not None:
            self._observe(metrics.client_stream_recv_histogram, _seconds(recv_duration), *self._labels())


@dataclass
class Reportable:
    """Creates reporters bound to a set of client or server metrics."""

    client_metrics: Any = None
    server_metrics: Any = None
    opts: tuple[Option, ...] = field(default_factory=tuple)

    def server_reporter(self, ctx: Context, meta: CallMeta) -> tuple[Reporter, Context]:
        """Start a server call: count it as started and return its reporter."""
        return self._reporter(ctx, meta, Kind.SERVER)

    def client_reporter(self, ctx: Context, meta: CallMeta) -> tuple[Reporter, Context]:
        """Start a client call: count it as started and return its reporter."""
        return self._reporter(ctx, meta, Kind.CLIENT)

    def _reporter(self, ctx: Context, meta: CallMeta, kind: Kind) -> tuple[Reporter, Context]:
        config = _apply_options(self.opts)
        reporter = Reporter(
            kind=kind,
            typ=str(meta.typ),
            service=meta.service,
            method=meta.method,
            client_metrics=self.client_metrics if kind is Kind.CLIENT else None,
            server_metrics=self.server_metrics if kind is Kind.SERVER else None,
        )
        if config.exemplar_fn is not None:
            reporter.exemplar = config.exemplar_fn(ctx)
        if kind is Kind.CLIENT:
            started = self.client_metrics.client_started_counter
        else:
            started = self.server_metrics.server_started_counter
        reporter._increment(started, *reporter._labels())
        return reporter, ctx