import pytest

from grpcmw.prometheus.client_metrics import (
    ClientMetrics,
    with_client_counter_options,
    with_client_handling_time_histogram,
    with_client_stream_recv_histogram,
    with_client_stream_send_histogram,
)
from grpcmw.prometheus.metrics import exposition
from grpcmw.prometheus.options import (
    GrpcType,
    with_exemplar_from_context,
    with_histogram_buckets,
    with_histogram_namespace,
    with_histogram_subsystem,
    with_namespace,
    with_subsystem,
)
from grpcmw.prometheus.reporter import CallMeta
from grpcmw.status import Code, StatusError
from grpcmw.wrappers import background

SERVICE = "testing.testpb.v1.TestService"
LIST_RESPONSE_COUNT = 100


@pytest.fixture
def metrics():
    return ClientMetrics(with_client_handling_time_histogram())


def test_unary_increments_metrics(metrics):
    reportable = metrics.reportable()
    reporter, _ = reportable.client_reporter(background(), CallMeta(GrpcType.UNARY, SERVICE, "PingEmpty"))
    reporter.post_call(None, 0.01)

    assert metrics.client_started_counter.with_label_values("unary", SERVICE, "PingEmpty").value == 1
    assert metrics.client_handled_counter.with_label_values("unary", SERVICE, "PingEmpty", "OK").value == 1
    assert metrics.client_handled_histogram.with_label_values("unary", SERVICE, "PingEmpty").sample_count == 1

    reporter, _ = reportable.client_reporter(background(), CallMeta(GrpcType.UNARY, SERVICE, "PingError"))
    reporter.post_call(StatusError(Code.FAILED_PRECONDITION, "Userspace error"), 0.01)
    assert metrics.client_started_counter.with_label_values("unary", SERVICE, "PingError").value == 1
    assert (
        metrics.client_handled_counter.with_label_values("unary", SERVICE, "PingError", "FailedPrecondition").value
        == 1
    )
    assert metrics.client_handled_histogram.with_label_values("unary", SERVICE, "PingError").sample_count == 1


def test_started_streaming_increments_started(metrics):
    reportable = metrics.reportable()
    meta = CallMeta(GrpcType.SERVER_STREAM, SERVICE, "PingList")
    reportable.client_reporter(background(), meta)
    started = metrics.client_started_counter.with_label_values("server_stream", SERVICE, "PingList")
    assert started.value == 1
    reportable.client_reporter(background(), meta)
    assert started.value == 2


def test_streaming_increments_metrics(metrics):
    reportable = metrics.reportable()
    meta = CallMeta(GrpcType.SERVER_STREAM, SERVICE, "PingList")
    reporter, _ = reportable.client_reporter(background(), meta)
    reporter.post_msg_send(object(), None, 0.001)
    for _ in range(LIST_RESPONSE_COUNT + 1):  # responses plus end of stream
        reporter.post_msg_receive(object(), None, 0.001)
    reporter.post_call(None, 0.2)

    labels = ("server_stream", SERVICE, "PingList")
    assert metrics.client_started_counter.with_label_values(*labels).value == 1
    assert metrics.client_handled_counter.with_label_values(*labels, "OK").value == 1
    assert metrics.client_stream_msg_received.with_label_values(*labels).value == LIST_RESPONSE_COUNT + 1
    assert metrics.client_stream_msg_sent.with_label_values(*labels).value == 1
    assert metrics.client_handled_histogram.with_label_values(*labels).sample_count == 1

    reporter, _ = reportable.client_reporter(background(), meta)
    reporter.post_call(StatusError(Code.FAILED_PRECONDITION, "foobar"), 0.1)
    assert metrics.client_started_counter.with_label_values(*labels).value == 2
    assert metrics.client_handled_counter.with_label_values(*labels, "FailedPrecondition").value == 1
    assert metrics.client_handled_histogram.with_label_values(*labels).sample_count == 2


def test_with_subsystem():
    metrics = ClientMetrics(
        with_client_counter_options(with_subsystem("subsystem1")),
        with_client_handling_time_histogram(with_histogram_subsystem("subsystem1")),
    )
    counter = metrics.client_started_counter.with_label_values("unary", SERVICE, "dummy")
    histogram = metrics.client_handled_histogram.with_label_values("unary", SERVICE, "dummy")
    assert counter.desc.fq_name.split("_")[0] == "subsystem1"
    assert histogram.desc.fq_name.split("_")[0] == "subsystem1"
    assert counter.desc.fq_name == "subsystem1_grpc_client_started_total"


def test_with_namespace():
    metrics = ClientMetrics(
        with_client_counter_options(with_namespace("namespace1")),
        with_client_handling_time_histogram(with_histogram_namespace("namespace1")),
    )
    counter = metrics.client_started_counter.with_label_values("unary", SERVICE, "dummy")
    histogram = metrics.client_handled_histogram.with_label_values("unary", SERVICE, "dummy")
    assert counter.desc.fq_name.split("_")[0] == "namespace1"
    assert histogram.desc.fq_name.split("_")[0] == "namespace1"
    assert histogram.desc.fq_name == "namespace1_grpc_client_handling_seconds"


def test_histograms_are_off_by_default():
    metrics = ClientMetrics()
    assert metrics.client_handled_histogram is None
    assert metrics.client_stream_recv_histogram is None
    assert metrics.client_stream_send_histogram is None
    names = [desc.fq_name for desc in metrics.describe()]
    assert names == [
        "grpc_client_started_total",
        "grpc_client_handled_total",
        "grpc_client_msg_received_total",
        "grpc_client_msg_sent_total",
    ]


def test_describe_includes_all_enabled_histograms():
    metrics = ClientMetrics(
        with_client_handling_time_histogram(),
        with_client_stream_recv_histogram(),
        with_client_stream_send_histogram(),
    )
    names = [desc.fq_name for desc in metrics.describe()]
    assert names[4:] == [
        "grpc_client_handling_seconds",
        "grpc_client_msg_recv_handling_seconds",
        "grpc_client_msg_send_handling_seconds",
    ]


def test_stream_histograms_record_durations():
    metrics = ClientMetrics(with_client_stream_recv_histogram(), with_client_stream_send_histogram())
    reporter, _ = metrics.reportable().client_reporter(
        background(), CallMeta(GrpcType.BIDI_STREAM, SERVICE, "PingStream")
    )
    reporter.post_msg_send(None, None, 0.5)
    reporter.post_msg_receive(None, None, 0.25)
    reporter.post_msg_receive(None, None, 0.25)
    labels = ("bidi_stream", SERVICE, "PingStream")
    assert metrics.client_stream_send_histogram.with_label_values(*labels).sample_sum == 0.5
    assert metrics.client_stream_recv_histogram.with_label_values(*labels).sample_count == 2


def test_histogram_buckets_option():
    metrics = ClientMetrics(with_client_handling_time_histogram(with_histogram_buckets([0.1, 1.0])))
    assert metrics.client_handled_histogram.upper_bounds == (0.1, 1.0)


def test_counter_help_and_labels():
    metrics = ClientMetrics()
    desc = metrics.client_handled_counter.desc
    assert desc.help == "Total number of RPCs completed by the client, regardless of success or failure."
    assert desc.variable_labels == ("grpc_type", "grpc_service", "grpc_method", "grpc_code")


def test_collect_and_exposition(metrics):
    reporter, _ = metrics.reportable().client_reporter(
        background(), CallMeta(GrpcType.UNARY, SERVICE, "Ping")
    )
    reporter.post_call(None, 0.01)
    names = {sample.name for sample in metrics.collect()}
    assert "grpc_client_started_total" in names
    assert "grpc_client_handling_seconds_count" in names
    text = exposition(metrics)
    assert (
        f'grpc_client_handled_total{{grpc_code="OK",grpc_method="Ping",grpc_service="{SERVICE}",grpc_type="unary"}} 1'
        in text.splitlines()
    )


def test_exemplar_from_context(metrics):
    key = object()
    ctx = background().with_value(key, "trace-1")
    reportable = metrics.reportable(with_exemplar_from_context(lambda c: {"trace_id": c.value(key)}))
    reportable.client_reporter(ctx, CallMeta(GrpcType.UNARY, SERVICE, "Ping"))
    counter = metrics.client_started_counter.with_label_values("unary", SERVICE, "Ping")
    assert counter.exemplar.labels == {"trace_id": "trace-1"}