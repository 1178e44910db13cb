# grpcmw

Building blocks for gRPC middleware. It needs nothing beyond the standard
library.

- `grpcmw.wrappers`: an immutable `Context` that carries values, and a
  `WrappedServerStream` whose context can be replaced.
- `grpcmw.metadata`: `MD`, a dictionary of gRPC metadata with helper
  methods.
- `grpcmw.status`: gRPC status codes (`Code`), `Status`, the `StatusError`
  exception and `from_error`.
- `grpcmw.validator`: interceptor functions that reject invalid messages
  with `INVALID_ARGUMENT`.
- `grpcmw.prometheus`: counters and histograms in the Prometheus data
  model, client and server metric sets, per-call reporters, and text
  exposition.
- `grpcmw.backoffutils`: jitter and exponent helpers for retry backoff.

## Install

```
pip install grpcmw
```

## Contexts

```python
from grpcmw.wrappers import background

ctx = background().with_value("request-id", 7)
assert ctx.value("request-id") == 7
assert ctx.value("missing") is None
```

`with_value` returns a new child context and leaves the parent unchanged.
`value` looks up a key in the context and then in each of its parents.

`wrap_server_stream(stream)` returns a `WrappedServerStream` whose
`context` starts as `stream.context`. You can assign a new context to it.
All other attributes are read from the wrapped stream. If the stream is
already a `WrappedServerStream`, it is returned unchanged.

## Metadata

`MD` is a `dict` that maps lower-case keys to lists of string values.
`get`, `set`, `add` and `delete` lower-case the key they are given. For
keys that end in `-bin`, `set` and `add` base64-encode the value. `set`,
`add` and `delete` return the same `MD`, so calls can be chained.

```python
from grpcmw.metadata import pairs

md = pairs("singlekey", "uno", "multikey", "one", "multikey", "two")
md.get("multikey")        # "one", the first value
md.get("nokey")           # ""
md.get_all("multikey")    # ["one", "two"]
md.add("multikey", "three").set("newkey", "something").delete("singlekey")
```

`pairs` takes keys and values in turn. It raises `ValueError` if it gets
an odd number of arguments.

`clone()` with no arguments makes a deep copy of every key. `clone(*keys)`
copies only the keys given, compared without regard to case.

Metadata is attached to a context with `to_incoming` or `to_outgoing`.
`extract_incoming` and `extract_outgoing` read it back. They return a copy,
and an empty `MD` if the context carries no metadata.

```python
from grpcmw.metadata import extract_incoming

out_ctx = (
    extract_incoming(server_ctx)
    .clone("authorization", "x-custom")
    .set("x-client-header", "2")
    .to_outgoing(server_ctx)
)
```

## Status

`StatusError(code, message)` is an exception that carries a `Status`.
`from_error(err)` finds the status for any error:

- `None` gives `OK`.
- A `StatusError`, or an error whose cause chain holds one, gives its
  status.
- `TimeoutError` gives `DEADLINE_EXCEEDED`.
- `asyncio.CancelledError` gives `CANCELED`.
- Anything else gives `UNKNOWN`.

`str(Code.FAILED_PRECONDITION)` is `"FailedPrecondition"`. These are the
names that appear in metric labels.

## Validation

A message takes part in validation if it has one of these methods:

- `validate_all()`, which reports every violation;
- `validate(all)`, which reports every violation when `all` is true and
  otherwise stops at the first;
- `validate()`, the legacy form.

A method signals failure by raising an exception or by returning one.
Messages with none of these methods pass.

Without fail-fast, the methods are tried in this order: `validate_all()`,
then `validate(True)`, then `validate()`. With `with_fail_fast()`, the
order is `validate()`, then `validate(False)`.

On failure, `validate` does two things:

1. It calls the callback registered with `with_on_validation_err_callback`,
   passing the context and the original error.
2. It raises `StatusError(Code.INVALID_ARGUMENT, str(err))`.

```python
from grpcmw import validator

errors = []
server_unary = validator.unary_server_interceptor(
    validator.with_fail_fast(),
    validator.with_on_validation_err_callback(lambda ctx, err: errors.append(str(err))),
)
client_unary = validator.unary_client_interceptor()
server_stream = validator.stream_server_interceptor()
```

The interceptors are plain callables with these signatures:

- `unary_server_interceptor(...)` returns
  `interceptor(ctx, request, info, handler)`. It validates the request and
  then returns `handler(ctx, request)`.
- `unary_client_interceptor(...)` returns
  `interceptor(ctx, method, request, reply, cc, invoker, *call_opts)`. It
  validates the request before it calls the invoker.
- `stream_server_interceptor(...)` returns
  `interceptor(srv, stream, info, handler)`. It passes the handler a stream
  whose `recv_msg()` validates each message it receives.

## Metrics

`grpcmw.prometheus.metrics` provides the metric types: `CounterVec` and
`HistogramVec`, with children per label set, and `Counter` and
`Histogram`. `exposition(*collectors)` renders any object that has
`describe()` and `collect()` in the Prometheus text format. Families appear
in name order, and families without samples are left out.

`ServerMetrics` and `ClientMetrics` keep these counters. Each is labelled
by `grpc_type`, `grpc_service` and `grpc_method`.

| Server | Client | Extra label |
|---|---|---|
| `grpc_server_started_total` | `grpc_client_started_total` | |
| `grpc_server_handled_total` | `grpc_client_handled_total` | `grpc_code` |
| `grpc_server_msg_received_total` | `grpc_client_msg_received_total` | |
| `grpc_server_msg_sent_total` | `grpc_client_msg_sent_total` | |

Histograms are kept only when their option is given:

- `with_server_handling_time_histogram`
- `with_client_handling_time_histogram`
- `with_client_stream_recv_histogram`
- `with_client_stream_send_histogram`

These options change counters and histograms, and they live in
`grpcmw.prometheus.options`:

- counters (used through `with_server_counter_options` or
  `with_client_counter_options`): `with_namespace`, `with_subsystem`,
  `with_const_labels`;
- histograms: `with_histogram_buckets`, `with_histogram_opts`,
  `with_histogram_namespace`, `with_histogram_subsystem`,
  `with_histogram_const_labels`.

```python
from grpcmw.prometheus.metrics import exposition
from grpcmw.prometheus.options import GrpcType, MethodInfo, with_histogram_buckets, with_namespace
from grpcmw.prometheus.reporter import CallMeta
from grpcmw.prometheus.server_metrics import (
    ServerMetrics,
    with_server_counter_options,
    with_server_handling_time_histogram,
)
from grpcmw.wrappers import background

metrics = ServerMetrics(
    with_server_counter_options(with_namespace("myapp")),
    with_server_handling_time_histogram(with_histogram_buckets([0.01, 0.1, 1.0])),
)

# Create zero-valued series for every method and every status code.
metrics.initialize_metrics({"pkg.TestService": [MethodInfo("Ping"), MethodInfo("PingList", is_server_stream=True)]})

reporter, ctx = metrics.reportable().server_reporter(
    background(), CallMeta(GrpcType.UNARY, "pkg.TestService", "Ping")
)
reporter.post_msg_receive(None, None, 0.0)
reporter.post_msg_send(None, None, 0.0)
reporter.post_call(None, 0.012)   # counted under grpc_code="OK"

print(exposition(metrics))
```

How a call is reported:

- `server_reporter` and `client_reporter` count the call as started and
  return a `Reporter` together with the context.
- `post_call(err, duration)` counts the call under the status code that
  `from_error(err)` gives. If a handling-time histogram is kept, it also
  records the duration.
- Durations may be a `timedelta` or a number of seconds.
- `with_exemplar_from_context(fn)`, passed to `reportable()`, attaches
  exemplar labels to every update. The labels are computed by calling `fn`
  on the call context.

## Backoff

```python
from datetime import timedelta
from grpcmw.backoffutils import exponent_base2, jitter_up

exponent_base2(0)                      # 0
exponent_base2(3)                      # 4
jitter_up(10.0, 0.1)                   # somewhere in [9.0, 11.0]
jitter_up(timedelta(seconds=10), 0.1)  # a timedelta in [9s, 11s]
```

`exponent_base2` raises `ValueError` for a negative exponent.

## What this package does not do

- It has no gRPC transport, server or client. The interceptors are plain
  functions, and you have to adapt them to your gRPC library yourself.
- It has no interceptors that drive the metrics. Your own code has to call
  the `Reporter` methods at the start of a call, for each message, and at
  the end.
- It serves no HTTP metrics endpoint. `exposition` returns the text, and
  serving it is up to you.
- Exemplars are stored on counters and histograms, but they are not
  written in the exposition text.