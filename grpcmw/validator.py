"""Interceptors that validate request messages.

A message takes part in validation when it defines one of:

* ``validate_all()``: report every violation;
* ``validate(all)``: report every violation when ``all`` is true, else stop at the first;
* ``validate()``: the legacy form, always called as is.

A validation method signals failure by raising an exception or by returning one.
Invalid messages are rejected with ``InvalidArgument``: unary calls before the
handler or invoker runs, streaming calls when a message is received.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Any, Callable

from grpcmw.status import Code, StatusError
from grpcmw.wrappers import Context

OnValidationErrCallback = Callable[[Context, BaseException], None]

_CO_VARARGS = 0x04


@dataclass
class _Options:
    should_fail_fast: bool = False
    on_validation_err_callback: OnValidationErrCallback | None = None


Option = Callable[[_Options], None]


def _evaluate_opts(opts: tuple[Option, ...]) -> _Options:
    options = _Options()
    for opt in opts:
        opt(options)
    return options


def with_on_validation_err_callback(callback: OnValidationErrCallback) -> Option:
    """Register ``callback(ctx, err)`` to be invoked on validation errors."""

    def apply(options: _Options) -> None:
        options.on_validation_err_callback = callback

    return apply


def with_fail_fast() -> Option:
    """Stop validation at the first error.

    Ignored for messages that only offer the legacy ``validate()`` form.
    """

    def apply(options: _Options) -> None:
        options.should_fail_fast = True

    return apply


def _method(message: Any, name: str) -> Callable[..., Any] | None:
    found = getattr(message, name, None)
    return found if callable(found) else None


def _accepts(method: Callable[..., Any], count: int) -> bool:
    """Tell whether ``method`` can be called with ``count`` positional arguments."""
    func = getattr(method, "__func__", method)
    code = getattr(func, "__code__", None)
    if code is None:
        return count == 0
    bound = 1 if func is not method and getattr(method, "__self__", None) is not None else 0
    defaults = getattr(func, "__defaults__", None) or ()
    kwdefaults = getattr(func, "__kwdefaults__", None) or {}
    if code.co_kwonlyargcount > len(kwdefaults):
        return False
    positional = code.co_argcount - bound
    required = max(code.co_argcount - len(defaults) - bound, 0)
    if code.co_flags & _CO_VARARGS:
        return required <= count
    return required <= count <= positional


def _select_check(message: Any, should_fail_fast: bool) -> Callable[[], Any] | None:
    validate_method = _method(message, "validate")
    legacy = validate_method is not None and _accepts(validate_method, 0)
    modern = validate_method is not None and _accepts(validate_method, 1)

    if should_fail_fast:
        if legacy:
            return validate_method
        if modern:
            return partial(validate_method, False)
        return None

    validate_all = _method(message, "validate_all")
    if validate_all is not None:
        return validate_all
    if modern:
        return partial(validate_method, True)
    if legacy:
        return validate_method
    return None


def validate(
    ctx: Context,
    message: Any,
    should_fail_fast: bool,
    on_validation_err_callback: OnValidationErrCallback | None,
) -> None:
    """Validate ``message``; raise ``StatusError(INVALID_ARGUMENT)`` if it is invalid.

    Messages without a validation method pass.
    """
    check = _select_check(message, should_fail_fast)
    if check is None:
        return
    err: BaseException | None
    try:
        result = check()
    except Exception as exc:  # noqa: BLE001 - any failure is a validation error
        err = exc
    else:
        err = result if isinstance(result, BaseException) else None
    if err is None:
        return
    if on_validation_err_callback is not None:
        on_validation_err_callback(ctx, err)
    raise StatusError(Code.INVALID_ARGUMENT, str(err)) from err


def unary_server_interceptor(*opts: Option) -> Callable[..., Any]:
    """Return ``interceptor(ctx, request, info, handler)`` validating the request."""
    options = _evaluate_opts(opts)

    def interceptor(ctx: Context, request: Any, info: Any, handler: Callable[..., Any]) -> Any:
        validate(ctx, request, options.should_fail_fast, options.on_validation_err_callback)
        return handler(ctx, request)

    return interceptor


def unary_client_interceptor(*opts: Option) -> Callable[..., Any]:
    """Return ``interceptor(ctx, method, request, reply, cc, invoker, *call_opts)``.

    The request is validated before the invoker is called.
    """
    options = _evaluate_opts(opts)

    def interceptor(
        ctx: Context,
        method: str,
        request: Any,
        reply: Any,
        cc: Any,
        invoker: Callable[..., Any],
        *call_opts: Any,
    ) -> Any:
        validate(ctx, request, options.should_fail_fast, options.on_validation_err_callback)
        return invoker(ctx, method, request, reply, cc, *call_opts)

    return interceptor


class _ValidatingStream:
    """Server stream whose ``recv_msg`` validates each received message."""

    def __init__(self, stream: Any, options: _Options) -> None:
        self._stream = stream
        self._options = options

    def __getattr__(self, name: str) -> Any:
        if name in ("_stream", "_options"):
            raise AttributeError(name)
        return getattr(self._stream, name)

    def recv_msg(self) -> Any:
        message = self._stream.recv_msg()
        validate(
            getattr(self._stream, "context", None),
            message,
            self._options.should_fail_fast,
            self._options.on_validation_err_callback,
        )
        return message


def stream_server_interceptor(*opts: Option) -> Callable[..., Any]:
    """Return ``interceptor(srv, stream, info, handler)`` validating received messages."""
    options = _evaluate_opts(opts)

    def interceptor(srv: Any, stream: Any, info: Any, handler: Callable[..., Any]) -> Any:
        return handler(srv, _ValidatingStream(stream, options))

    return interceptor