import pytest

from grpcmw.status import Code, StatusError
from grpcmw.wrappers import Context, WrappedServerStream, background, wrap_server_stream

SOME_KEY = object()
OTHER = object()


class FakeServerStream:
    def __init__(self, context, recv_message=None):
        self.context = context
        self.recv_message = recv_message
        self.sent_message = None

    def send_msg(self, message):
        if self.sent_message is not None:
            raise StatusError(Code.ALREADY_EXISTS, "fakeServerStream only takes one message, sorry")
        self.sent_message = message

    def recv_msg(self):
        if self.recv_message is None:
            raise StatusError(Code.NOT_FOUND, "fakeServerStream has no message, sorry")
        return self.recv_message


def test_wrap_server_stream():
    ctx = background().with_value(SOME_KEY, 1)
    fake = FakeServerStream(ctx)
    wrapped = wrap_server_stream(fake)
    assert wrapped.context.value(SOME_KEY) == 1
    wrapped.context = wrapped.context.with_value(OTHER, 2)
    assert wrapped.context.value(OTHER) == 2
    assert wrapped.context.value(SOME_KEY) == 1
    assert fake.context.value(OTHER) is None


def test_wrapping_a_wrapper_returns_it():
    wrapped = wrap_server_stream(FakeServerStream(background()))
    assert wrap_server_stream(wrapped) is wrapped


def test_wrapper_delegates_to_stream():
    fake = FakeServerStream(background(), recv_message="ping")
    wrapped = wrap_server_stream(fake)
    wrapped.send_msg("pong")
    assert fake.sent_message == "pong"
    assert wrapped.recv_msg() == "ping"
    with pytest.raises(StatusError) as info:
        wrapped.send_msg("again")
    assert info.value.code is Code.ALREADY_EXISTS


def test_wrapper_with_explicit_context():
    ctx = background().with_value(SOME_KEY, "x")
    wrapped = WrappedServerStream(FakeServerStream(background()), ctx)
    assert wrapped.context.value(SOME_KEY) == "x"


def test_context_lookup_and_shadowing():
    root = background()
    assert root.value(SOME_KEY) is None
    child = root.with_value(SOME_KEY, 1)
    grandchild = child.with_value(SOME_KEY, 2)
    assert child.value(SOME_KEY) == 1
    assert grandchild.value(SOME_KEY) == 2
    assert isinstance(Context().with_value(OTHER, 3).value(OTHER), int)
    assert Context().with_value(OTHER, 3).value(OTHER) == 3