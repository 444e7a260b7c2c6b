import pytest

from relaybot.channels.endpoint import ChatEndpointResolver, classify_failure
from relaybot.errors import ConfigurationError, TransportError


class _FakeTransport:
    """Delivers unless the endpoint has a scripted failure."""

    def __init__(self, failures: dict[str, TransportError] | None = None):
        self.failures = failures or {}
        self.calls: list[tuple[str, str, dict]] = []

    async def __call__(self, endpoint: str, content: str, **options) -> int:
        self.calls.append((endpoint, content, options))
        error = self.failures.get(endpoint)
        if error:
            raise error
        return len(self.calls)

    @property
    def endpoints(self) -> list[str]:
        return [c[0] for c in self.calls]


def _blocked() -> TransportError:
    return TransportError(
        "Forbidden: bot was blocked by the user",
        kind=classify_failure(403, "Forbidden: bot was blocked by the user"),
        status=403,
    )


def _timeout() -> TransportError:
    return TransportError("Timed out", kind=classify_failure(None, "Timed out"))


@pytest.mark.parametrize(
    "status,description,expected",
    [
        (400, "Bad Request: message is too long", "endpoint_invalid"),
        (403, "Forbidden", "endpoint_invalid"),
        (None, "Chat not found", "endpoint_invalid"),
        (None, "Bad Request: CHAT_ID_INVALID", "endpoint_invalid"),
        (None, "user is deactivated", "endpoint_invalid"),
        (None, "bot is not a member of the group chat", "endpoint_invalid"),
        (502, "Bad Gateway", "transient"),
        (None, "Timed out", "transient"),
        (None, None, "transient"),
    ],
)
def test_classify_failure(status, description, expected):
    assert classify_failure(status, description) == expected


@pytest.mark.asyncio
async def test_destination_order_prefers_group_then_chat():
    transport = _FakeTransport()
    resolver = ChatEndpointResolver(transport, chat_id="100", group_id="-200")

    result = await resolver.send("hi")

    assert result.ok is True
    assert transport.endpoints == ["-200"]

    resolver = ChatEndpointResolver(transport, chat_id="100")
    await resolver.send("hi")
    assert transport.endpoints[-1] == "100"


@pytest.mark.asyncio
async def test_blocked_endpoint_fails_over_and_sticks():
    transport = _FakeTransport({"E1": _blocked()})
    resolver = ChatEndpointResolver(transport, chat_id="E1", whitelist=["E1", "E2", "E3"])

    first = await resolver.send("hello", parse_mode="HTML")

    assert first.ok is True
    assert first.endpoint == "E2"
    assert first.failed_over is True
    assert transport.endpoints == ["E1", "E2"]
    assert resolver.active_endpoint == "E2"
    assert transport.calls[1][2] == {"parse_mode": "HTML"}

    second = await resolver.send("again")
    assert second.ok is True
    assert transport.endpoints == ["E1", "E2", "E2"]


@pytest.mark.asyncio
async def test_candidates_are_deduplicated_in_order():
    resolver = ChatEndpointResolver(
        _FakeTransport(), chat_id="C", group_id="G", whitelist=["W1", "C", "W1", "G", "W2"]
    )

    candidates = resolver.candidates("G")

    assert [c.endpoint for c in candidates] == ["W1", "C", "W2"]
    assert [c.provenance for c in candidates] == ["whitelist", "whitelist", "whitelist"]

    candidates = ChatEndpointResolver(_FakeTransport(), chat_id="C", group_id="G").candidates("G")
    assert [(c.endpoint, c.provenance) for c in candidates] == [("C", "chat")]


@pytest.mark.asyncio
async def test_all_candidates_failing_returns_failure():
    transport = _FakeTransport({"G": _blocked(), "C": _blocked(), "W": _blocked()})
    resolver = ChatEndpointResolver(transport, chat_id="C", group_id="G", whitelist=["W"])

    result = await resolver.send("hello")

    assert result.ok is False
    assert result.attempted == ["G", "W", "C"]
    assert result.error is not None
    assert result.error.endpoint == "C"
    assert resolver.active_endpoint is None


@pytest.mark.asyncio
async def test_transient_failure_does_not_fail_over():
    transport = _FakeTransport({"G": _timeout()})
    resolver = ChatEndpointResolver(transport, chat_id="C", group_id="G", whitelist=["W"])

    result = await resolver.send("hello")

    assert result.ok is False
    assert result.error.kind == "transient"
    assert transport.endpoints == ["G"]


@pytest.mark.asyncio
async def test_explicit_endpoint_is_single_attempt_and_keeps_active():
    transport = _FakeTransport({"U": _blocked()})
    resolver = ChatEndpointResolver(transport, chat_id="C", whitelist=["W"])
    resolver.active_endpoint = "W"

    result = await resolver.send("reply", endpoint="U")

    assert result.ok is False
    assert transport.endpoints == ["U"]
    assert resolver.active_endpoint == "W"


@pytest.mark.asyncio
async def test_missing_destination_is_configuration_error():
    resolver = ChatEndpointResolver(_FakeTransport())

    with pytest.raises(ConfigurationError):
        await resolver.send("hello")
