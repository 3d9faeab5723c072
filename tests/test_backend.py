from types import SimpleNamespace

import anthropic
import pytest

from analysis_engine.errors import BackendError
from analysis_engine.generator.backend import AnthropicBackend

# SDK errors only read these attributes, whichever HTTP library the SDK ships with
REQUEST = SimpleNamespace(method="POST", url="https://api.anthropic.com/v1/messages")


def _status_error(code: int) -> anthropic.APIStatusError:
    response = SimpleNamespace(status_code=code, headers={}, request=REQUEST)
    return anthropic.APIStatusError(f"status {code}", response=response, body=None)


def test_client_builds_with_plain_timeout():
    backend = AnthropicBackend(api_key="sk-ant-test", model="claude-test", timeout_s=12.5)
    assert backend._client.timeout == 12.5
    assert backend._client.max_retries == 0


def _backend(create) -> AnthropicBackend:
    backend = AnthropicBackend(api_key="sk-ant-test", model="claude-test", timeout_s=1.0)
    backend._client = SimpleNamespace(messages=SimpleNamespace(create=create))
    return backend


@pytest.mark.asyncio
async def test_returns_first_text_block():
    seen = {}

    def create(**kwargs):
        seen.update(kwargs)
        return SimpleNamespace(content=[
            SimpleNamespace(type="tool_use"),
            SimpleNamespace(type="text", text='{"ok": true}'),
        ])

    assert await _backend(create).complete("prompt", 512) == '{"ok": true}'
    assert seen["model"] == "claude-test"
    assert seen["max_tokens"] == 512
    assert seen["messages"] == [{"role": "user", "content": "prompt"}]


@pytest.mark.asyncio
async def test_no_text_block_is_transient_empty():
    backend = _backend(lambda **kw: SimpleNamespace(content=[]))
    with pytest.raises(BackendError) as exc:
        await backend.complete("prompt", 10)
    assert exc.value.transient
    assert exc.value.reason == "empty"


@pytest.mark.parametrize("error,transient,reason", [
    (anthropic.APITimeoutError(request=REQUEST), True, "timeout"),
    (anthropic.APIConnectionError(request=REQUEST), True, "network"),
    (_status_error(429), True, "upstream"),
    (_status_error(529), True, "upstream"),
    (_status_error(401), False, "rejected"),
    (_status_error(400), False, "rejected"),
])
@pytest.mark.asyncio
async def test_sdk_errors_are_classified(error, transient, reason):
    def create(**kwargs):
        raise error

    with pytest.raises(BackendError) as exc:
        await _backend(create).complete("prompt", 10)
    assert exc.value.transient is transient
    assert exc.value.reason == reason
