import json

import httpx
import pytest

from blindrelay.common.errors import TransportError
from blindrelay.net.inference import InferenceClient


def client_for(handler):
    return InferenceClient(
        base_url="http://engine.test",
        model="tiny",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_generate_sends_non_streaming_request():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "4", "done": True})

    client = client_for(handler)
    assert await client.generate("what is 2+2?") == "4"
    await client.close()

    assert seen["path"] == "/api/generate"
    assert seen["body"] == {"model": "tiny", "prompt": "what is 2+2?", "stream": False}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_generate_failures_raise_transport_error(response):
    client = client_for(lambda request: response)
    with pytest.raises(TransportError):
        await client.generate("hi")
    await client.close()


@pytest.mark.asyncio
async def test_generate_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = client_for(handler)
    with pytest.raises(TransportError):
        await client.generate("hi")
    await client.close()
