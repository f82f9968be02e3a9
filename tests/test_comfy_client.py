import asyncio
import json

import httpx
import pytest

from comfygen.comfy_client import ComfyClient, generate_image
from comfygen.errors import ConfigurationError, GenerationTimeoutError, SubmissionError
from comfygen.model import GenerationParams
from config.settings import settings

PROMPT_ID = "abc-123"

IMAGE_HISTORY = {
    PROMPT_ID: {
        "outputs": {"8": {"images": [{"filename": "a.png", "subfolder": "", "type": "output"}]}},
        "status": {"completed": True},
    }
}


class FakeComfy:
    """Scripted ComfyUI: one /prompt response, then a list of /history responses."""

    def __init__(self, submit=None, history=()):
        self.submit = submit or httpx.Response(200, json={"prompt_id": PROMPT_ID, "number": 1, "node_errors": {}})
        self.history = list(history)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/prompt":
            return self.submit
        item = self.history.pop(0) if self.history else httpx.Response(200, json={})
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def history_requests(self):
        return [r for r in self.requests if r.url.path.startswith("/history/")]


def _sleeps():
    calls = []

    async def sleep(seconds):
        calls.append(seconds)

    return calls, sleep


def _run(fake, base_url="http://comfy:8188", params=None, **kw):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as http:
            client = ComfyClient(base_url=base_url, http=http, **kw)
            return await client.generate(params or GenerationParams(prompt="a cat"))

    return asyncio.run(go())


def test_generate_returns_view_url():
    calls, sleep = _sleeps()
    fake = FakeComfy(history=[httpx.Response(200, json={}), httpx.Response(200, json=IMAGE_HISTORY)])

    url = _run(fake, sleep=sleep, poll_interval=1.0)

    assert url == "http://comfy:8188/view?filename=a.png&subfolder=&type=output"
    assert len(fake.history_requests) == 2
    assert fake.history_requests[0].url == "http://comfy:8188/history/abc-123"
    assert calls == [1.0, 1.0]


def test_submit_payload_carries_workflow_and_client_id():
    _, sleep = _sleeps()
    fake = FakeComfy(history=[httpx.Response(200, json=IMAGE_HISTORY)])

    _run(fake, sleep=sleep, client_id="", params=GenerationParams(prompt="a cat", seed=5, width=64))

    submit = fake.requests[0]
    assert submit.method == "POST"
    assert str(submit.url) == "http://comfy:8188/prompt"
    body = json.loads(submit.content)
    assert body["client_id"] == "huobao_drama"
    workflow = body["prompt"]
    assert workflow["21"]["inputs"]["text"] == "a cat"
    assert workflow["15"]["inputs"]["seed"] == 5
    assert workflow["15"]["inputs"]["steps"] == 25
    assert workflow["20"]["inputs"] == {"width": 64, "height": 1920, "batch_size": 1}


def test_trailing_slash_gives_identical_urls():
    results = []
    for base in ("http://x/", "http://x"):
        _, sleep = _sleeps()
        fake = FakeComfy(history=[httpx.Response(200, json=IMAGE_HISTORY)])
        url = _run(fake, base_url=base, sleep=sleep)
        results.append((url, [str(r.url) for r in fake.requests]))

    assert results[0] == results[1]
    assert results[0][1] == ["http://x/prompt", "http://x/history/abc-123"]


def test_missing_base_url_is_configuration_error():
    fake = FakeComfy()

    with pytest.raises(ConfigurationError):
        _run(fake, base_url="")
    assert fake.requests == []


def test_submit_error_status_carries_body_and_skips_polling():
    _, sleep = _sleeps()
    fake = FakeComfy(submit=httpx.Response(500, text="boom"))

    with pytest.raises(SubmissionError) as exc_info:
        _run(fake, sleep=sleep)

    assert "500" in str(exc_info.value)
    assert "boom" in str(exc_info.value)
    assert exc_info.value.status_code == 500
    assert fake.history_requests == []


def test_submit_undecodable_body():
    fake = FakeComfy(submit=httpx.Response(200, text="<html>nope</html>"))

    with pytest.raises(SubmissionError, match="decode"):
        _run(fake)
    assert fake.history_requests == []


@pytest.mark.parametrize("payload", [{"number": 3}, {"prompt_id": ""}, ["abc"]])
def test_submit_without_prompt_id(payload):
    fake = FakeComfy(submit=httpx.Response(200, json=payload))

    with pytest.raises(SubmissionError, match="prompt_id"):
        _run(fake)


def test_submit_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(SubmissionError, match="refused"):
        _run(handler)


def test_poll_errors_are_treated_as_not_ready():
    _, sleep = _sleeps()
    fake = FakeComfy(
        history=[
            httpx.ConnectError("refused"),
            httpx.Response(200, text="not json"),
            httpx.Response(500, text="oops"),
            httpx.Response(200, json={PROMPT_ID: {"outputs": "garbage"}}),
            httpx.Response(200, json={PROMPT_ID: {"outputs": {"8": {"images": []}}}}),
            httpx.Response(200, json=IMAGE_HISTORY),
        ]
    )

    url = _run(fake, sleep=sleep)

    assert url.endswith("/view?filename=a.png&subfolder=&type=output")
    assert len(fake.history_requests) == 6


def test_first_output_with_image_wins():
    _, sleep = _sleeps()
    history = {
        PROMPT_ID: {
            "outputs": {
                "3": {"text": ["no images here"]},
                "8": {"images": [{"filename": "b.png", "subfolder": "sub", "type": "output"}]},
                "9": {"images": [{"filename": "c.png", "subfolder": "", "type": "temp"}]},
            }
        }
    }
    fake = FakeComfy(history=[httpx.Response(200, json=history)])

    assert _run(fake, sleep=sleep) == "http://comfy:8188/view?filename=b.png&subfolder=sub&type=output"


@pytest.mark.parametrize(
    "odd_output",
    [{"images": None}, {"images": [{"subfolder": ""}]}, {"images": ["x"]}, "garbage"],
)
def test_malformed_sibling_output_does_not_hide_image(odd_output):
    _, sleep = _sleeps()
    history = {
        PROMPT_ID: {
            "outputs": {
                "8": {"images": [{"filename": "a.png", "subfolder": "", "type": "output"}]},
                "9": odd_output,
            }
        }
    }
    fake = FakeComfy(history=[httpx.Response(200, json=history)])

    url = _run(fake, base_url="http://x", sleep=sleep, max_attempts=5)

    assert url == "http://x/view?filename=a.png&subfolder=&type=output"
    assert len(fake.history_requests) == 1


def test_image_without_filename_falls_through_to_next_output():
    _, sleep = _sleeps()
    history = {
        PROMPT_ID: {
            "outputs": {
                "3": {"images": [{"subfolder": "", "type": "temp"}]},
                "8": {"images": [{"filename": "a.png", "subfolder": "", "type": "output"}]},
            }
        }
    }
    fake = FakeComfy(history=[httpx.Response(200, json=history)])

    assert _run(fake, base_url="http://x", sleep=sleep) == "http://x/view?filename=a.png&subfolder=&type=output"


def test_missing_base_url_setting_is_configuration_error(monkeypatch):
    monkeypatch.setattr(settings, "COMFYUI_URL", "")
    fake = FakeComfy()

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as http:
            return await ComfyClient(http=http).generate(GenerationParams(prompt="a cat"))

    with pytest.raises(ConfigurationError):
        asyncio.run(go())
    assert fake.requests == []


def test_generate_image_ignores_half_configured_credentials(monkeypatch):
    _, sleep = _sleeps()
    fake = FakeComfy(history=[httpx.Response(200, json=IMAGE_HISTORY)])
    monkeypatch.setattr(settings, "BAIDU_TRANSLATE_APP_ID", "id")
    monkeypatch.setattr(settings, "BAIDU_TRANSLATE_APP_KEY", None)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as http:
            return await generate_image(
                GenerationParams(prompt="a cat"), base_url="http://comfy", http=http, sleep=sleep
            )

    asyncio.run(go())

    workflow = json.loads(fake.requests[0].content)["prompt"]
    assert "24" not in workflow
    assert workflow["21"]["inputs"]["text"] == "a cat"



def test_timeout_after_attempt_budget():
    calls, sleep = _sleeps()
    fake = FakeComfy()

    with pytest.raises(GenerationTimeoutError) as exc_info:
        _run(fake, sleep=sleep, max_attempts=300)

    assert isinstance(exc_info.value, TimeoutError)
    assert exc_info.value.prompt_id == PROMPT_ID
    assert len(fake.history_requests) == 300
    assert len(calls) == 300


def test_generate_image_uses_settings_credentials(monkeypatch):
    _, sleep = _sleeps()
    fake = FakeComfy(history=[httpx.Response(200, json=IMAGE_HISTORY)])
    monkeypatch.setattr(settings, "BAIDU_TRANSLATE_APP_ID", "id")
    monkeypatch.setattr(settings, "BAIDU_TRANSLATE_APP_KEY", "key")

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as http:
            return await generate_image(
                GenerationParams(prompt="一只猫"), base_url="http://comfy", http=http, sleep=sleep
            )

    asyncio.run(go())

    workflow = json.loads(fake.requests[0].content)["prompt"]
    assert workflow["21"]["inputs"]["text"] == ["24", 0]
    assert workflow["24"]["inputs"]["text"] == "一只猫"
    assert workflow["24"]["inputs"]["baidu_appid"] == "id"
