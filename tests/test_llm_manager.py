import base64

import pytest
import requests

from models.llm_manager import LLMManager, MissingCredentialsError


class _Reply:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


@pytest.fixture
def captured(monkeypatch):
    calls = []

    def fake_post(url, **kwargs):
        calls.append({"url": url, **kwargs})
        return _Reply({
            "candidates": [{"content": {"parts": [{"text": " {\"ok\": true} "}]},
                            "finishReason": "STOP"}],
            "usageMetadata": {"totalTokenCount": 12},
        })

    monkeypatch.setattr(requests, "post", fake_post)
    return calls


def test_missing_key_raises_before_request(captured):
    llm = LLMManager(provider="gemini", api_key="")
    assert not llm.has_credentials
    with pytest.raises(MissingCredentialsError):
        llm.generate("hello")
    assert captured == []


def test_gemini_payload_puts_images_first(captured):
    llm = LLMManager(provider="gemini", api_key="k", model="m", base_url="http://api")
    response = llm.generate("describe", images=[b"\x89PNG", "YWJj"], temperature=0.2,
                            max_tokens=100, system="be brief")

    assert response.success
    assert response.text == '{"ok": true}'
    assert response.metadata["finish_reason"] == "STOP"

    (call,) = captured
    assert call["url"] == "http://api/models/m:generateContent"
    assert call["params"] == {"key": "k"}
    parts = call["json"]["contents"][0]["parts"]
    assert parts[0]["inline_data"]["data"] == base64.b64encode(b"\x89PNG").decode()
    assert parts[1]["inline_data"]["data"] == "YWJj"
    assert parts[2] == {"text": "describe"}
    assert call["json"]["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 100}
    assert call["json"]["systemInstruction"]["parts"][0]["text"] == "be brief"


def test_http_error_becomes_failed_response(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda url, **kw: _Reply({}, status=500))
    response = LLMManager(provider="gemini", api_key="k").generate("x")
    assert not response.success
    assert "500" in response.error


def test_ollama_needs_no_key(monkeypatch):
    seen = {}

    def fake_post(url, **kwargs):
        seen.update(url=url, **kwargs)
        return _Reply({"response": "hi", "eval_count": 3})

    monkeypatch.setattr(requests, "post", fake_post)
    llm = LLMManager(provider="ollama", api_key="", base_url="http://local")
    response = llm.generate("ping", images=[b"img"], max_tokens=50)

    assert llm.has_credentials
    assert response.text == "hi"
    assert seen["url"] == "http://local/api/generate"
    assert seen["json"]["options"]["num_predict"] == 50
    assert seen["json"]["images"] == [base64.b64encode(b"img").decode()]
