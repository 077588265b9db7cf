"""Tests for the Gemini HTTP adapter, using httpx's mock transport."""

import base64
import json
from decimal import Decimal

import httpx
import pytest

from rental_tax_ledger.clients.gemini import GeminiClient, build_classification_prompt
from rental_tax_ledger.exceptions import CollaboratorError


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class Recorder:
    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


def make_client(recorder: Recorder) -> GeminiClient:
    return GeminiClient(
        api_key="test-key",
        model="gemini-test",
        base_url="https://gemini.example/v1beta/",
        client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
    )


class TestGenerate:
    async def test_posts_to_generate_content(self):
        recorder = Recorder(httpx.Response(200, json=gemini_reply('{"category": "X"}')))
        client = make_client(recorder)

        text = await client.generate([{"text": "hi"}])

        request = recorder.requests[0]
        assert text == '{"category": "X"}'
        assert request.method == "POST"
        assert request.url.path == "/v1beta/models/gemini-test:generateContent"
        assert request.url.params["key"] == "test-key"
        assert recorder.body == {"contents": [{"parts": [{"text": "hi"}]}]}
        await client.aclose()

    async def test_http_error_status_raises(self):
        client = make_client(Recorder(httpx.Response(429, text="quota")))

        with pytest.raises(CollaboratorError) as excinfo:
            await client.generate([{"text": "hi"}])

        assert excinfo.value.context["status_code"] == 429

    async def test_transport_failure_raises(self):
        client = make_client(Recorder(httpx.ConnectError("refused")))

        with pytest.raises(CollaboratorError):
            await client.generate([{"text": "hi"}])

    @pytest.mark.parametrize(
        "payload",
        [{}, {"candidates": []}, {"candidates": [{"content": {"parts": [{"text": 5}]}}]}],
    )
    async def test_reply_without_text_raises(self, payload):
        client = make_client(Recorder(httpx.Response(200, json=payload)))

        with pytest.raises(CollaboratorError):
            await client.generate([{"text": "hi"}])

    async def test_non_json_body_raises(self):
        client = make_client(Recorder(httpx.Response(200, text="<html>")))

        with pytest.raises(CollaboratorError):
            await client.generate([{"text": "hi"}])


class TestCollaboratorCalls:
    async def test_classify_sends_prompt_with_properties(self, properties):
        recorder = Recorder(httpx.Response(200, json=gemini_reply("{}")))
        client = make_client(recorder)

        await client.classify("RENT SMITH", Decimal("950"), properties)

        prompt = recorder.body["contents"][0]["parts"][0]["text"]
        assert '"RENT SMITH"' in prompt
        assert "credit (income)" in prompt
        assert "ID: prop-acacia" in prompt
        assert "PERSONAL_000" in prompt

    async def test_extract_invoice_inlines_the_document(self):
        recorder = Recorder(httpx.Response(200, json=gemini_reply("{}")))
        client = make_client(recorder)

        await client.extract_invoice(b"\x89PNG", "image/png")

        parts = recorder.body["contents"][0]["parts"]
        assert parts[1]["inline_data"] == {
            "mime_type": "image/png",
            "data": base64.b64encode(b"\x89PNG").decode("ascii"),
        }

    async def test_text_statement_goes_into_the_prompt(self):
        recorder = Recorder(httpx.Response(200, json=gemini_reply("{}")))
        client = make_client(recorder)

        await client.extract_statement(b"2025-05-01,RENT,950", "text/csv")

        parts = recorder.body["contents"][0]["parts"]
        assert len(parts) == 1
        assert "2025-05-01,RENT,950" in parts[0]["text"]

    async def test_pdf_statement_is_inlined(self):
        recorder = Recorder(httpx.Response(200, json=gemini_reply("{}")))
        client = make_client(recorder)

        await client.extract_statement(b"%PDF-1.7", "application/pdf")

        parts = recorder.body["contents"][0]["parts"]
        assert parts[1]["inline_data"]["mime_type"] == "application/pdf"


class TestClassificationPrompt:
    def test_expense_without_properties(self):
        prompt = build_classification_prompt("BRITISH GAS", Decimal("-60"), [])

        assert "debit (expense)" in prompt
        assert "No properties defined yet." in prompt
        assert "MORT_INT_701: Mortgage Interest (Sec 24)" in prompt
