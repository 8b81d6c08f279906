from __future__ import annotations

import json

import httpx
import pytest
from tenacity import wait_none

import gemini_service
from config import Settings
from gemini_service import (
    EmptyResponseError,
    MissingAPIKeyError,
    ParsingServiceError,
    ServiceHTTPError,
    build_request,
    parse_and_analyze_data,
    parse_json_object,
)

ROSTER_TEXT = "Титул 25\tАрматурщик\t3\nОфис\tИнженер ПТО\t1\nПлощадка\tЭкскаватор\t1"

MODEL_PAYLOAD = {
    "workers": [
        {"id": "1", "name": "Арматурщик 1", "role": "Арматурщик", "category": "WORKER", "location": "Титул 25",
         "status": "На смене", "efficiency": 80},
        {"id": "2", "name": "Арматурщик 2", "role": "Арматурщик", "category": "WORKER", "location": "Титул 25",
         "status": "На смене", "efficiency": 80},
        {"id": "3", "name": "Арматурщик 3", "role": "Арматурщик", "category": "WORKER", "location": "Титул 25",
         "status": "На смене", "efficiency": 80},
        {"id": "4", "name": "Инженер ПТО 1", "role": "Инженер ПТО", "category": "ITR", "location": "Офис",
         "status": "На смене", "efficiency": 90},
        {"id": "5", "name": "Экскаватор 1", "role": "Экскаватор", "category": "MACHINERY", "location": "Площадка",
         "status": "На смене"},
    ],
    "summary": "Штат укомплектован.",
    "alerts": ["Мало ИТР на площадке"],
    "recommendations": ["Назначить прораба на Титул 25"],
}


def _settings(**overrides) -> Settings:
    values = {"api_key": "test-key", "gemini_model": "gemini-2.5-flash", "llm_max_attempts": 3}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch) -> None:
    monkeypatch.setattr(gemini_service, "RETRY_WAIT", wait_none())


def test_build_request_embeds_text_prompt_and_schema() -> None:
    body = build_request(ROSTER_TEXT)
    text = body["contents"][0]["parts"][0]["text"]

    assert text.startswith(f"DATA TO PARSE:\n{ROSTER_TEXT}\n\n")
    assert "senior construction data analyst" in text
    config = body["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    worker_props = config["responseSchema"]["properties"]["workers"]["items"]["properties"]
    assert worker_props["category"]["enum"] == ["ITR", "WORKER", "MACHINERY"]


def test_missing_api_key_fails_before_any_request() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=_gemini_body("{}"))

    with pytest.raises(MissingAPIKeyError, match="API Key is missing"):
        parse_and_analyze_data(ROSTER_TEXT, settings=_settings(api_key=None), client=_client(handler))
    assert calls == []


def test_parses_roster_from_model_response() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_gemini_body(json.dumps(MODEL_PAYLOAD, ensure_ascii=False)))

    data = parse_and_analyze_data(ROSTER_TEXT, settings=_settings(), client=_client(handler))

    assert seen["url"] == "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"
    assert seen["key"] == "test-key"
    assert ROSTER_TEXT in seen["body"]["contents"][0]["parts"][0]["text"]
    assert len(data.workers) == 5
    assert [w.category for w in data.workers].count("MACHINERY") == 1
    assert data.workers[4].efficiency is None
    assert data.alerts == ["Мало ИТР на площадке"]


def test_empty_model_text_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(EmptyResponseError, match="No data returned from AI"):
        parse_and_analyze_data(ROSTER_TEXT, settings=_settings(), client=_client(handler))


def test_retries_transient_errors_then_succeeds() -> None:
    statuses = [503, 429]

    def handler(request: httpx.Request) -> httpx.Response:
        if statuses:
            return httpx.Response(statuses.pop(0), text="busy")
        return httpx.Response(200, json=_gemini_body(json.dumps(MODEL_PAYLOAD)))

    data = parse_and_analyze_data(ROSTER_TEXT, settings=_settings(), client=_client(handler))
    assert statuses == []
    assert len(data.workers) == 5


def test_gives_up_after_max_attempts() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, text="internal")

    with pytest.raises(ServiceHTTPError) as excinfo:
        parse_and_analyze_data(ROSTER_TEXT, settings=_settings(llm_max_attempts=2), client=_client(handler))
    assert excinfo.value.status_code == 500
    assert len(calls) == 2


def test_client_errors_are_not_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, text="API key not valid")

    with pytest.raises(ServiceHTTPError, match="API key not valid"):
        parse_and_analyze_data(ROSTER_TEXT, settings=_settings(), client=_client(handler))
    assert len(calls) == 1


def test_network_errors_surface_as_parsing_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ParsingServiceError):
        parse_and_analyze_data(ROSTER_TEXT, settings=_settings(llm_max_attempts=1), client=_client(handler))


def test_non_roster_payload_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_gemini_body('{"workers": "none"}'))

    with pytest.raises(ParsingServiceError, match="Roster payload rejected"):
        parse_and_analyze_data(ROSTER_TEXT, settings=_settings(), client=_client(handler))


def test_parse_json_object_accepts_fenced_json() -> None:
    assert parse_json_object('```json\n{"summary": "ok"}\n```') == {"summary": "ok"}
    with pytest.raises(ParsingServiceError):
        parse_json_object("no json here")
    with pytest.raises(ParsingServiceError):
        parse_json_object("[1, 2]")


def test_scalar_alerts_from_model_do_not_break_parsing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_gemini_body('{"workers": [], "alerts": 5}'))

    data = parse_and_analyze_data(ROSTER_TEXT, settings=_settings(), client=_client(handler))
    assert data.alerts == ["5"]
    assert data.workers == []


def test_malformed_response_body_is_a_parsing_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": ["not an object"]})

    with pytest.raises(ParsingServiceError):
        parse_and_analyze_data(ROSTER_TEXT, settings=_settings(), client=_client(handler))
