"""
gemini_service.py
=================

Client for the hosted Gemini ``generateContent`` endpoint that turns an
unstructured roster (OCR'd allocation tables, informal lists, CSV exports)
into the structured dashboard payload.

The model is asked for a JSON response constrained by ``RESPONSE_SCHEMA``;
the decoded object is then normalized by
:func:`roster_agent.dashboard_from_payload`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import Settings, get_settings
from roster_agent import CATEGORIES, DashboardData, RosterParseError, dashboard_from_payload

logger = logging.getLogger(__name__)

PARSE_DATA_PROMPT = """
You are a senior construction data analyst.
Analyze the provided text, which is likely a workforce roster or allocation table (OCR data).
The data typically contains columns like "Title" (Location/Project), "Position" (Role), and "Quantity" (Count).
There might be sections for "ИТР" (Engineers/Technicians) and "Рабочие" (Workers).

Your task:
1. Extract the data into a structured JSON format.
2. If a row specifies a Quantity > 1 (e.g., "Electrician - 6"), generate 6 individual worker entries. Give them generic names like "Electrician 1", "Electrician 2", or if names are available, use them.
3. Classify each worker as 'ITR' (Management, Engineers, Foremen) or 'WORKER' (Manual labor) or 'MACHINERY' (if it's equipment like Excavator, Crane).
4. Map "Title" or "Титул" to 'location'.
5. Map "Position" or "Должность" to 'role'.
6. Standardize status to: "На смене" (default), "Больничный", "Отпуск", "Отсутствует".

Also, provide a brief executive summary (in Russian) of the workforce situation, identify any critical alerts (e.g., shortages, high number of ITR vs Workers), and give recommendations.
"""

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "workers": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "name": {"type": "STRING"},
                    "role": {"type": "STRING"},
                    "category": {"type": "STRING", "enum": list(CATEGORIES)},
                    "location": {"type": "STRING"},
                    "status": {"type": "STRING"},
                    "efficiency": {"type": "NUMBER", "description": "Estimated efficiency 0-100"},
                },
            },
        },
        "summary": {"type": "STRING"},
        "alerts": {"type": "ARRAY", "items": {"type": "STRING"}},
        "recommendations": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
}

RETRYABLE_STATUS = {408, 409, 425, 429}
RETRY_WAIT = wait_exponential(multiplier=1, min=1, max=8)


class ParsingServiceError(Exception):
    """Base error for failures while parsing a roster through the API."""


class MissingAPIKeyError(ParsingServiceError):
    pass


class EmptyResponseError(ParsingServiceError):
    pass


class ServiceHTTPError(ParsingServiceError):
    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"Gemini request failed ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail


class TransientServiceError(ServiceHTTPError):
    """A response worth retrying (rate limiting, overload, server errors)."""


def build_request(input_text: str) -> Dict[str, Any]:
    """Build the generateContent request body for ``input_text``."""
    return {
        "contents": [{"role": "user", "parts": [{"text": f"DATA TO PARSE:\n{input_text}\n\n{PARSE_DATA_PROMPT}"}]}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        },
    }


def extract_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict)).strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """Decode ``text`` as a JSON object.

    Falls back to the outermost ``{...}`` snippet when the model wraps the
    JSON in prose or code fences.
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ParsingServiceError("Response is not valid JSON")
        try:
            value = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ParsingServiceError(f"Response is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise ParsingServiceError("Response JSON is not an object")
    return value


def _post_generate(client: httpx.Client, settings: Settings, payload: Dict[str, Any]) -> Dict[str, Any]:
    headers = {"x-goog-api-key": settings.api_key or "", "Content-Type": "application/json"}
    logger.debug("POST %s (%d chars of input)", settings.generate_url, len(payload["contents"][0]["parts"][0]["text"]))
    response = client.post(settings.generate_url, headers=headers, json=payload)

    if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS:
        raise TransientServiceError(response.status_code, "temporary error")
    if response.status_code >= 400:
        raise ServiceHTTPError(response.status_code, response.text[:300])
    return response.json()


def _request_with_retry(client: httpx.Client, settings: Settings, payload: Dict[str, Any]) -> Dict[str, Any]:
    retrying = retry(
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, TransientServiceError)),
        wait=RETRY_WAIT,
        stop=stop_after_attempt(max(1, settings.llm_max_attempts)),
        reraise=True,
    )
    return retrying(_post_generate)(client, settings, payload)


def parse_and_analyze_data(
    input_text: str,
    settings: Optional[Settings] = None,
    client: Optional[httpx.Client] = None,
) -> DashboardData:
    """
    Send ``input_text`` to Gemini and return the normalized dashboard data.

    Parameters
    ----------
    input_text : str
        Raw roster text.
    settings : Settings, optional
        Defaults to the cached environment settings.
    client : httpx.Client, optional
        HTTP client to use; a short-lived one is created when omitted.

    Raises
    ------
    MissingAPIKeyError
        No API key is configured.  No request is made.
    EmptyResponseError
        The model returned no text.
    ParsingServiceError
        Any other failure (HTTP errors after retries, network errors,
        invalid JSON, a payload that is not a roster).
    """
    settings = settings or get_settings()
    if not settings.api_key:
        raise MissingAPIKeyError("API Key is missing")

    payload = build_request(input_text)
    try:
        if client is None:
            with httpx.Client(timeout=httpx.Timeout(settings.llm_timeout_seconds)) as owned:
                data = _request_with_retry(owned, settings, payload)
        else:
            data = _request_with_retry(client, settings, payload)

        text = extract_text(data)
        if not text:
            raise EmptyResponseError("No data returned from AI")
        result = dashboard_from_payload(parse_json_object(text))
    except ParsingServiceError:
        logger.exception("Gemini error")
        raise
    except (httpx.HTTPError, ValueError, TypeError, AttributeError) as exc:
        # ValueError covers RosterParseError and undecodable bodies; the others a body of the wrong shape.
        logger.exception("Gemini error")
        kind = "Roster payload rejected" if isinstance(exc, RosterParseError) else "Gemini request failed"
        raise ParsingServiceError(f"{kind}: {exc}") from exc

    logger.info("Parsed %d roster entries", len(result.workers))
    return result
