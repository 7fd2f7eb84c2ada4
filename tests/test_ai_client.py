import json

import pytest
import requests

from churchdir.core.config import ConfigError, Settings
from churchdir.vendors import ai_client


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class DummySession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


FULL_PAYLOAD = {
    "description": "  Grace Church is a welcoming Baptist congregation in Austin, Texas.  ",
    "whatToExpect": "Dress is casual.\nServices last about an hour.",
    "denomination": "Southern Baptist",
    "worshipStyle": ["contemporary", "Jazz"],
    "serviceTimes": [
        {"day": "Sunday", "time": "9:00 AM", "name": "Early Service"},
        {"day": "Sunday", "time": ""},
        "Wednesday 7pm",
    ],
    "hasKidsMinistry": True,
    "hasYouthGroup": "yes",
    "hasSmallGroups": None,
}


def test_build_enrichment_prompt_includes_context():
    context = ai_client.ChurchContext(
        name="Grace Church",
        city="Austin",
        state="Texas",
        denomination="Baptist",
        website="https://grace.example.org",
        website_content="x" * 20000,
    )

    prompt = ai_client.build_enrichment_prompt(context)

    assert "Church: Grace Church" in prompt
    assert "Location: Austin, Texas" in prompt
    assert "Denomination: Baptist" in prompt
    assert "x" * ai_client.MAX_PROMPT_WEBSITE_CHARS in prompt
    assert "x" * (ai_client.MAX_PROMPT_WEBSITE_CHARS + 1) not in prompt
    assert '"whatToExpect"' in prompt


def test_build_enrichment_prompt_without_website():
    prompt = ai_client.build_enrichment_prompt(ai_client.ChurchContext(name="Grace Church", city="Austin", state="Texas"))
    assert "No website content available." in prompt
    assert "Denomination:" not in prompt


def test_parse_enrichment_coerces_fields():
    text = "Sure! Here you go:\n" + json.dumps(FULL_PAYLOAD) + "\nHope that helps."

    result = ai_client.parse_enrichment(text)

    assert result.description == "Grace Church is a welcoming Baptist congregation in Austin, Texas."
    assert result.what_to_expect.startswith("Dress is casual.")
    assert result.denomination == "Southern Baptist"
    assert result.worship_style == ["Contemporary"]
    assert [entry.to_dict() for entry in result.service_times] == [
        {"day": "Sunday", "time": "9:00 AM", "name": "Early Service"}
    ]
    assert result.has_kids_ministry is True
    assert result.has_youth_group is None
    assert result.has_small_groups is None
    assert not result.is_empty


def test_parse_enrichment_empty_texts_are_empty_result():
    result = ai_client.parse_enrichment('{"description": "", "whatToExpect": null}')
    assert result.description == ""
    assert result.what_to_expect == ""
    assert result.is_empty


def test_parse_enrichment_distinguishes_missing_and_malformed_json():
    with pytest.raises(ai_client.NoJsonFoundError):
        ai_client.parse_enrichment("I could not find anything about this church.")
    with pytest.raises(ai_client.MalformedEnrichmentError):
        ai_client.parse_enrichment("{description: unquoted}")
    with pytest.raises(ai_client.MalformedEnrichmentError):
        ai_client.parse_enrichment('{"description": ["a", "list"], "whatToExpect": "ok"}')


def test_anthropic_client_posts_messages_request():
    session = DummySession(DummyResponse(payload={"content": [{"type": "text", "text": json.dumps(FULL_PAYLOAD)}]}))
    client = ai_client.AnthropicClient("anthropic-key", session=session)

    result = client.generate_combined_enrichment(ai_client.ChurchContext(name="Grace Church", city="Austin", state="Texas"))

    call = session.calls[0]
    assert call["url"] == ai_client.ANTHROPIC_URL
    assert call["headers"]["x-api-key"] == "anthropic-key"
    assert call["headers"]["anthropic-version"] == ai_client.ANTHROPIC_VERSION
    assert call["json"]["model"] == ai_client.DEFAULT_ANTHROPIC_MODEL
    assert call["json"]["max_tokens"] == ai_client.MAX_TOKENS
    assert call["timeout"] == ai_client.REQUEST_TIMEOUT
    assert result.denomination == "Southern Baptist"


def test_openai_client_requests_json_object():
    session = DummySession(DummyResponse(payload={"choices": [{"message": {"content": json.dumps(FULL_PAYLOAD)}}]}))
    client = ai_client.OpenAIClient("openai-key", session=session)

    text = client.complete("prompt")

    call = session.calls[0]
    assert call["url"] == ai_client.OPENAI_URL
    assert call["headers"]["Authorization"] == "Bearer openai-key"
    assert call["json"]["response_format"] == {"type": "json_object"}
    assert json.loads(text)["denomination"] == "Southern Baptist"


def test_client_raises_on_http_error():
    session = DummySession(DummyResponse(status_code=529, text="overloaded " * 50))
    client = ai_client.AnthropicClient("anthropic-key", session=session)

    with pytest.raises(ai_client.AIClientError) as excinfo:
        client.complete("prompt")

    assert excinfo.value.status_code == 529
    assert len(excinfo.value.body) == 200


def test_client_wraps_network_errors():
    session = DummySession(error=requests.Timeout("slow"))
    client = ai_client.OpenAIClient("openai-key", session=session)

    with pytest.raises(ai_client.AIClientError):
        client.complete("prompt")


def test_create_ai_client_prefers_anthropic():
    both = Settings(database_url="", anthropic_api_key="a", openai_api_key="o")
    openai_only = Settings(database_url="", openai_api_key="o", openai_model="gpt-test")

    assert isinstance(ai_client.create_ai_client(both), ai_client.AnthropicClient)
    client = ai_client.create_ai_client(openai_only)
    assert isinstance(client, ai_client.OpenAIClient)
    assert client.model == "gpt-test"
    with pytest.raises(ConfigError):
        ai_client.create_ai_client(Settings(database_url=""))
