import pytest
import requests

from analyzer import (
    FALLBACK_RESULT,
    SYSTEM_PROMPT,
    USER_TEMPLATE,
    AnalysisRequester,
    ChatCompletionClient,
    parse_reply,
)
from conftest import GOOD_TEXT, FakeChatClient, make_reply
from errors import (
    InsufficientContent,
    UpstreamGenericFailure,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
)
from schemas import risk_level_for_score


@pytest.mark.parametrize(
    "score, band",
    [(100, "low"), (80, "low"), (79, "medium"), (50, "medium"), (49, "high"), (0, "high")],
)
def test_score_bands(score, band):
    assert risk_level_for_score(score) == band


@pytest.mark.parametrize("text", ["", "too short", " " * 80 + "x" * 49 + " " * 80])
def test_short_text_is_rejected_without_calling_out(text):
    client = FakeChatClient()
    with pytest.raises(InsufficientContent):
        AnalysisRequester(client).analyze(text, "cv.txt")
    assert client.calls == []


def test_request_text_is_capped_at_30000_chars():
    client = FakeChatClient()
    text = "a" * 40_000
    AnalysisRequester(client).analyze(text, "cv.txt")

    system_prompt, user_prompt = client.calls[0]
    assert system_prompt == SYSTEM_PROMPT
    assert user_prompt == USER_TEMPLATE.format(resume="a" * 30_000)


def test_valid_reply_is_parsed():
    flags = [{"category": "Timeline", "severity": "Medium", "description": "Overlapping jobs"}]
    client = FakeChatClient([make_reply(score=62, flags=flags, fenced=True)])
    result = AnalysisRequester(client).analyze(GOOD_TEXT, "cv.txt")

    assert result.credibility_score == 62
    assert result.risk_level == "medium"
    assert result.flags[0].category == "Timeline"
    assert result.flags[0].severity == "medium"
    assert result.detailed_analysis.skills_alignment == "Aligned"


def test_band_is_rederived_from_score():
    result = parse_reply('{"credibility_score": 91, "risk_level": "high"}')
    assert result.risk_level == "low"


def test_score_is_clamped_and_rounded():
    assert parse_reply('{"credibility_score": 140}').credibility_score == 100
    assert parse_reply('{"credibility_score": 72.6}').credibility_score == 73


@pytest.mark.parametrize(
    "raw",
    [
        "I cannot analyze this document.",
        "{not json at all}",
        '{"summary": "no score given"}',
        '{"credibility_score": "high"}',
        '{"credibility_score": 1e999}',
        '{"credibility_score": Infinity}',
        '{"credibility_score": NaN}',
        "",
        None,
    ],
)
def test_unparseable_reply_yields_fixed_fallback(raw):
    result = parse_reply(raw)
    assert result.model_dump() == FALLBACK_RESULT
    assert result.credibility_score == 50
    assert result.risk_level == "medium"
    assert len(result.flags) == 1
    assert result.flags[0].severity == "low"


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def test_client_returns_message_content():
    session = FakeSession(FakeResponse(200, {"choices": [{"message": {"content": "hello"}}]}))
    client = ChatCompletionClient(url="http://ai.test", api_key="k", model="m", session=session)

    assert client.complete("sys", "user") == "hello"
    sent = session.posts[0]
    assert sent["headers"]["Authorization"] == "Bearer k"
    assert sent["json"]["model"] == "m"
    assert sent["json"]["messages"][0] == {"role": "system", "content": "sys"}


@pytest.mark.parametrize(
    "status_code, error",
    [(429, UpstreamRateLimited), (402, UpstreamQuotaExhausted), (500, UpstreamGenericFailure)],
)
def test_client_maps_error_statuses(status_code, error):
    session = FakeSession(FakeResponse(status_code, text="secret upstream details"))
    client = ChatCompletionClient(api_key="k", session=session)

    with pytest.raises(error) as exc_info:
        client.complete("sys", "user")
    assert "secret upstream details" not in exc_info.value.message


def test_client_without_key_fails_before_sending():
    session = FakeSession()
    with pytest.raises(UpstreamGenericFailure):
        ChatCompletionClient(api_key=None, session=session).complete("sys", "user")
    assert session.posts == []


def test_client_network_error_is_generic_failure():
    session = FakeSession(error=requests.ConnectionError("boom"))
    with pytest.raises(UpstreamGenericFailure):
        ChatCompletionClient(api_key="k", session=session).complete("sys", "user")


def test_client_unexpected_shape_is_generic_failure():
    session = FakeSession(FakeResponse(200, {"choices": []}))
    with pytest.raises(UpstreamGenericFailure):
        ChatCompletionClient(api_key="k", session=session).complete("sys", "user")
