import json
from unittest.mock import MagicMock

import httpx
import openai
import pytest
import requests
from botocore.exceptions import ClientError
from tenacity import wait_none

from jobs.ai import TitleImprover, TitleImproverConfig, build_prompt, parse_suggestions
from jobs.errors import ConfigurationError, ResponseShapeError, UpstreamError
from jobs.mail import ResendConfig, ResendNotifier, SesConfig, SesNotifier, build_notifier
from jobs.youtube import YouTubeClient, YouTubeConfig


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr("jobs.retry.DEFAULT_WAIT", wait_none())


def make_response(status=200, body=None, reason="OK"):
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason
    resp.url = "https://example.test/"
    resp._content = json.dumps(body if body is not None else {}).encode()
    return resp


def youtube_client(*responses, max_attempts=3):
    session = MagicMock()
    session.get.side_effect = list(responses)
    config = YouTubeConfig(api_key="key", api_url="https://yt.test/v3", timeout=5, max_attempts=max_attempts)
    return YouTubeClient(config, session=session), session


# -- YouTube -------------------------------------------------------------------

def test_search_channel_returns_first_item():
    client, session = youtube_client(make_response(body={"items": [
        {"id": {"channelId": "UC123"}, "snippet": {"title": "Example"}},
        {"id": {"channelId": "UC999"}, "snippet": {"title": "Other"}},
    ]}))

    match = client.search_channel("exampleChannel")

    assert match.channel_id == "UC123"
    assert match.channel_name == "Example"
    url = session.get.call_args.args[0]
    params = session.get.call_args.kwargs["params"]
    assert url == "https://yt.test/v3/search"
    assert params == {"type": "channel", "q": "exampleChannel", "part": "snippet", "key": "key"}
    assert session.get.call_args.kwargs["timeout"] == 5


def test_search_channel_without_items_returns_none():
    client, _ = youtube_client(make_response(body={"items": []}))
    assert client.search_channel("nobody") is None


def test_list_recent_maps_items_to_videos():
    client, session = youtube_client(make_response(body={"items": [
        {
            "id": {"videoId": "abc"},
            "snippet": {
                "title": "First",
                "publishedAt": "2024-02-01T00:00:00Z",
                "thumbnails": {"default": {"url": "https://i.ytimg.com/vi/abc/default.jpg"}},
            },
        },
        {"id": {"videoId": "def"}, "snippet": {"title": "Second", "publishedAt": "2024-01-01T00:00:00Z"}},
    ]}))

    videos = client.list_recent("UC123", limit=5)

    params = session.get.call_args.kwargs["params"]
    assert params["channelId"] == "UC123"
    assert params["order"] == "date"
    assert params["type"] == "video"
    assert params["maxResults"] == 5
    assert [v.video_id for v in videos] == ["abc", "def"]
    assert videos[0].url == "https://www.youtube.com/watch?v=abc"
    assert videos[0].thumbnail_url == "https://i.ytimg.com/vi/abc/default.jpg"
    assert videos[1].thumbnail_url is None


def test_transient_failures_are_retried():
    client, session = youtube_client(
        requests.ConnectionError("reset"),
        make_response(503, {"error": "busy"}, reason="Service Unavailable"),
        make_response(body={"items": []}),
    )
    assert client.search_channel("x") is None
    assert session.get.call_count == 3


def test_retries_are_bounded():
    client, session = youtube_client(
        requests.Timeout("slow"), requests.Timeout("slow"), requests.Timeout("slow"),
    )
    with pytest.raises(UpstreamError) as exc_info:
        client.search_channel("x")
    assert session.get.call_count == 3
    assert exc_info.value.service == "YouTube search"


def test_client_errors_are_not_retried():
    client, session = youtube_client(
        make_response(403, {"error": {"message": "quota"}}, reason="Forbidden"),
    )
    with pytest.raises(UpstreamError, match="403 Forbidden"):
        client.search_channel("x")
    assert session.get.call_count == 1


def test_youtube_config_requires_api_key(settings):
    settings.YOUTUBE_API_KEY = ""
    with pytest.raises(ConfigurationError, match="YOUTUBE_API_KEY is not set"):
        YouTubeConfig.from_settings()


# -- title model ---------------------------------------------------------------

def completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def improver(*results, max_attempts=3):
    client = MagicMock()
    client.chat.completions.create.side_effect = list(results)
    config = TitleImproverConfig(
        api_key="k", base_url="https://llm.test", model="gemini-2.0-flash", timeout=5, max_attempts=max_attempts,
    )
    return TitleImprover(config, client=client), client


def test_prompt_numbers_titles_and_names_channel():
    prompt = build_prompt(["A", "B"], "Example")
    assert '1. "A"' in prompt
    assert '2. "B"' in prompt
    assert '"Example"' in prompt
    assert "2 video titles" in prompt


def test_improve_parses_json_answer():
    body = json.dumps({"titles": [
        {"original": "A", "improved": "Better A", "rationale": "r1"},
        {"original": "B", "improved": "Better B", "rational": "r2"},
    ]})
    titles, client = improver(completion(body))

    suggestions = titles.improve(["A", "B"], "Example")

    assert [s.improved for s in suggestions] == ["Better A", "Better B"]
    assert [s.rationale for s in suggestions] == ["r1", "r2"]
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gemini-2.0-flash"
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["temperature"] == 0.7


@pytest.mark.parametrize("content,message", [
    (None, "No titles returned"),
    ("not json", "not valid JSON"),
    (json.dumps({"items": []}), "missing titles array"),
    (json.dumps({"titles": ["x"]}), "entry 1 is not an object"),
    (json.dumps({"titles": [{"original": "A"}]}), "lacks improved/rationale"),
])
def test_malformed_answers_are_shape_errors(content, message):
    with pytest.raises(ResponseShapeError, match=message):
        parse_suggestions(content)


def test_model_connection_errors_are_retried():
    request = httpx.Request("POST", "https://llm.test/chat/completions")
    body = json.dumps({"titles": [{"original": "A", "improved": "B", "rationale": "r"}]})
    titles, client = improver(openai.APIConnectionError(request=request), completion(body))

    assert len(titles.improve(["A"], "Example")) == 1
    assert client.chat.completions.create.call_count == 2


def test_model_errors_become_upstream_errors():
    titles, client = improver(openai.OpenAIError("invalid key"))
    with pytest.raises(UpstreamError, match="Title model request failed: invalid key"):
        titles.improve(["A"], "Example")
    assert client.chat.completions.create.call_count == 1


def test_title_config_requires_api_key(settings):
    settings.GEMINI_API_KEY = None
    with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
        TitleImproverConfig.from_settings()


# -- email delivery -----------------------------------------------------------

def resend(*responses):
    session = MagicMock()
    session.post.side_effect = list(responses)
    config = ResendConfig(
        api_key="re_key", sender="doctor@example.com", api_url="https://resend.test/emails", timeout=5, max_attempts=2,
    )
    return ResendNotifier(config, session=session), session


def test_resend_posts_message_and_returns_id():
    notifier, session = resend(make_response(body={"id": "msg-1"}))

    assert notifier.send_email("user@example.com", "Subject", "<p>hi</p>") == "msg-1"

    kwargs = session.post.call_args.kwargs
    assert session.post.call_args.args[0] == "https://resend.test/emails"
    assert kwargs["headers"] == {"Authorization": "Bearer re_key"}
    assert kwargs["json"] == {
        "from": "doctor@example.com <doctor@example.com>",
        "to": ["user@example.com"],
        "subject": "Subject",
        "html": "<p>hi</p>",
    }


def test_resend_rejection_includes_status_and_body():
    notifier, _ = resend(make_response(422, {"message": "invalid to"}, reason="Unprocessable Entity"))
    with pytest.raises(UpstreamError) as exc_info:
        notifier.send_email("bad", "S", "<p/>")
    assert "422 Unprocessable Entity" in str(exc_info.value)
    assert "invalid to" in str(exc_info.value)


def test_resend_answer_without_id_is_shape_error():
    notifier, _ = resend(make_response(body={}))
    with pytest.raises(ResponseShapeError):
        notifier.send_email("user@example.com", "S", "<p/>")


def ses_config():
    return SesConfig(
        sender="doctor@example.com", region="us-east-1", access_key=None, secret_key=None,
        endpoint_url=None, timeout=5, max_attempts=2,
    )


def test_ses_sends_html_message():
    client = MagicMock()
    client.send_email.return_value = {"MessageId": "ses-1"}

    assert SesNotifier(ses_config(), client=client).send_email("user@example.com", "S", "<p>x</p>") == "ses-1"

    kwargs = client.send_email.call_args.kwargs
    assert kwargs["Source"] == "doctor@example.com"
    assert kwargs["Destination"] == {"ToAddresses": ["user@example.com"]}
    assert kwargs["Message"]["Body"]["Html"]["Data"] == "<p>x</p>"


def test_ses_client_errors_become_upstream_errors():
    client = MagicMock()
    client.send_email.side_effect = ClientError(
        {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified."}}, "SendEmail",
    )
    with pytest.raises(UpstreamError, match="Email delivery request failed"):
        SesNotifier(ses_config(), client=client).send_email("user@example.com", "S", "<p/>")


def test_build_notifier_selects_backend(settings):
    settings.EMAIL_FROM = "doctor@example.com"
    settings.RESEND_API_KEY = "re_key"
    settings.EMAIL_BACKEND_KIND = "resend"
    assert isinstance(build_notifier(), ResendNotifier)

    settings.EMAIL_BACKEND_KIND = "ses"
    assert isinstance(build_notifier(), SesNotifier)


def test_build_notifier_validates_settings(settings):
    settings.EMAIL_BACKEND_KIND = "resend"
    settings.RESEND_API_KEY = None
    with pytest.raises(ConfigurationError, match="RESEND_API_KEY is not set"):
        build_notifier()

    settings.RESEND_API_KEY = "re_key"
    settings.EMAIL_FROM = ""
    with pytest.raises(ConfigurationError, match="EMAIL_FROM is not set"):
        build_notifier()

    settings.EMAIL_BACKEND_KIND = "carrier-pigeon"
    with pytest.raises(ConfigurationError):
        build_notifier()
