import pytest
from celery_app.celery import celery_app
from flowcore.config import settings
from flowcore.integrations import mailer as mailer_module
from flowcore.integrations.http_client import HttpClient
from flowcore.integrations.llm_provider import LLMConfigurationError, LLMProvider
from flowcore.integrations.mailer import Mailer, SmtpNotConfiguredError

@pytest.fixture(autouse=True)
def reset_llm_clients(monkeypatch):
    monkeypatch.setattr(LLMProvider, "_clients", {})

@pytest.mark.asyncio
async def test_unknown_llm_provider_is_rejected():
    with pytest.raises(LLMConfigurationError, match="Unsupported LLM provider: mistral"):
        await LLMProvider.chat_completion("mistral", "any", "hi")

@pytest.mark.asyncio
async def test_missing_api_key_fails_before_any_request(monkeypatch):
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", None)
    # "claude" is an alias of anthropic
    with pytest.raises(LLMConfigurationError, match="ANTHROPIC_API_KEY"):
        await LLMProvider.chat_completion("claude", "claude-3-5-haiku-latest", "hi")

@pytest.mark.asyncio
async def test_shared_http_client_lifecycle():
    first = await HttpClient.get_client()
    assert await HttpClient.get_client() is first
    assert first.headers["User-Agent"].startswith(settings.PROJECT_NAME)

    await HttpClient.close_client()
    assert first.is_closed
    second = await HttpClient.get_client()
    assert second is not first
    await HttpClient.close_client()
    await HttpClient.close_client()

@pytest.mark.asyncio
async def test_mailer_requires_a_host(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", None)
    with pytest.raises(SmtpNotConfiguredError):
        await Mailer.send(["a@example.com"], "Hi", "Body")

@pytest.mark.asyncio
async def test_mailer_builds_message(monkeypatch):
    sent = []

    async def fake_send(message, **kwargs):
        sent.append((message, kwargs))

    monkeypatch.setattr(mailer_module.aiosmtplib, "send", fake_send)
    result = await Mailer.send(
        ["a@example.com", "b@example.com"], "Report", "All good",
        host="smtp.example.com", port=465, username="bot@example.com", password="secret",
    )

    message, kwargs = sent[0]
    assert message["To"] == "a@example.com, b@example.com"
    assert message["From"] == "bot@example.com"
    assert message["Message-ID"] == result["message_id"]
    assert kwargs["use_tls"] is True
    assert kwargs["start_tls"] is False
    assert result["recipients"] == ["a@example.com", "b@example.com"]

def test_workflow_tasks_are_routed_to_their_queue():
    assert celery_app.conf.task_routes["execute_workflow_task"] == {"queue": settings.CELERY_WORKFLOW_QUEUE}
    assert celery_app.conf.worker_prefetch_multiplier == 1
