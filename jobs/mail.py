"""
Email delivery backends.

``build_notifier`` picks the backend named by ``EMAIL_BACKEND_KIND``:
``resend`` posts to the Resend HTTP API, ``ses`` goes through Amazon SES.
Both return the provider's delivery id.
"""

from dataclasses import dataclass
from typing import Protocol

import boto3
import requests
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import ConfigurationError, ResponseShapeError, UpstreamError
from .retry import call_with_retry


class Notifier(Protocol):
    def send_email(self, to: str, subject: str, html: str) -> str:
        ...


@dataclass(frozen=True)
class ResendConfig:
    api_key: str
    sender: str
    api_url: str
    timeout: float
    max_attempts: int

    @classmethod
    def from_settings(cls) -> "ResendConfig":
        if not settings.RESEND_API_KEY:
            raise ConfigurationError("RESEND_API_KEY")
        if not settings.EMAIL_FROM:
            raise ConfigurationError("EMAIL_FROM")
        return cls(
            api_key=settings.RESEND_API_KEY,
            sender=settings.EMAIL_FROM,
            api_url=settings.RESEND_API_URL,
            timeout=settings.ADAPTER_TIMEOUT_SECONDS,
            max_attempts=settings.ADAPTER_MAX_ATTEMPTS,
        )


class ResendNotifier:
    def __init__(self, config: ResendConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()

    def send_email(self, to: str, subject: str, html: str) -> str:
        def _request():
            resp = self.session.post(
                self.config.api_url,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                json={
                    "from": f"{self.config.sender} <{self.config.sender}>",
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
                timeout=self.config.timeout,
            )
            resp.raise_for_status()
            return resp.json()

        result = call_with_retry(_request, service="Email delivery", max_attempts=self.config.max_attempts)
        delivery_id = result.get("id") if isinstance(result, dict) else None
        if not delivery_id:
            raise ResponseShapeError("Email delivery response has no id")
        return delivery_id


@dataclass(frozen=True)
class SesConfig:
    sender: str
    region: str
    access_key: str | None
    secret_key: str | None
    endpoint_url: str | None
    timeout: float
    max_attempts: int

    @classmethod
    def from_settings(cls) -> "SesConfig":
        if not settings.EMAIL_FROM:
            raise ConfigurationError("EMAIL_FROM")
        return cls(
            sender=settings.EMAIL_FROM,
            region=settings.SES_REGION,
            access_key=settings.SES_ACCESS_KEY,
            secret_key=settings.SES_SECRET_KEY,
            endpoint_url=settings.SES_ENDPOINT_URL,
            timeout=settings.ADAPTER_TIMEOUT_SECONDS,
            max_attempts=settings.ADAPTER_MAX_ATTEMPTS,
        )


def get_ses_client(config: SesConfig):
    """SDK client for SES; retries and timeouts are left to botocore."""
    session = boto3.session.Session(
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region,
    )
    return session.client(
        "ses",
        endpoint_url=config.endpoint_url,
        config=BotoConfig(
            connect_timeout=config.timeout,
            read_timeout=config.timeout,
            retries={"max_attempts": config.max_attempts, "mode": "standard"},
        ),
    )


class SesNotifier:
    def __init__(self, config: SesConfig, client=None):
        self.config = config
        self.client = client or get_ses_client(config)

    def send_email(self, to: str, subject: str, html: str) -> str:
        try:
            result = self.client.send_email(
                Source=self.config.sender,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {"Html": {"Data": html, "Charset": "UTF-8"}},
                },
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError("Email delivery", str(exc)) from exc
        return result["MessageId"]


def build_notifier() -> Notifier:
    """
    Raises:
        ConfigurationError: If the selected backend is unknown or misconfigured
    """
    kind = (settings.EMAIL_BACKEND_KIND or "").lower()
    if kind == "resend":
        return ResendNotifier(ResendConfig.from_settings())
    if kind == "ses":
        return SesNotifier(SesConfig.from_settings())
    raise ConfigurationError("EMAIL_BACKEND_KIND")
