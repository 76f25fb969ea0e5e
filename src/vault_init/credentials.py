"""
AWS credential bootstrap.

In containers the credential chain (IRSA web identity, ECS task role,
instance metadata) often becomes usable a few seconds after the
process starts. ``wait_until_valid_session`` keeps building sessions
until one resolves credentials, but only for the "no providers in
chain" case: any other credential error is a misconfiguration and is
raised immediately.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from . import USER_AGENT
from .config import DEFAULT_CREDENTIALS_RETRY_INTERVAL, AwsConfig

logger = logging.getLogger("vault_init.credentials")


class CredentialsError(RuntimeError):
    """Raised when AWS credentials cannot be resolved."""


@dataclass
class RetryPolicy:
    """How long to wait between credential checks, and for how long.

    Attributes:
        interval: Seconds between attempts. Non-positive means the default.
        max_attempts: Give up after this many attempts. None retries forever.
        sleep: Sleep function, replaceable with a fake clock in tests.
        stop_event: If set while waiting, the retry loop gives up early.
    """

    interval: float = DEFAULT_CREDENTIALS_RETRY_INTERVAL
    max_attempts: Optional[int] = None
    sleep: Callable[[float], None] = time.sleep
    stop_event: Optional[threading.Event] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.interval is None or self.interval <= 0:
            self.interval = DEFAULT_CREDENTIALS_RETRY_INTERVAL

    @classmethod
    def from_config(
        cls, aws_config: AwsConfig, stop_event: Optional[threading.Event] = None
    ) -> "RetryPolicy":
        return cls(interval=aws_config.retry_on_credentials_wait, stop_event=stop_event)

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts is not None and attempt >= self.max_attempts

    def wait(self) -> bool:
        """Wait one interval. Returns False if the wait was interrupted."""
        if self.stop_event is not None:
            return not self.stop_event.wait(timeout=self.interval)
        self.sleep(self.interval)
        return True


def create_session(aws_config: AwsConfig) -> boto3.session.Session:
    """Build a fresh boto3 session.

    The endpoint override is applied per client (see session_client);
    the session itself only carries the credential chain.
    """
    return boto3.session.Session()


def session_client(session: boto3.session.Session, service: str, aws_config: AwsConfig) -> Any:
    """Create a service client honoring the endpoint override.

    With a custom endpoint (MinIO, LocalStack) S3 is switched to
    path-style addressing.
    """
    kwargs: dict[str, Any] = {}
    boto_config = BotoConfig(user_agent_extra=USER_AGENT)
    if aws_config.endpoint:
        kwargs["endpoint_url"] = aws_config.endpoint
        if service == "s3":
            boto_config = boto_config.merge(BotoConfig(s3={"addressing_style": "path"}))
    return session.client(service, config=boto_config, **kwargs)


def _resolve_credentials(session: boto3.session.Session) -> None:
    credentials = session.get_credentials()
    if credentials is None:
        raise NoCredentialsError()
    credentials.get_frozen_credentials()


def wait_until_valid_session(
    aws_config: AwsConfig,
    policy: Optional[RetryPolicy] = None,
    session_factory: Callable[[AwsConfig], Any] = create_session,
) -> Any:
    """Block until a session with usable credentials is available.

    Args:
        aws_config: Endpoint override and retry interval.
        policy: Retry policy. Defaults to retrying forever at the
            configured interval.
        session_factory: Builds a new session for each attempt.

    Returns:
        A boto3 session whose credentials resolved.

    Raises:
        CredentialsError: On any credential error other than an empty
            provider chain, or when the policy gives up.
    """
    policy = policy or RetryPolicy.from_config(aws_config)
    attempt = 0

    while True:
        attempt += 1
        session = session_factory(aws_config)
        try:
            _resolve_credentials(session)
            if attempt > 1:
                logger.info("AWS credentials resolved after %d attempts", attempt)
            return session
        except NoCredentialsError as exc:
            logger.warning(
                "Failed to retrieve AWS credentials (attempt %d), retrying in %.0fs: %s",
                attempt, policy.interval, exc,
            )
        except (BotoCoreError, ClientError) as exc:
            raise CredentialsError(f"AWS credentials are misconfigured: {exc}") from exc

        if policy.exhausted(attempt):
            raise CredentialsError(
                f"No AWS credentials available after {attempt} attempts"
            )
        if not policy.wait():
            raise CredentialsError("Stopped while waiting for AWS credentials")
