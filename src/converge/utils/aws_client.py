"""Shared boto3 session and per-service clients for the AWS handlers."""

import threading
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config

from converge.utils.logging import get_logger

logger = get_logger(__name__)


class AWSClientManager:
    """Hands out one cached client per AWS service.

    Clients are shared by every handler in the process. They hold connection
    pools only; no remote state is cached here.
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        max_pool_connections: int = 50,
        session: Optional[boto3.Session] = None
    ):
        """Initialize AWS client manager.

        Args:
            profile: AWS profile name
            region: AWS region; the session default is used when omitted
            max_pool_connections: Connection pool size per client
            session: Pre-built session (tests inject one with fixed credentials)
        """
        self.profile = profile
        self.region = region
        self._session = session
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

        # SDK retries stay in standard mode; handlers add their own backoff
        # for transient errors around individual calls
        self._boto_config = Config(
            max_pool_connections=max_pool_connections,
            retries={'mode': 'standard', 'max_attempts': 3},
            connect_timeout=10,
            read_timeout=60,
        )

    @property
    def session(self) -> boto3.Session:
        """boto3 session, created on first use."""
        if self._session is None:
            kwargs = {}
            if self.profile:
                kwargs['profile_name'] = self.profile
            if self.region:
                kwargs['region_name'] = self.region

            self._session = boto3.Session(**kwargs)
            logger.info(f"Created AWS session (region {self._session.region_name}, "
                        f"profile {self.profile or 'default'})")

        return self._session

    def get_client(self, service_name: str):
        """Get the shared client for a service.

        Args:
            service_name: AWS service name (e.g. 'sqs', 'iam')

        Returns:
            boto3 client
        """
        with self._lock:
            client = self._clients.get(service_name)
            if client is None:
                client = self.session.client(
                    service_name,
                    region_name=self.region or self.session.region_name,
                    config=self._boto_config,
                )
                self._clients[service_name] = client
                logger.debug(f"Created {service_name} client")
        return client
