"""Deployment orchestration for the HTTP API."""

import logging
from typing import Any

from .config import Config
from .keys import AccountKeyPair, generate_account_key_pair
from .messages import (
    CreateAccountRequest,
    RecoverAccountRequest,
    SessionRequest,
    WalletConnectMethod,
    build_session_request,
)
from .node import NodeConnector
from .pipeline import DeploymentResult, deploy_credential
from .submission import Clock

logger = logging.getLogger(__name__)


class DeploymentService:
    """Runs credential deployments with a fixed configuration.

    Holds no per-deployment state; each call gets its own keys and channel.
    """

    def __init__(
        self,
        config: Config,
        connector: NodeConnector | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._connector = connector
        self._clock = clock

    @property
    def config(self) -> Config:
        return self._config

    async def deploy(
        self,
        payload: str | bytes | dict[str, Any],
        seed_phrase: str,
    ) -> DeploymentResult:
        """Sign and submit one credential deployment."""
        return await deploy_credential(
            payload,
            seed_phrase,
            self._config,
            connector=self._connector,
            clock=self._clock,
        )

    def account_keys(self, seed_phrase: str, account_index: int = 0) -> AccountKeyPair:
        """Derive the account key pair of ``account_index``."""
        keys = generate_account_key_pair(seed_phrase, self._config.network, account_index)
        logger.debug(f"Derived account keys for index {account_index}")
        return keys

    def session_request(
        self,
        method: WalletConnectMethod,
        seed_phrase: str,
        topic: str | None = None,
        account_index: int = 0,
        note: str = "",
    ) -> SessionRequest:
        """Build an ID app create or recover request for the account's public key.

        Raises:
            SchemaViolation: If no topic is given and the configuration requires one

        """
        keys = self.account_keys(seed_phrase, account_index)
        params: CreateAccountRequest | RecoverAccountRequest
        if method is WalletConnectMethod.CREATE_ACCOUNT:
            params = CreateAccountRequest(public_key=keys.public_key, reason=note)
        else:
            params = RecoverAccountRequest(public_key=keys.public_key, description=note)
        return build_session_request(
            method, params, topic, require_topic=self._config.require_session_topic
        )
