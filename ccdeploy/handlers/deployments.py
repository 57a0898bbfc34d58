"""Credential deployment endpoints."""

import asyncio
import logging

from litestar import Controller, Request, Response, post
from litestar.status_codes import HTTP_200_OK, HTTP_202_ACCEPTED

from ccdeploy.errors import DeploymentError, TimedOut
from ccdeploy.keys import AccountKeyPair
from ccdeploy.messages import SessionRequest
from ccdeploy.pipeline import DeploymentResult
from ccdeploy.service import DeploymentService

from .base import (
    AccountKeysRequest,
    DeploymentRequest,
    ErrorResponse,
    PendingDeploymentResponse,
    SessionRequestBody,
    error_response,
    parse_body,
)

logger = logging.getLogger(__name__)


class DeploymentController(Controller):  # type: ignore[misc]
    """Credential deployment API endpoints."""

    path = "/api/v1"

    @post("/credential-deployments", status_code=HTTP_200_OK)  # type: ignore[untyped-decorator]
    async def deploy(
        self,
        request: Request,
        service: DeploymentService,
    ) -> Response[DeploymentResult | PendingDeploymentResponse | ErrorResponse]:
        """POST /api/v1/credential-deployments - Sign, submit and await finality.

        Answers 202 with the transaction hash when finality was not observed
        in time; the deployment may still succeed.
        """
        body = await parse_body(request, DeploymentRequest)

        try:
            result = await service.deploy(body.payload, body.seed_phrase)
        except TimedOut as e:
            return Response(
                content=PendingDeploymentResponse(
                    transaction_hash=e.transaction_hash,
                    message=e.diagnostic,
                ),
                status_code=HTTP_202_ACCEPTED,
            )
        except DeploymentError as e:
            return error_response(e)

        logger.info(f"Deployed credential in transaction {result.transaction_hash[:16]}...")
        return Response(content=result, status_code=HTTP_200_OK)

    @post("/account-keys", status_code=HTTP_200_OK)  # type: ignore[untyped-decorator]
    async def account_keys(
        self,
        request: Request,
        service: DeploymentService,
    ) -> Response[AccountKeyPair | ErrorResponse]:
        """POST /api/v1/account-keys - Derive the key pair of an account index."""
        body = await parse_body(request, AccountKeysRequest)

        try:
            # PBKDF2 with 2048 rounds; keep it off the event loop
            keys = await asyncio.to_thread(
                service.account_keys, body.seed_phrase, body.account_index
            )
        except DeploymentError as e:
            return error_response(e)

        return Response(content=keys, status_code=HTTP_200_OK)

    @post("/session-requests", status_code=HTTP_200_OK)  # type: ignore[untyped-decorator]
    async def session_request(
        self,
        request: Request,
        service: DeploymentService,
    ) -> Response[SessionRequest | ErrorResponse]:
        """POST /api/v1/session-requests - Build an ID app create or recover request."""
        body = await parse_body(request, SessionRequestBody)

        try:
            result = await asyncio.to_thread(
                service.session_request,
                body.method,
                body.seed_phrase,
                body.topic,
                body.account_index,
                body.note,
            )
        except DeploymentError as e:
            return error_response(e)

        return Response(content=result, status_code=HTTP_200_OK)
