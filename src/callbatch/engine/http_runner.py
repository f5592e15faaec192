"""
REST calling platform adapter.

Uses httpx for HTTP requests. Deployment registers the application with the
platform; each job then opens, executes (or ignores) one conversation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx

from callbatch.engine.interface import (
    CallingEngine,
    Conversation,
    ConversationExecutionError,
    ConversationRejectedError,
    ConversationRunner,
    DeployError,
    EngineError,
)
from callbatch.engine.local import LocalApplication
from callbatch.jobs.models import ConversationResult
from callbatch.shared.logging import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/v1"

# Platform answers meaning "not now / not this job" rather than a fault
REJECTION_STATUS_CODES = frozenset({409, 423, 429})


def _error_body(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text}
    return data if isinstance(data, dict) else {"message": str(data)}


class HttpConversationRunner(ConversationRunner):
    """Conversation runner backed by the platform REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        application_id: str,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._application_id = application_id
        self._owns_client = owns_client

    def _conversations_url(self, suffix: str = "") -> str:
        return f"{API_PREFIX}/applications/{self._application_id}/conversations{suffix}"

    async def open(self, key: str) -> Conversation:
        try:
            response = await self._client.post(self._conversations_url(), json={"jobKey": key})
        except httpx.HTTPError as e:
            raise EngineError(f"HTTP error: {e!s}", reason="HTTP_ERROR") from e

        if response.status_code in REJECTION_STATUS_CODES:
            body = _error_body(response)
            raise ConversationRejectedError(
                body.get("message", "Conversation rejected"),
                reason=body.get("reason") or str(response.status_code),
                details=body,
            )
        if response.status_code >= 400:
            body = _error_body(response)
            raise EngineError(
                body.get("message", "Conversation allocation failed"),
                reason=body.get("reason") or str(response.status_code),
                details=body,
            )

        try:
            conversation_id = response.json()["conversationId"]
        except (ValueError, KeyError, TypeError) as e:
            raise EngineError("Malformed conversation response", reason="BAD_RESPONSE") from e
        return Conversation(key=key, runner=self, conversation_id=conversation_id)

    async def execute(self, conversation: Conversation) -> ConversationResult:
        payload = {
            "input": conversation.input,
            "noiseVolume": conversation.audio.noise_volume,
            "tts": conversation.audio.tts,
            "sipConfig": conversation.sip.config,
        }
        url = self._conversations_url(f"/{conversation.conversation_id}/execute")

        logger.info(
            "Executing conversation",
            extra={"key": conversation.key, "conversation_id": conversation.conversation_id},
        )

        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise ConversationExecutionError(f"HTTP error: {e!s}", reason="HTTP_ERROR") from e

        if response.status_code >= 400:
            body = _error_body(response)
            raise ConversationExecutionError(
                body.get("message", "Conversation execution failed"),
                reason=body.get("reason") or str(response.status_code),
                details=body,
            )

        data = response.json()
        return ConversationResult(
            output=data.get("output") or {},
            recording_url=data.get("recordingUrl"),
        )

    async def ignore(self, conversation: Conversation) -> None:
        url = self._conversations_url(f"/{conversation.conversation_id}/ignore")
        try:
            response = await self._client.post(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EngineError(f"Ignore failed: {e!s}", reason="HTTP_ERROR") from e

    async def close(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()


class HttpCallingEngine(CallingEngine):
    """Engine deploying to the REST platform and queueing jobs locally."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        job_timeout_seconds: float = 600.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._job_timeout_seconds = job_timeout_seconds
        self._owns_client = http_client is None
        if http_client is None:
            headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
            http_client = httpx.AsyncClient(
                base_url=base_url,
                headers=headers,
                timeout=httpx.Timeout(timeout),
            )
        self._client = http_client

    async def deploy(self, project_path: str, group_name: str = "Default") -> LocalApplication:
        payload = {
            "project": Path(project_path).name or project_path,
            "projectPath": project_path,
            "groupName": group_name,
        }
        logger.info("Deploying application", extra=payload)

        try:
            response = await self._client.post(f"{API_PREFIX}/applications", json=payload)
        except httpx.HTTPError as e:
            raise DeployError(f"HTTP error: {e!s}", reason="HTTP_ERROR") from e

        if response.status_code >= 400:
            body = _error_body(response)
            logger.error(
                "Application deployment failed",
                extra={"status_code": response.status_code, "error": body},
            )
            raise DeployError(
                body.get("message", "Deployment failed"),
                reason=body.get("reason") or str(response.status_code),
                details=body,
            )

        try:
            application_id = response.json()["applicationId"]
        except (ValueError, KeyError, TypeError) as e:
            raise DeployError(
                "Malformed deployment response",
                reason="BAD_RESPONSE",
                details={"status_code": response.status_code},
            ) from e
        runner = HttpConversationRunner(
            self._client,
            application_id=application_id,
            owns_client=self._owns_client,
        )
        return LocalApplication(
            runner,
            job_timeout_seconds=self._job_timeout_seconds,
            application_id=application_id,
        )

    async def close(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
