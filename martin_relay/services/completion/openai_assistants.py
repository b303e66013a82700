from typing import List, Optional

import httpx

from martin_relay.errors import BackendError
from martin_relay.logging_config import get_logger
from martin_relay.services.completion.base import CompletionBackend, RunHandle, ThreadMessage

logger = get_logger("completion.openai")

MESSAGE_PAGE_SIZE = 20


class OpenAIAssistantsBackend(CompletionBackend):
    """OpenAI Assistants v2 API over httpx."""

    def __init__(
        self,
        api_key: str,
        assistant_id: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
    ):
        self.api_key = api_key
        self.assistant_id = assistant_id
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(method, url, headers=self._headers(), json=json, params=params)
        except httpx.HTTPError as e:
            logger.error(f"OpenAI transport error: {method} {path}: {e}")
            raise BackendError("transport_error", str(e)) from e

        logger.debug(f"OpenAI response status: {method} {path} -> {response.status_code}")
        if response.status_code >= 300:
            logger.error(f"OpenAI error: {response.status_code} {response.text[:500]}")
            raise BackendError(f"http_{response.status_code}", response.text[:200])

        try:
            return response.json()
        except ValueError as e:
            raise BackendError("invalid_response", str(e)) from e

    async def create_thread(self) -> str:
        data = await self._request("POST", "/threads", json={})
        thread_id = data.get("id")
        if not thread_id:
            raise BackendError("invalid_response", "thread id missing")
        return thread_id

    async def post_message(self, thread_id: str, role: str, text: str) -> None:
        await self._request("POST", f"/threads/{thread_id}/messages", json={"role": role, "content": text})

    async def start_run(self, thread_id: str) -> RunHandle:
        data = await self._request("POST", f"/threads/{thread_id}/runs", json={"assistant_id": self.assistant_id})
        if not data.get("id"):
            raise BackendError("invalid_response", "run id missing")
        return RunHandle(id=data["id"], status=data.get("status", ""))

    async def get_run_status(self, thread_id: str, run: RunHandle) -> str:
        data = await self._request("GET", f"/threads/{thread_id}/runs/{run.id}")
        return data.get("status", "")

    async def list_messages(self, thread_id: str) -> List[ThreadMessage]:
        data = await self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            params={"order": "desc", "limit": MESSAGE_PAGE_SIZE},
        )
        messages = []
        for item in data.get("data") or []:
            segments = []
            for part in item.get("content") or []:
                if part.get("type") == "text":
                    value = (part.get("text") or {}).get("value")
                    if value:
                        segments.append(value)
            messages.append(ThreadMessage(role=item.get("role", ""), segments=segments))
        # Newest first on the wire; callers expect chronological order.
        messages.reverse()
        return messages

    async def cancel_run(self, thread_id: str, run: RunHandle) -> None:
        try:
            await self._request("POST", f"/threads/{thread_id}/runs/{run.id}/cancel", json={})
        except BackendError as e:
            logger.warning(f"Run cancel failed: thread={thread_id} run={run.id}: {e}")
