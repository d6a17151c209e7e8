"""
Image generation through a Midjourney proxy.

Jobs are asynchronous: ``submit`` returns a job id straight away and the
caller polls ``status`` until the job reaches a terminal state. No polling
loop lives here.
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .errors import ProviderError, TransportError
from .types import JobHandle, JobRequest, JobStatus
from .utils import drop_none, parse_json

logger = logging.getLogger(__name__)

PROVIDER_NAME = "midjourney"

# 1: submitted, 21: identical job already exists, 22: queued
SUCCESS_CODES = (1, 21, 22)

STATE_MAP = {
    "NOT_START": "pending",
    "SUBMITTED": "pending",
    "IN_PROGRESS": "running",
    "SUCCESS": "succeeded",
    "FAILURE": "failed",
}

CHANGE_ACTIONS = ("UPSCALE", "VARIATION", "REROLL")


def build_prompt(job: JobRequest) -> str:
    """Append the aspect-ratio and negative-prompt directives to the prompt."""
    parts = [job.prompt.strip(), f"--ar {job.aspect_ratio}"]
    if job.negative_prompt:
        parts.append(f"--no {job.negative_prompt.strip()}")
    return " ".join(parts)


def parse_progress(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(str(value).strip().rstrip("%") or 0)
    except ValueError:
        return 0


class JobGateway:
    """
    Client for the Midjourney proxy job API.

    Args:
        api (str): Base URL of the proxy.
        token (str): Shared secret sent as the ``mj-api-secret`` header.
        http_client (httpx.AsyncClient): Client for outbound calls.
    """

    def __init__(self, api: str, token: Optional[str], http_client: httpx.AsyncClient):
        self.api = api.rstrip("/")
        self.token = token
        self.http_client = http_client

    async def submit(self, job: JobRequest) -> JobHandle:
        """
        Submit an imagine job.

        Raises:
            ProviderError: If the proxy rejects the job.
            TransportError: If the proxy cannot be reached.
        """
        body = drop_none({"prompt": build_prompt(job), "notifyHook": job.notify_hook})
        handle = await self._submit("/mj/submit/imagine", body)
        logger.info("Submitted image job %s (--ar %s)", handle.job_id, job.aspect_ratio)
        return handle

    async def change(self, job_id: str, action: str, index: Optional[int] = None) -> JobHandle:
        """
        Submit a follow-up job (upscale, variation or reroll) on a finished job.

        Args:
            job_id (str): The job to act on.
            action (str): One of 'UPSCALE', 'VARIATION', 'REROLL'.
            index (int, optional): Image index 1-4, required except for REROLL.
        """
        action = action.upper()
        if action not in CHANGE_ACTIONS:
            raise ValueError(f"Unknown job action '{action}'. Use one of {', '.join(CHANGE_ACTIONS)}")
        if action != "REROLL" and index not in (1, 2, 3, 4):
            raise ValueError(f"{action} needs an image index between 1 and 4")

        body = drop_none({"taskId": job_id, "action": action, "index": index})
        return await self._submit("/mj/submit/change", body)

    async def status(self, job_id: str) -> JobStatus:
        """
        Fetch the current state of a job.

        Raises:
            ProviderError: If the job id is unknown to the proxy.
            TransportError: If the proxy cannot be reached.
        """
        response = await self._send("GET", f"/mj/task/{quote(job_id, safe='')}/fetch")
        payload = parse_json(response.content)
        if response.status_code == 404 or not isinstance(payload, dict):
            raise ProviderError(f"Unknown image job '{job_id}'", provider=PROVIDER_NAME, code=response.status_code)
        if response.is_error:
            raise ProviderError(
                payload.get("description") or f"HTTP {response.status_code}",
                provider=PROVIDER_NAME,
                code=response.status_code,
            )

        raw_state = str(payload.get("status") or "")
        return JobStatus(
            job_id=str(payload.get("id") or job_id),
            state=STATE_MAP.get(raw_state, raw_state.lower() or "pending"),
            progress=parse_progress(payload.get("progress")),
            result_url=payload.get("imageUrl") or None,
            failure_reason=payload.get("failReason") or None,
        )

    async def _submit(self, path: str, body: Dict[str, Any]) -> JobHandle:
        response = await self._send("POST", path, json=body)
        payload = parse_json(response.content)
        if not isinstance(payload, dict):
            raise ProviderError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                provider=PROVIDER_NAME,
                code=response.status_code,
            )

        code = payload.get("code")
        if code not in SUCCESS_CODES or not payload.get("result"):
            raise ProviderError(
                payload.get("description") or f"Job submission failed with code {code}",
                provider=PROVIDER_NAME,
                code=code,
            )
        return JobHandle(job_id=str(payload["result"]))

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.http_client.request(
                method,
                f"{self.api}{path}",
                headers={"mj-api-secret": self.token or ""},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Image job request failed: {e}", provider=PROVIDER_NAME) from e
