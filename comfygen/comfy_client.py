import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
from pydantic import ValidationError

from config.settings import settings

from .errors import (
    ConfigurationError,
    GenerationTimeoutError,
    PollDecodeError,
    PollTransportError,
    SubmissionError,
)
from .model import GenerationParams, HistoryEntry
from .utils import resolve_client_id, strip_base_url
from .workflow_builder import build_flux_workflow

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def extract_first_image_from_history(history_item: HistoryEntry) -> Optional[Tuple[str, str, str]]:
    """
    Find the first output node that produced an image.
    Returns (filename, subfolder, type) or None.
    Nodes are scanned in the order ComfyUI returned them; malformed nodes are skipped.
    """
    for node_id, node_out in history_item.iter_outputs():
        if not node_out.images:
            continue
        img = node_out.images[0]
        return img.filename, img.subfolder, img.type
    return None


def build_image_url(base_url: str, filename: str, subfolder: str, img_type: str) -> str:
    """
    URL for downloading the image straight from ComfyUI.
    """
    return f"{base_url}/view?filename={filename}&subfolder={subfolder}&type={img_type}"


class ComfyClient:
    """
    Submits the Flux workflow to ComfyUI and polls /history until an image shows up.

    `http` is an optional caller-owned httpx.AsyncClient, it is never closed here.
    Without it a client is opened and closed for each generate() call.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        request_timeout: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.base_url = settings.COMFYUI_URL if base_url is None else base_url
        self.client_id = resolve_client_id(
            settings.COMFYUI_CLIENT_ID if client_id is None else client_id
        )
        self.poll_interval = settings.POLL_INTERVAL if poll_interval is None else poll_interval
        self.max_attempts = settings.POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.request_timeout = settings.REQUEST_TIMEOUT if request_timeout is None else request_timeout
        self._http = http
        self._sleep = sleep

    async def generate(self, params: GenerationParams) -> str:
        """
        Run one generation and return the full /view URL of the produced image.
        """
        if not self.base_url:
            raise ConfigurationError("ComfyUI base_url is required")
        base_url = strip_base_url(self.base_url)

        params = params.normalized()
        workflow = build_flux_workflow(params)
        logger.info(
            "Generating %dx%d, steps=%d, cfg=%s, seed=%d, translate=%s",
            params.width,
            params.height,
            params.steps,
            params.cfg,
            params.seed,
            params.translate_credentials is not None,
        )

        if self._http is not None:
            return await self._run(self._http, base_url, workflow)
        async with httpx.AsyncClient(timeout=self.request_timeout) as http:
            return await self._run(http, base_url, workflow)

    async def _run(self, http: httpx.AsyncClient, base_url: str, workflow: Dict[str, Any]) -> str:
        prompt_id = await self.send_workflow(http, base_url, workflow)
        return await self.wait_for_image(http, base_url, prompt_id)

    async def send_workflow(self, http: httpx.AsyncClient, base_url: str, workflow: Dict[str, Any]) -> str:
        """
        POST the workflow to /prompt and return the prompt_id used to query /history.
        """
        payload = {
            "prompt": workflow,
            "client_id": self.client_id,
        }
        try:
            r = await http.post(f"{base_url}/prompt", json=payload)
        except httpx.HTTPError as e:
            raise SubmissionError(f"ComfyUI submit: {e}") from e

        if r.status_code != 200:
            logger.error("ComfyUI returned %s: %s", r.status_code, r.text[:500])
            raise SubmissionError(
                f"ComfyUI submit {r.status_code} {r.reason_phrase}: {r.text}",
                status_code=r.status_code,
                body=r.text,
            )

        try:
            data = r.json()
        except ValueError as e:
            raise SubmissionError(f"ComfyUI decode submit response: {e}", status_code=r.status_code, body=r.text) from e

        # ComfyUI answers {"prompt_id": "...", "number": ..., "node_errors": {}}
        prompt_id = data.get("prompt_id") if isinstance(data, dict) else None
        if not prompt_id or not isinstance(prompt_id, str):
            raise SubmissionError(f"ComfyUI no prompt_id in response: {data}", status_code=r.status_code, body=r.text)
        logger.info("Got prompt_id: %s", prompt_id)
        return prompt_id

    async def fetch_history(self, http: httpx.AsyncClient, base_url: str, prompt_id: str) -> Optional[HistoryEntry]:
        """
        One GET /history/{prompt_id}. None means the job is not in history yet.
        """
        url = f"{base_url}/history/{prompt_id}"
        try:
            r = await http.get(url)
        except httpx.HTTPError as e:
            raise PollTransportError(f"GET {url}: {e}") from e
        if r.status_code != 200:
            return None

        try:
            data = r.json()
        except ValueError as e:
            raise PollDecodeError(f"Invalid history JSON for {prompt_id}: {e}") from e
        if not isinstance(data, dict) or prompt_id not in data:
            return None

        try:
            return HistoryEntry.model_validate(data[prompt_id])
        except ValidationError as e:
            raise PollDecodeError(f"Unexpected history entry for {prompt_id}: {e}") from e

    async def wait_for_image(self, http: httpx.AsyncClient, base_url: str, prompt_id: str) -> str:
        """
        Poll /history until an output image appears, then build its /view URL.
        """
        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.poll_interval)
            try:
                entry = await self.fetch_history(http, base_url, prompt_id)
            except (PollTransportError, PollDecodeError) as e:
                logger.debug("Poll %d for %s not ready: %s", attempt, prompt_id, e)
                continue
            if entry is None:
                continue

            img_info = extract_first_image_from_history(entry)
            if img_info is None:
                continue
            filename, subfolder, img_type = img_info
            image_url = build_image_url(base_url, filename, subfolder, img_type)
            logger.info("Image ready after %d polls: %s", attempt, image_url)
            return image_url

        raise GenerationTimeoutError(prompt_id, self.max_attempts)


async def generate_image(params: GenerationParams, **client_kwargs: Any) -> str:
    """
    Shortcut: one generation with a ComfyClient built from settings.
    Baidu credentials fall back to settings when params carry none.
    """
    if (
        params.translate_credentials is None
        and settings.BAIDU_TRANSLATE_APP_ID
        and settings.BAIDU_TRANSLATE_APP_KEY
    ):
        params = params.model_copy(
            update={
                "baidu_translate_app_id": settings.BAIDU_TRANSLATE_APP_ID,
                "baidu_translate_app_key": settings.BAIDU_TRANSLATE_APP_KEY,
            }
        )
    return await ComfyClient(**client_kwargs).generate(params)
