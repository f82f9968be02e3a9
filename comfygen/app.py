# comfygen/app.py

import logging

from fastapi import Depends, FastAPI, HTTPException

from config.settings import settings
from .comfy_client import ComfyClient
from .errors import ConfigurationError, GenerationTimeoutError, SubmissionError
from .model import GenerateRequest, GenerateResponse, GenerationParams

logger = logging.getLogger(__name__)

app = FastAPI(title="Flux Image Service")


def get_comfy_client() -> ComfyClient:
    return ComfyClient()


@app.post("/generate", response_model=GenerateResponse)
async def generate(req: GenerateRequest, client: ComfyClient = Depends(get_comfy_client)):
    """
    Run one generation on ComfyUI and wait for the image URL.
    """
    if not req.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt must not be empty")

    params = GenerationParams(
        **req.model_dump(),
        baidu_translate_app_id=settings.BAIDU_TRANSLATE_APP_ID,
        baidu_translate_app_key=settings.BAIDU_TRANSLATE_APP_KEY,
    )

    try:
        image_url = await client.generate(params)
    except ConfigurationError as e:
        logger.error("ComfyUI client misconfigured: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    except SubmissionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except GenerationTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))

    return GenerateResponse(image_url=image_url)
