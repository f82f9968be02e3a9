# comfygen/workflow_builder.py

import json
from pathlib import Path
from typing import Dict, Any, List, Union

from .model import GenerationParams


# Flux model files as named on the ComfyUI host
UNET_NAME = "flux\\flux1-dev.safetensors"
UNET_WEIGHT_DTYPE = "fp8_e4m3fn"
CLIP_NAME_T5 = "flux\\t5xxl_fp8_e4m3fn.safetensors"
CLIP_NAME_L = "flux\\clip_l.safetensors"
VAE_NAME = "flux\\ae.safetensors"

SAMPLER_NAME = "euler"
SCHEDULER = "beta"
FILENAME_PREFIX = "comfy_ui_generated"
TRANSLATE_TO = "en"

# Node ids, kept identical to the exported flux.json workflow
ZERO_OUT_NODE = "4"
DECODE_NODE = "5"
SAVE_NODE = "8"
SAMPLER_NODE = "15"
UNET_NODE = "17"
CLIP_NODE = "18"
VAE_NODE = "19"
LATENT_NODE = "20"
TEXT_ENCODE_NODE = "21"
TRANSLATE_NODE = "24"


def _ref(node_id: str, output_index: int = 0) -> List[Union[str, int]]:
    """Link to output `output_index` of another node, as ComfyUI expects it."""
    return [node_id, output_index]


def _node(class_type: str, **inputs: Any) -> Dict[str, Any]:
    return {"inputs": inputs, "class_type": class_type}


def build_flux_workflow(params: GenerationParams) -> Dict[str, Any]:
    """
    Build the Flux text-to-image workflow (API format) for ComfyUI /prompt.

    `params` should already be normalized; values are copied verbatim.
    With Baidu credentials present, a BaiduTranslateNode (24) translates the
    prompt to English and feeds CLIPTextEncode (21). Without them node 24 is
    left out and the prompt goes straight into node 21.
    """
    credentials = params.translate_credentials
    text_input: Any = _ref(TRANSLATE_NODE) if credentials else params.prompt

    wf: Dict[str, Any] = {
        ZERO_OUT_NODE: _node("ConditioningZeroOut", conditioning=_ref(TEXT_ENCODE_NODE)),
        DECODE_NODE: _node("VAEDecode", samples=_ref(SAMPLER_NODE), vae=_ref(VAE_NODE)),
        SAVE_NODE: _node("SaveImage", filename_prefix=FILENAME_PREFIX, images=_ref(DECODE_NODE)),
        SAMPLER_NODE: _node(
            "KSampler",
            seed=params.seed,
            steps=params.steps,
            cfg=params.cfg,
            sampler_name=SAMPLER_NAME,
            scheduler=SCHEDULER,
            denoise=1,
            model=_ref(UNET_NODE),
            positive=_ref(TEXT_ENCODE_NODE),
            negative=_ref(ZERO_OUT_NODE),
            latent_image=_ref(LATENT_NODE),
        ),
        UNET_NODE: _node("UNETLoader", unet_name=UNET_NAME, weight_dtype=UNET_WEIGHT_DTYPE),
        CLIP_NODE: _node(
            "DualCLIPLoader",
            clip_name1=CLIP_NAME_T5,
            clip_name2=CLIP_NAME_L,
            type="flux",
            device="default",
        ),
        VAE_NODE: _node("VAELoader", vae_name=VAE_NAME),
        LATENT_NODE: _node("EmptyLatentImage", width=params.width, height=params.height, batch_size=1),
        TEXT_ENCODE_NODE: _node("CLIPTextEncode", text=text_input, clip=_ref(CLIP_NODE)),
    }

    if credentials:
        app_id, app_key = credentials
        wf[TRANSLATE_NODE] = _node(
            "BaiduTranslateNode",
            from_translate="auto",
            to_translate=TRANSLATE_TO,
            text=params.prompt,
            baidu_appid=app_id,
            baidu_appkey=app_key,
        )

    return wf


def dump_workflow(workflow: Dict[str, Any], path: Path) -> None:
    """
    Write a built workflow to disk for debugging (importable in the ComfyUI UI).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(workflow, f, indent=2, ensure_ascii=False)
