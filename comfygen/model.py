# comfygen/model.py
from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Any, Optional, Dict, Iterator, List, Tuple

from .utils import gen_seed

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1920
DEFAULT_STEPS = 25
DEFAULT_CFG = 1.0


class GenerationParams(BaseModel):
    prompt: str
    width: int = 0
    height: int = 0
    steps: int = 0
    cfg: float = 0
    seed: int = 0
    # Baidu translate credentials, only used when both are set
    baidu_translate_app_id: Optional[str] = None
    baidu_translate_app_key: Optional[str] = None

    def normalized(self) -> "GenerationParams":
        """
        Return a copy with defaults filled in for non-positive sizes/steps/cfg
        and a time-derived seed when seed == 0.
        Other values are passed through as-is.
        """
        return self.model_copy(
            update={
                "width": self.width if self.width > 0 else DEFAULT_WIDTH,
                "height": self.height if self.height > 0 else DEFAULT_HEIGHT,
                "steps": self.steps if self.steps > 0 else DEFAULT_STEPS,
                "cfg": self.cfg if self.cfg > 0 else DEFAULT_CFG,
                "seed": self.seed if self.seed != 0 else gen_seed(),
            }
        )

    @property
    def translate_credentials(self) -> Optional[Tuple[str, str]]:
        if self.baidu_translate_app_id and self.baidu_translate_app_key:
            return self.baidu_translate_app_id, self.baidu_translate_app_key
        return None


class HistoryImage(BaseModel):
    filename: str
    subfolder: str = ""
    type: str = "output"


class HistoryOutput(BaseModel):
    images: List[HistoryImage] = Field(default_factory=list)

    @field_validator("images", mode="before")
    @classmethod
    def _keep_usable_images(cls, value: Any) -> Any:
        # null -> no images; items without a filename are skipped
        if value is None:
            return []
        if isinstance(value, list):
            return [img for img in value if isinstance(img, dict) and img.get("filename")]
        return value


class HistoryEntry(BaseModel):
    # ComfyUI returns {"outputs": {node_id: {"images": [...]}}, "status": ..., ...}
    # Each output is parsed on its own so one odd node does not hide the others.
    outputs: Dict[str, Any] = Field(default_factory=dict)

    def iter_outputs(self) -> Iterator[Tuple[str, HistoryOutput]]:
        for node_id, raw in self.outputs.items():
            try:
                yield node_id, HistoryOutput.model_validate(raw)
            except ValidationError:
                continue


class GenerateRequest(BaseModel):
    prompt: str
    width: int = 0
    height: int = 0
    steps: int = 0
    cfg: float = 0
    seed: int = 0


class GenerateResponse(BaseModel):
    image_url: str
