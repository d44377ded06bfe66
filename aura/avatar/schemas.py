"""
Aura avatars — Pydantic request / response models.
"""

from __future__ import annotations

import hashlib
import json
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Trait literals
# ---------------------------------------------------------------------------

Gender = Literal["male", "female", "non-binary"]
AgeBracket = Literal["child", "teen", "young-adult", "adult", "senior"]
BackgroundMode = Literal["gradient", "solid", "custom", "transparent"]
ArtStyle = Literal["realistic", "anime", "cartoon", "fantasy", "cyberpunk"]
AuraEffect = Literal["none", "light-glow", "subtle", "strong", "holographic"]
Pose = Literal["front", "side", "three-quarter", "profile"]
Resolution = Literal["512", "1024", "2048"]

# Fields that describe the avatar itself (everything but identity/override/photo)
TRAIT_FIELDS = (
    "gender",
    "age",
    "ethnicity",
    "hair_style",
    "hair_color",
    "outfit",
    "accessories",
    "background",
    "art_style",
    "aura_effect",
    "pose",
    "size",
)


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------


class AvatarRequest(BaseModel):
    """Immutable avatar generation request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: Optional[str] = None
    gender: Gender = "female"
    age: AgeBracket = "young-adult"
    ethnicity: str = Field(default="mixed", max_length=60)
    hair_style: str = Field(default="long wavy", max_length=60)
    hair_color: str = Field(default="brown", max_length=40)
    outfit: str = Field(default="casual modern", max_length=80)
    accessories: List[str] = Field(default_factory=list, max_length=8)
    background: BackgroundMode = "gradient"
    art_style: ArtStyle = "realistic"
    aura_effect: AuraEffect = "light-glow"
    pose: Pose = "three-quarter"
    size: Resolution = "512"
    custom_prompt: Optional[str] = Field(default=None, max_length=1000)
    uploaded_image_url: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("ethnicity", "hair_style", "hair_color", "outfit")
    @classmethod
    def _strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("accessories")
    @classmethod
    def _clean_accessories(cls, v: List[str]) -> List[str]:
        return [a.strip() for a in v if a and a.strip()]

    @field_validator("custom_prompt")
    @classmethod
    def _blank_prompt_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("uploaded_image_url")
    @classmethod
    def _check_image_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not (v.startswith("http://") or v.startswith("https://") or v.startswith("/")):
            raise ValueError("uploaded_image_url must be an http(s) URL or a local media path")
        return v

    @property
    def size_pixels(self) -> int:
        return int(self.size)

    @property
    def is_photo_request(self) -> bool:
        return self.uploaded_image_url is not None

    def trait_seed(self) -> int:
        """Stable 31-bit seed derived from the avatar traits."""
        payload = {name: getattr(self, name) for name in TRAIT_FIELDS}
        payload["custom_prompt"] = self.custom_prompt
        digest = hashlib.sha256(
            json.dumps(payload, sort_keys=True).encode("utf-8")
        ).hexdigest()
        return int(digest[:8], 16) & 0x7FFFFFFF


class VariationRequest(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=2048)


class BackgroundRemovalRequest(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=2048)


class BackgroundRemovalResponse(BaseModel):
    image_url: str


class EnhancePromptRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=2000)


class EnhancePromptResponse(BaseModel):
    enhanced_prompt: str


class HashtagRequest(BaseModel):
    art_style: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[str] = None


class HashtagResponse(BaseModel):
    hashtags: List[str]


class UploadResponse(BaseModel):
    image_url: str
