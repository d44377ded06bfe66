"""
Account and content records.

These are the shapes the store hands back and the API returns.  Counter
fields are only ever changed by the store's atomic primitives.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

Role = Literal["user", "admin"]

# Premium-only derivative names, in fan-out order
DERIVATIVE_KEYS = ("profile", "story", "post", "hd")


class UserAccount(BaseModel):
    id: str
    display_name: str = ""
    email: str = ""
    photo_url: Optional[str] = None
    premium: bool = False
    credits: int = Field(default=0, ge=0)
    total_likes: int = 0
    total_shares: int = 0
    total_avatars: int = 0
    referral_code: str
    referred_by: Optional[str] = None
    role: Role = "user"
    created_at: float


class Variation(BaseModel):
    style: str
    url: str


class ArtifactDraft(BaseModel):
    """Everything needed to create an artifact; the store assigns id/timestamps."""
    user_id: str
    user_name: str = ""
    user_photo: Optional[str] = None
    prompt: str
    provider: str
    request: Dict[str, Any] = Field(default_factory=dict)
    urls: Dict[str, str]
    variations: List[Variation] = Field(default_factory=list)
    size: str = "512"
    is_premium: bool = False
    is_public: bool = True
    hashtags: List[str] = Field(default_factory=list)


class Artifact(BaseModel):
    id: str
    user_id: str
    user_name: str = ""
    user_photo: Optional[str] = None
    prompt: str
    provider: str
    request: Dict[str, Any] = Field(default_factory=dict)
    urls: Dict[str, str]
    variations: List[Variation] = Field(default_factory=list)
    size: str = "512"
    is_premium: bool = False
    is_public: bool = True
    is_featured: bool = False
    likes: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    liked_by: List[str] = Field(default_factory=list)
    hashtags: List[str] = Field(default_factory=list)
    created_at: float


class Comment(BaseModel):
    id: str
    avatar_id: str
    user_id: str
    user_name: str = "Anonymous"
    user_photo: Optional[str] = None
    text: str
    created_at: float


class Referral(BaseModel):
    id: str
    referrer_id: str
    referred_user_id: str
    code: str
    credits_awarded: int
    created_at: float


# ---------------------------------------------------------------------------
# Request / response payloads
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    display_name: str = Field(default="", max_length=80)
    email: str = Field(default="", max_length=254)
    photo_url: Optional[str] = Field(default=None, max_length=2048)
    referral_code: Optional[str] = Field(default=None, max_length=32)


class UserUpdateRequest(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=80)
    photo_url: Optional[str] = Field(default=None, max_length=2048)


class ReferralApplyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class ReferralApplyResponse(BaseModel):
    success: bool = True
    referral: Referral
    credits_awarded: int


class CommentCreate(BaseModel):
    text: str = Field(..., max_length=2000)


class VisibilityUpdate(BaseModel):
    is_public: bool


class FeatureUpdate(BaseModel):
    is_featured: bool = True


class GenerateResponse(BaseModel):
    artifact: Artifact
    credits_remaining: Union[int, Literal["unlimited"]]


class EngagementResponse(BaseModel):
    success: bool
    status: str
    likes: int
    shares: int
    liked: bool


class DownloadBundle(BaseModel):
    urls: Dict[str, Optional[str]]
    filename: str


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    display_name: str = ""
    photo_url: Optional[str] = None
    total_likes: int
    total_shares: int
    total_avatars: int


class PlatformStats(BaseModel):
    total_users: int
    total_avatars: int
    total_premium_users: int
