"""
Aura avatars — generation service.

One call to ``AvatarService.generate`` is one complete generation:

  load user → entitlement → orchestrator → persist image → derivatives
  (premium photo requests) → store avatar → charge credit

The credit is charged last.  If a concurrent request spent the last credit
in the meantime, the avatar just stored is deleted again and the caller
gets ``NO_CREDITS``, so a user can never obtain more avatars than credits.
The media files written for the discarded avatar are removed with it.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from ..credits import CreditLedger
from ..errors import Forbidden, InvalidRequest, NoCredits, UserNotFound
from ..models import DERIVATIVE_KEYS, Artifact, ArtifactDraft, GenerateResponse, UserAccount, Variation
from ..storage import BaseStore
from .audit import audit_event
from .derivatives import DerivativeFanout
from .media import MediaStore, strip_exif
from .orchestrator import GenerationOrchestrator, GenerationResult
from .prompts import generate_hashtags
from .schemas import AvatarRequest

logger = logging.getLogger(__name__)


class AvatarService:
    def __init__(
        self,
        store: BaseStore,
        ledger: CreditLedger,
        orchestrator: GenerationOrchestrator,
        media: MediaStore,
        client: httpx.AsyncClient,
    ):
        self.store = store
        self.ledger = ledger
        self.orchestrator = orchestrator
        self.media = media
        self.client = client
        self.fanout = DerivativeFanout(media, client)

    def _load_user(self, user_id: str) -> UserAccount:
        user = self.store.get_user(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def _source_url(self, req: AvatarRequest) -> Optional[str]:
        if not req.uploaded_image_url:
            return None
        try:
            return self.media.vendor_url(req.uploaded_image_url)
        except FileNotFoundError as exc:
            raise InvalidRequest("Uploaded image not found.") from exc

    async def _persist_variations(self, variations: List[tuple]) -> List[Variation]:
        out: List[Variation] = []
        for style, image in variations:
            out.append(Variation(style=style, url=await self.media.persist(image, self.client)))
        return out

    def _discard_media(self, artifact: Artifact) -> None:
        """Delete the files written for an avatar that was rolled back."""
        refs = set(artifact.urls.values()) | {v.url for v in artifact.variations}
        for ref in refs:
            self.media.delete(ref)

    async def generate(self, user_id: str, req: AvatarRequest) -> GenerateResponse:
        user = self._load_user(user_id)
        self.ledger.enforce(user, req)

        premium_photo = user.premium and req.is_photo_request
        audit_event(
            "generate_request",
            user_id=user.id,
            photo=req.is_photo_request,
            size=req.size,
            style=req.art_style,
        )

        result: GenerationResult = await self.orchestrator.run(
            req,
            source_image_url=self._source_url(req),
            variations=premium_photo,
        )

        image_url = await self.media.persist(result.image, self.client)
        urls = {"normal": image_url, "thumbnail": image_url}
        if premium_photo:
            derived = await self.fanout.produce(result.image)
            urls.update({k: derived[k] for k in DERIVATIVE_KEYS if k in derived})

        draft = ArtifactDraft(
            user_id=user.id,
            user_name=user.display_name or "Anonymous",
            user_photo=user.photo_url,
            prompt=result.prompt,
            provider=result.provider,
            request=req.model_dump(exclude={"user_id"}),
            urls=urls,
            variations=await self._persist_variations(result.variations),
            size=req.size,
            is_premium=user.premium,
            hashtags=generate_hashtags(req.art_style, req.gender, req.age),
        )
        artifact = self.store.create_artifact(draft)

        try:
            remaining = self.ledger.commit(user)
        except NoCredits:
            self.store.delete_artifact(artifact.id)
            self._discard_media(artifact)
            audit_event("credit_race_lost", user_id=user.id, avatar_id=artifact.id)
            raise

        audit_event(
            "generate_done",
            user_id=user.id,
            avatar_id=artifact.id,
            provider=result.provider,
            placeholder=result.is_placeholder,
            attempts=result.attempts,
        )
        return GenerateResponse(
            artifact=artifact,
            credits_remaining="unlimited" if remaining is None else remaining,
        )

    async def variations(self, user_id: str, image_url: str) -> List[Variation]:
        """Premium-only restyles of an uploaded photo."""
        user = self._load_user(user_id)
        if not user.premium:
            raise Forbidden("Style variations are a premium feature. Upgrade now!")
        try:
            source = self.media.vendor_url(image_url)
        except FileNotFoundError as exc:
            raise InvalidRequest("Image not found.") from exc
        results = await self.orchestrator.generate_variations(source)
        audit_event("variations", user_id=user.id, count=len(results))
        return await self._persist_variations(results)

    async def remove_background(self, user_id: str, image_url: str) -> str:
        """Cut the subject out of a photo and return the stored result's URL."""
        user = self._load_user(user_id)
        try:
            source = self.media.vendor_url(image_url)
        except FileNotFoundError as exc:
            raise InvalidRequest("Image not found.") from exc
        image = await self.orchestrator.remove_background(source)
        url = await self.media.persist(image, self.client)
        audit_event("remove_background", user_id=user.id)
        return url

    def store_upload(self, data: bytes) -> str:
        """Persist an already-validated upload and return its media URL."""
        return self.media.save(strip_exif(data))
