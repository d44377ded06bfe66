"""
Aura avatars — prompt construction.

Pure functions only: the same request always produces the same prompt text.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .schemas import AvatarRequest

# Values that mean "leave this trait out of the prompt"
_SENTINELS = {"", "none", "transparent"}

NEGATIVE_PROMPT = (
    "blurry, distorted, ugly, multiple faces, multiple people, text, watermark, "
    "nsfw, deformed, low quality, bad anatomy, extra limbs, disfigured, "
    "poor composition, cropped, out of frame"
)

QUALITY_SENTENCE = (
    "Style: professional digital art, ultra detailed, high quality, "
    "centered composition, soft studio lighting, sharp focus."
)

_BACKGROUND_PHRASES = {
    "gradient": "soft gradient backdrop with studio lighting",
    "solid": "clean solid color backdrop",
    "custom": "tasteful scenic backdrop that complements the character",
}

_AGE_PHRASES = {
    "child": "child",
    "teen": "teenage",
    "young-adult": "young adult",
    "adult": "adult",
    "senior": "senior",
}

# Photo transforms: art style -> style phrase
_PHOTO_STYLE_PHRASES = {
    "realistic": "photorealistic, high detail, professional portrait",
    "anime": "anime style, vibrant colors, detailed anime character portrait",
    "cartoon": "3D cartoon style, pixar style, smooth cartoon rendering",
    "fantasy": "fantasy art style, magical, ethereal, detailed fantasy portrait",
    "cyberpunk": "cyberpunk style, neon lights, futuristic, sci-fi portrait",
}

_PHOTO_EFFECT_PHRASES = {
    "light-glow": ", glowing aura effect, soft light emanating",
    "subtle": ", faint glowing aura",
    "strong": ", intense radiant aura, dramatic light",
    "holographic": ", holographic effect, iridescent, futuristic",
}

_PHOTO_BACKGROUND_PHRASES = {
    "gradient": "soft gradient background, studio lighting",
    "solid": "plain solid background",
    "custom": "scenic background",
    "transparent": "simple background, easy to remove",
}

# Ordered (name, phrase) pairs; the first VARIATION_COUNT are used
VARIATION_STYLES: Tuple[Tuple[str, str], ...] = (
    ("realistic", "photorealistic, high detail, professional portrait"),
    ("anime", "anime style, vibrant colors, detailed anime character"),
    ("cartoon", "3D cartoon style, pixar style, smooth rendering"),
    ("cyberpunk", "cyberpunk style, neon lights, futuristic, sci-fi"),
    ("watercolor", "watercolor painting style, soft colors, artistic"),
    ("3d-render", "3D rendered, CGI, high quality 3D model"),
)

VARIATION_NEGATIVE_PROMPT = "low quality, blurry, distorted"

MAX_HASHTAGS = 12

_BASE_HASHTAGS = ["#AIAvatar", "#AuraAvatar", "#DigitalArt", "#AIGeneratedArt"]
_STYLE_HASHTAGS = {
    "realistic": ["#PhotoRealistic", "#RealisticArt", "#DigitalPortrait"],
    "anime": ["#AnimeArt", "#AnimeStyle", "#AnimeAvatar", "#AnimePortrait"],
    "cartoon": ["#CartoonArt", "#CartoonStyle", "#CartoonAvatar"],
    "fantasy": ["#FantasyArt", "#FantasyCharacter", "#MagicalArt"],
    "cyberpunk": ["#Cyberpunk", "#NeonArt", "#FuturisticArt"],
}
_TRENDING_HASHTAGS = ["#AvatarOfTheDay", "#CharacterDesign", "#ProfilePicture", "#SocialMediaAvatar"]


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() not in _SENTINELS


def _trait_sentences(req: AvatarRequest) -> List[str]:
    """One sentence per trait in fixed order; sentinel-valued traits are skipped."""
    parts: List[str] = [f"Create a high-quality {req.art_style} digital portrait."]

    demo = f"The subject is a {_AGE_PHRASES.get(req.age, req.age)} {req.gender}"
    if _present(req.ethnicity):
        demo += f" of {req.ethnicity} heritage"
    parts.append(demo + ".")

    style = req.hair_style if _present(req.hair_style) else ""
    color = req.hair_color if _present(req.hair_color) else ""
    if style.lower() == "bald":
        parts.append("Hair: bald.")
    elif style and color:
        parts.append(f"Hair: {style} style, {color} color.")
    elif style:
        parts.append(f"Hair: {style} style.")
    elif color:
        parts.append(f"Hair: {color} color.")

    if _present(req.outfit):
        parts.append(f"Outfit: {req.outfit}.")

    if req.accessories:
        parts.append(f"Accessories: {', '.join(req.accessories)}.")

    parts.append(f"Pose: {req.pose} view.")

    if _present(req.aura_effect):
        parts.append(f"Add a {req.aura_effect} glowing aura effect around the character.")

    if _present(req.background):
        parts.append(f"Background: {_BACKGROUND_PHRASES.get(req.background, req.background)}.")

    return parts


def build_prompt(req: AvatarRequest) -> Tuple[str, str]:
    """Return ``(prompt, negative_prompt)`` for a text-to-image request."""
    if req.custom_prompt:
        custom = req.custom_prompt.rstrip().rstrip(".")
        return f"Create a high-quality {req.art_style} avatar: {custom}.", NEGATIVE_PROMPT

    sentences = _trait_sentences(req)
    sentences.append(QUALITY_SENTENCE)
    return " ".join(sentences), NEGATIVE_PROMPT


def build_photo_prompt(req: AvatarRequest) -> Tuple[str, str]:
    """Prompt for an image-conditioned transform of the uploaded photo."""
    style = _PHOTO_STYLE_PHRASES.get(req.art_style, _PHOTO_STYLE_PHRASES["realistic"])
    effect = _PHOTO_EFFECT_PHRASES.get(req.aura_effect, "")
    background = _PHOTO_BACKGROUND_PHRASES.get(req.background, "")
    prompt = f"transform this person into {style}{effect}"
    if background:
        prompt += f", {background}"
    prompt += ", high quality, detailed, portrait"
    if req.custom_prompt:
        prompt += f", {req.custom_prompt.rstrip('.')}"
    return prompt, NEGATIVE_PROMPT


def build_variation_prompt(style_phrase: str) -> Tuple[str, str]:
    return f"transform this person into {style_phrase}, high quality avatar", VARIATION_NEGATIVE_PROMPT


def _title_word(word: str) -> str:
    return word[:1].upper() + word[1:]


def generate_hashtags(
    art_style: Optional[str] = None,
    gender: Optional[str] = None,
    age: Optional[str] = None,
) -> List[str]:
    """Social hashtags for an avatar: base, style, demographic, trending; max 12."""
    tags: List[str] = list(_BASE_HASHTAGS)
    tags.extend(_STYLE_HASHTAGS.get(art_style or "", []))
    if gender:
        tags.append("#" + "".join(_title_word(w) for w in gender.split("-")) + "Character")
    if age:
        tags.append("#" + "".join(_title_word(w) for w in age.split("-")))
    tags.extend(_TRENDING_HASHTAGS)

    seen = set()
    out: List[str] = []
    for tag in tags:
        if tag in seen:
            continue
        seen.add(tag)
        out.append(tag)
    return out[:MAX_HASHTAGS]
