"""
Prompt enhancement: style suffixes, shared scene context and text normalisation.

Every function here is pure. ``enhance`` only appends context that is not
already present in the text, so running it twice gives the same result.
"""

from __future__ import annotations

import re

from pydantic import BaseModel

STYLES: dict[str, str] = {
    "cinematic": ", cinematic lighting, 4K resolution, professional color grading, shallow depth of field, film grain",
    "anime": ", anime style, vibrant colors, studio ghibli inspired, cel shading, dynamic composition",
    "realistic": ", photorealistic, natural lighting, 8K UHD, hyperdetailed, professional photography",
    "vintage": ", vintage film grain, nostalgic color palette, retro aesthetic, 35mm film look, warm tones",
    "documentary": ", documentary style, handheld camera feel, natural lighting, authentic atmosphere",
    "noir": ", film noir style, high contrast, dramatic shadows, black and white tones, moody atmosphere",
    "scifi": ", sci-fi aesthetic, futuristic elements, neon lighting, holographic effects, cyberpunk vibes",
}

CAMERA_STYLES: dict[str, str] = {
    "tracking": "smooth tracking shot, following subject",
    "dolly": "dolly zoom effect, dramatic perspective",
    "aerial": "aerial drone shot, sweeping view from above",
    "handheld": "handheld camera, authentic movement",
    "static": "static locked-off shot, stable composition",
    "crane": "crane shot, rising or descending movement",
    "pov": "point of view shot, first person perspective",
}

TIMES_OF_DAY = ["morning light", "sunset glow", "blue hour twilight", "golden hour", "night time"]

_REPEATED_SEPARATORS = re.compile(r",(\s*,)+")
_WHITESPACE = re.compile(r"\s+")
_LEADING = re.compile(r"^[\s,;]+")
_TRAILING = re.compile(r"[\s,;:.!?]+$")


class SceneContext(BaseModel):
    """Descriptive fields shared by every text scene in a queue."""

    subject: str = ""
    setting: str = ""
    style: str = ""
    mood: str = ""
    camera: str = ""  # key into CAMERA_STYLES

    def is_empty(self) -> bool:
        return not any((self.subject, self.setting, self.style, self.mood, self.camera))


def sanitize(text: str) -> str:
    """Collapse repeated separators and whitespace, capitalise, strip trailing punctuation."""
    out = _REPEATED_SEPARATORS.sub(",", text.strip())
    out = _WHITESPACE.sub(" ", out)
    out = _LEADING.sub("", out)
    out = _TRAILING.sub("", out)
    if out:
        out = out[0].upper() + out[1:]
    return out


def _fragment(value: str) -> str:
    # Context values go through the same cleanup so they stay substrings after sanitize()
    out = _REPEATED_SEPARATORS.sub(",", value.strip())
    out = _WHITESPACE.sub(" ", out)
    out = _LEADING.sub("", out)
    return _TRAILING.sub("", out)


def _contains(text: str, fragment: str) -> bool:
    return fragment.lower() in text.lower()


def enhance(text: str, style: str | None = None, context: SceneContext | None = None) -> str:
    """
    Append the style suffix and missing context phrases, then sanitize.

    Context is applied in fixed order: subject, setting, style, mood, camera.
    A phrase is skipped when its value already appears (case-insensitively).
    """
    out = text.strip()

    suffix = STYLES.get(style or "")
    if suffix and not _contains(out, _fragment(suffix)):
        out += suffix

    if context is not None and not context.is_empty():
        subject = _fragment(context.subject)
        setting = _fragment(context.setting)
        ctx_style = _fragment(context.style)
        mood = _fragment(context.mood)
        camera = CAMERA_STYLES.get(context.camera, "")

        if subject and not _contains(out, subject):
            out += f", featuring {subject}"
        if setting and not _contains(out, setting):
            out += f", set in {setting}"
        if ctx_style and not _contains(out, ctx_style):
            out += f", {ctx_style}"
        if mood and not _contains(out, mood):
            out += f", {mood} atmosphere"
        if camera and not _contains(out, camera):
            out += f", {camera}"

    return sanitize(out)


def generate_variations(base: str, count: int = 4) -> list[str]:
    """Camera-style x time-of-day variations of one prompt."""
    cameras = list(CAMERA_STYLES.values())
    base = base.strip()
    return [
        f"{base}, {cameras[i % len(cameras)]}, {TIMES_OF_DAY[i % len(TIMES_OF_DAY)]}"
        for i in range(count)
    ]


def build_payload(task_id: str, text: str) -> str:
    """Prefix the prompt with the task id so results can be correlated on the page."""
    return f"[{task_id}] {text}"
