# -*- coding: utf-8 -*-
"""
Generation operations for the render tools (Gemini / Imagen / Veo)

Responsible for:
- validating request shapes before any key is leased
- building provider requests and normalizing provider responses
- running every provider call through the key-rotating executor

NO retry or failure interpretation lives here.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from google import genai
from google.genai import types

from render_ai.contract import (
    ASPECT_RATIOS,
    IMAGE_RESOLUTIONS,
    MAX_IMAGES_PER_REQUEST,
    MODEL_HIGH_QUALITY_IMAGE,
    MODEL_LEGACY_IMAGE,
    MODEL_STANDARD_IMAGE,
    MODEL_TEXT,
    MODEL_VIDEO,
)
from render_ai.error_catalog import UserFacingError, classify
from render_ai.models import EditResult, InlineImage, to_data_uri
from render_ai.orchestrator import KeyRotationExecutor
from render_ai.utils.retry_policy import _env_int

logger = logging.getLogger("render_ai.operations")

VIDEO_POLL_SEC = 5.0
VIDEO_MAX_POLLS = max(1, _env_int("VIDEO_MAX_POLLS", 120))
DEFAULT_VIDEO_MIME_TYPE = "video/mp4"

ClientFactory = Callable[[str], Any]


class VideoTimeoutError(RuntimeError):
    """Long-running video operation never reported done."""

    # Gateway timeout: classified as a caller-visible failure, not retried.
    status = 504


def default_client_factory(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


# =========================================================
# Validation
# =========================================================
def _require_prompt(prompt: str) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValueError("Prompt must be a non-empty string")
    return prompt.strip()


def _require_aspect_ratio(aspect_ratio: str) -> str:
    if aspect_ratio not in ASPECT_RATIOS:
        raise ValueError(f"Unsupported aspect_ratio={aspect_ratio}")
    return aspect_ratio


def _require_count(number_of_images: int) -> int:
    count = int(number_of_images)
    if count < 1 or count > MAX_IMAGES_PER_REQUEST:
        raise ValueError(f"number_of_images must be between 1 and {MAX_IMAGES_PER_REQUEST}")
    return count


def _image_size_for(resolution: str) -> str:
    if resolution not in IMAGE_RESOLUTIONS:
        raise ValueError(f"Unsupported resolution={resolution}")
    return "1K" if resolution == "Standard" else resolution


# =========================================================
# Response parsing
# =========================================================
def _image_part(image: InlineImage) -> types.Part:
    return types.Part.from_bytes(data=image.data, mime_type=image.mime_type)


def _inline_images(response: Any) -> List[str]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    urls = []
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            urls.append(to_data_uri(inline.data, inline.mime_type))
    return urls


class GenerationService:
    def __init__(
        self,
        executor: KeyRotationExecutor,
        client_factory: ClientFactory = default_client_factory,
        *,
        video_poll_sec: float = VIDEO_POLL_SEC,
        max_video_polls: int = VIDEO_MAX_POLLS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.executor = executor
        self.client_factory = client_factory
        self.video_poll_sec = video_poll_sec
        self.max_video_polls = max(1, int(max_video_polls))
        self._sleep = sleep

    def _run(self, name: str, call: Callable[[Any, str], Any], job_id: Optional[str] = None):
        def operation(key: str):
            return call(self.client_factory(key), key)

        try:
            return self.executor.execute(operation, job_id, operation_name=name)
        except UserFacingError:
            raise
        except Exception as exc:
            raise UserFacingError.from_failure(classify(exc)) from exc

    # =========================================================
    # Images
    # =========================================================
    def generate_standard_image(
        self,
        prompt: str,
        aspect_ratio: str,
        number_of_images: int = 1,
        source_image: Optional[InlineImage] = None,
        job_id: Optional[str] = None,
    ) -> List[str]:
        prompt = _require_prompt(prompt)
        _require_aspect_ratio(aspect_ratio)
        count = _require_count(number_of_images)
        logger.info("generate_standard_image model=%s count=%s job_id=%s", MODEL_STANDARD_IMAGE, count, job_id)

        contents: List[Any] = []
        if source_image is not None:
            contents.append(_image_part(source_image))
        contents.append(prompt)

        def call(client, key):
            out = []
            for _ in range(count):
                response = client.models.generate_content(
                    model=MODEL_STANDARD_IMAGE,
                    contents=contents,
                    config=types.GenerateContentConfig(
                        response_modalities=["IMAGE"],
                        image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
                    ),
                )
                images = _inline_images(response)
                if not images:
                    raise RuntimeError("No image data returned from standard model")
                out.append(images[-1])
            return out

        return self._run("generate_standard_image", call, job_id)

    def generate_image(
        self,
        prompt: str,
        aspect_ratio: str,
        number_of_images: int = 1,
        job_id: Optional[str] = None,
    ) -> List[str]:
        """
        Imagen first; any terminal failure (a billing-restricted key included)
        falls back to the flash image model.
        """
        prompt = _require_prompt(prompt)
        _require_aspect_ratio(aspect_ratio)
        count = _require_count(number_of_images)

        def call(client, key):
            response = client.models.generate_images(
                model=MODEL_LEGACY_IMAGE,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=count,
                    output_mime_type="image/jpeg",
                    aspect_ratio=aspect_ratio,
                ),
            )
            generated = getattr(response, "generated_images", None) or []
            urls = [
                to_data_uri(gi.image.image_bytes, "image/jpeg")
                for gi in generated
                if getattr(getattr(gi, "image", None), "image_bytes", None)
            ]
            if not urls:
                raise RuntimeError("No images generated")
            return urls

        try:
            return self._run("generate_image", call, job_id)
        except UserFacingError as exc:
            logger.warning("generate_image_fallback kind=%s job_id=%s", exc.kind, job_id)
            return self._generate_image_fallback(prompt, count, job_id)

    def _generate_image_fallback(self, prompt: str, count: int, job_id: Optional[str]) -> List[str]:
        def call(client, key):
            out = []
            for _ in range(count):
                response = client.models.generate_content(
                    model=MODEL_STANDARD_IMAGE,
                    contents=[prompt],
                    config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
                )
                images = _inline_images(response)
                if not images:
                    raise RuntimeError("No image data in fallback response")
                out.append(images[0])
            return out

        return self._run("generate_image_fallback", call, job_id)

    def generate_high_quality_image(
        self,
        prompt: str,
        aspect_ratio: str,
        resolution: str,
        source_image: Optional[InlineImage] = None,
        job_id: Optional[str] = None,
        reference_images: Optional[Sequence[InlineImage]] = None,
    ) -> List[str]:
        prompt = _require_prompt(prompt)
        _require_aspect_ratio(aspect_ratio)
        image_size = _image_size_for(resolution)
        references = list(reference_images or [])
        logger.info(
            "generate_high_quality_image model=%s size=%s references=%s job_id=%s",
            MODEL_HIGH_QUALITY_IMAGE,
            image_size,
            len(references),
            job_id,
        )

        contents: List[Any] = []
        if source_image is not None:
            contents.append(_image_part(source_image))
        contents.extend(_image_part(img) for img in references)
        if source_image is not None or references:
            contents.append(f"{prompt}. Maintain composition/style from provided images.")
        else:
            contents.append(prompt)

        def call(client, key):
            response = client.models.generate_content(
                model=MODEL_HIGH_QUALITY_IMAGE,
                contents=contents,
                config=types.GenerateContentConfig(
                    image_config=types.ImageConfig(aspect_ratio=aspect_ratio, image_size=image_size),
                ),
            )
            images = _inline_images(response)
            if not images:
                raise RuntimeError("High quality model returned no image; the content may have been blocked")
            return images

        return self._run("generate_high_quality_image", call, job_id)

    # =========================================================
    # Video
    # =========================================================
    def generate_video(
        self,
        prompt: str,
        start_image: Optional[InlineImage] = None,
        job_id: Optional[str] = None,
    ) -> str:
        prompt = _require_prompt(prompt)
        final_prompt = f'Animate the provided image: "{prompt}"' if start_image is not None else prompt
        image = None
        if start_image is not None:
            image = types.Image(image_bytes=start_image.data, mime_type=start_image.mime_type)

        def call(client, key):
            operation = client.models.generate_videos(
                model=MODEL_VIDEO,
                prompt=final_prompt,
                image=image,
                config=types.GenerateVideosConfig(number_of_videos=1),
            )
            polls = 0
            while not operation.done:
                if polls >= self.max_video_polls:
                    raise VideoTimeoutError(
                        f"Video generation timed out after {polls * self.video_poll_sec:.0f}s"
                    )
                self._sleep(self.video_poll_sec)
                operation = client.operations.get(operation)
                polls += 1

            generated = getattr(getattr(operation, "response", None), "generated_videos", None) or []
            video = generated[0].video if generated else None
            if video is None:
                raise RuntimeError("Video generation failed: no video returned")
            data = client.files.download(file=video)
            if not data:
                raise RuntimeError("Failed to download video")
            return to_data_uri(data, getattr(video, "mime_type", None) or DEFAULT_VIDEO_MIME_TYPE)

        return self._run("generate_video", call, job_id)

    # =========================================================
    # Edits
    # =========================================================
    def _edit(self, name: str, images: Sequence[InlineImage], prompt: str, number_of_images: int, job_id: Optional[str]) -> List[EditResult]:
        prompt = _require_prompt(prompt)
        count = _require_count(number_of_images)
        contents: List[Any] = [_image_part(img) for img in images]
        contents.append(prompt)

        def call(client, key):
            out = []
            for _ in range(count):
                response = client.models.generate_content(
                    model=MODEL_STANDARD_IMAGE,
                    contents=contents,
                    config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
                )
                images_out = _inline_images(response)
                if not images_out:
                    raise RuntimeError("No image returned")
                out.append(EditResult(image_url=images_out[0]))
            return out

        return self._run(name, call, job_id)

    def edit_image(self, prompt: str, image: InlineImage, number_of_images: int = 1, job_id: Optional[str] = None) -> List[EditResult]:
        return self._edit("edit_image", [image], prompt, number_of_images, job_id)

    def edit_image_with_mask(
        self, prompt: str, image: InlineImage, mask: InlineImage, number_of_images: int = 1, job_id: Optional[str] = None
    ) -> List[EditResult]:
        return self._edit("edit_image_with_mask", [image, mask], prompt, number_of_images, job_id)

    def edit_image_with_reference(
        self, prompt: str, source: InlineImage, ref: InlineImage, number_of_images: int = 1, job_id: Optional[str] = None
    ) -> List[EditResult]:
        return self._edit("edit_image_with_reference", [source, ref], prompt, number_of_images, job_id)

    def edit_image_with_mask_and_reference(
        self,
        prompt: str,
        source: InlineImage,
        mask: InlineImage,
        ref: InlineImage,
        number_of_images: int = 1,
        job_id: Optional[str] = None,
    ) -> List[EditResult]:
        return self._edit("edit_image_with_mask_and_reference", [source, mask, ref], prompt, number_of_images, job_id)

    def edit_image_with_multiple_references(
        self,
        prompt: str,
        source: InlineImage,
        refs: Sequence[InlineImage],
        number_of_images: int = 1,
        job_id: Optional[str] = None,
    ) -> List[EditResult]:
        return self._edit("edit_image_with_multiple_references", [source, *refs], prompt, number_of_images, job_id)

    def edit_image_with_mask_and_multiple_references(
        self,
        prompt: str,
        source: InlineImage,
        mask: InlineImage,
        refs: Sequence[InlineImage],
        number_of_images: int = 1,
        job_id: Optional[str] = None,
    ) -> List[EditResult]:
        return self._edit(
            "edit_image_with_mask_and_multiple_references", [source, mask, *refs], prompt, number_of_images, job_id
        )

    def generate_staging_image(
        self,
        prompt: str,
        scene: InlineImage,
        objects: Sequence[InlineImage],
        number_of_images: int = 1,
        job_id: Optional[str] = None,
    ) -> List[EditResult]:
        return self._edit("generate_staging_image", [scene, *objects], prompt, number_of_images, job_id)

    # =========================================================
    # Text
    # =========================================================
    def _text(self, name: str, contents: List[Any], config: Optional[types.GenerateContentConfig] = None) -> str:
        def call(client, key):
            response = client.models.generate_content(model=MODEL_TEXT, contents=contents, config=config)
            return getattr(response, "text", None) or ""

        return self._run(name, call)

    def generate_text(self, prompt: str) -> str:
        return self._text("generate_text", [_require_prompt(prompt)])

    def generate_prompt_from_image_and_text(self, image: InlineImage, prompt: str) -> str:
        return self._text(
            "generate_prompt_from_image_and_text",
            [_image_part(image), f"Analyze image. {_require_prompt(prompt)}"],
        )

    def enhance_prompt(self, prompt: str, image: Optional[InlineImage] = None) -> str:
        contents: List[Any] = [_image_part(image)] if image is not None else []
        contents.append(f"Enhance this prompt for architecture: {_require_prompt(prompt)}")
        return self._text("enhance_prompt", contents)

    def generate_moodboard_prompt_from_scene(self, image: InlineImage) -> str:
        return self.generate_prompt_from_image_and_text(
            image, "Create a detailed moodboard prompt describing style, colors, and materials."
        )

    def generate_prompt_suggestions(self, image: InlineImage, subject: str, count: int, instruction: str) -> Dict[str, List[str]]:
        prompt = (
            f'Analyze this image. Provide {int(count)} prompts based on "{subject}". '
            f"{instruction}. Output strictly JSON."
        )
        raw = self._text(
            "generate_prompt_suggestions",
            [_image_part(image), prompt],
            types.GenerateContentConfig(response_mime_type="application/json"),
        )
        try:
            parsed = json.loads(raw or "{}")
        except ValueError:
            logger.warning("prompt_suggestions_unparseable chars=%s", len(raw or ""))
            return {}
        return parsed if isinstance(parsed, dict) else {}
