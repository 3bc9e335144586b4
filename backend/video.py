"""
Video generation worker.

Key public functions:
  build_modifications(request)                      - template fields for a Creatomate render
  process_video_job(tracker, client, job_id, req)   - submit render, poll it, report progress

The worker is the only writer for its job; progress goes through GenerationTracker
so the UI can poll /api/generation-updates while the render runs.
"""

import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import field_validator, model_validator

from creatomate import CreatomateApiError, CreatomateClient
from generations import CamelModel, GenerationTracker

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
RENDER_POLL_INTERVAL: float = float(os.getenv("RENDER_POLL_INTERVAL", "5"))
RENDER_MAX_POLLS: int = int(os.getenv("RENDER_MAX_POLLS", "120"))
MAX_SLIDES: int = int(os.getenv("MAX_SLIDES", "10"))

TEMPLATE_IDS: Dict[str, str] = {
    "social-reel": "543a4dfc-2286-45f1-acf5-86070a961708",
    "product-showcase": "4cc27f0e-4641-44c2-a768-6b757225e11f",
}
SOCIAL_REEL_MAX_SLIDES = 4

_DIMENSIONS: Dict[str, tuple] = {
    "9:16": (1080, 1920),
    "1:1": (1080, 1080),
    "16:9": (1920, 1080),
}
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class Slide(CamelModel):
    frame_url: str
    caption: Optional[str] = None


class ProductData(CamelModel):
    product_name: str = ""
    product_description: str = ""
    normal_price: str = ""
    discounted_price: str = ""
    cta: str = ""
    website: str = ""
    logo_url: Optional[str] = None


class VideoRequest(CamelModel):
    slides: List[Slide]
    template: Literal["social-reel", "product-showcase"]
    aspect_ratio: Literal["9:16", "1:1", "16:9"] = "16:9"
    product_data: Optional[ProductData] = None

    @field_validator("slides")
    @classmethod
    def validate_slides(cls, v: List[Slide]) -> List[Slide]:
        if not v:
            raise ValueError("No slides provided")
        if len(v) > MAX_SLIDES:
            raise ValueError(f"{len(v)} slides exceeds the {MAX_SLIDES} slide limit")
        return v

    @model_validator(mode="after")
    def validate_product_data(self) -> "VideoRequest":
        if self.template == "product-showcase" and self.product_data is None:
            raise ValueError("Product data required for product-showcase template")
        return self


# ---------------------------------------------------------------------------
# Template modifications
# ---------------------------------------------------------------------------

def sanitize_text(text: Optional[str]) -> str:
    """Strip control characters Creatomate rejects in text layers."""
    if not text:
        return ""
    return _CONTROL_CHARS.sub("", text).strip()


def _frame_source(frame_url: str, index: int) -> str:
    if frame_url.startswith("http"):
        return frame_url
    logger.warning("Slide %d is not a public URL; using placeholder", index + 1)
    return f"https://placehold.co/600x400/png?text=Slide+{index + 1}"


def build_modifications(request: VideoRequest) -> Dict[str, Any]:
    """Map a VideoRequest onto the named layers of its Creatomate template."""
    width, height = _DIMENSIONS.get(request.aspect_ratio, _DIMENSIONS["16:9"])
    modifications: Dict[str, Any] = {"width": width, "height": height}

    slides = [
        (_frame_source(slide.frame_url, i), sanitize_text(slide.caption))
        for i, slide in enumerate(request.slides)
    ]

    if request.template == "social-reel":
        for i, (image_url, caption) in enumerate(slides[:SOCIAL_REEL_MAX_SLIDES]):
            modifications[f"Image-{i + 1}.source"] = image_url
            modifications[f"Text-{i + 1}.text"] = caption or f"Item {i + 1}"
        return modifications

    product = request.product_data or ProductData()
    image_url, caption = slides[0]
    modifications["Product-Image.source"] = image_url
    modifications["Product-Name.text"] = caption or sanitize_text(product.product_name) or "Product Name"
    modifications["Product-Description.text"] = (
        sanitize_text(product.product_description) or "Product Description"
    )
    modifications["Normal-Price.text"] = f"${product.normal_price.strip() or '99.99'}"
    modifications["Discounted-Price.text"] = f"${product.discounted_price.strip() or '79.99'}"
    modifications["CTA.text"] = sanitize_text(product.cta) or "Shop Now"
    modifications["Website.text"] = sanitize_text(product.website) or "www.example.com"
    if caption:
        modifications["Subtitle.text"] = caption
    if product.logo_url and product.logo_url.startswith("http"):
        modifications["Logo.source"] = product.logo_url
    return modifications


# ---------------------------------------------------------------------------
# Background job pipeline
# ---------------------------------------------------------------------------

async def process_video_job(
    tracker: GenerationTracker,
    client: CreatomateClient,
    job_id: str,
    request: VideoRequest,
    poll_interval: Optional[float] = None,
    max_polls: Optional[int] = None,
) -> None:
    """
    Full pipeline executed in the background:
      1. Build template modifications from the slides
      2. Submit the render to Creatomate
      3. Poll the render until it succeeds, fails, or we give up
      4. Publish the output URL as a preview and mark the job done
    """
    interval = RENDER_POLL_INTERVAL if poll_interval is None else poll_interval
    attempts = RENDER_MAX_POLLS if max_polls is None else max_polls

    try:
        # ---- 1. Modifications ---------------------------------------------
        tracker.record_progress(job_id, f"Preparing {len(request.slides)} slide(s)...")
        modifications = build_modifications(request)

        # ---- 2. Submit ----------------------------------------------------
        tracker.set_stage(job_id, "submitting")
        tracker.record_progress(job_id, f"Submitting {request.template} render...")
        renders = await client.create_render(TEMPLATE_IDS[request.template], modifications)
        render_id = renders[0].get("id")
        if not render_id:
            raise CreatomateApiError(message="Creatomate response is missing a render id")

        tracker.set_stage(job_id, "rendering")
        tracker.record_progress(job_id, f"Render {render_id} queued")

        # ---- 3. Poll ------------------------------------------------------
        last_status = None
        for _ in range(attempts):
            await asyncio.sleep(interval)
            result = await client.get_render_status(render_id)
            if not result.success:
                tracker.record_progress(job_id, f"Status check failed: {result.error}")
                continue

            if result.status != last_status:
                tracker.record_progress(job_id, f"Render status: {result.status}")
                last_status = result.status

            if result.status == "succeeded":
                # ---- 4. Done ----------------------------------------------
                if result.url:
                    tracker.record_preview(job_id, result.url, preview_id=render_id)
                tracker.mark_complete(
                    job_id,
                    result={"renderId": render_id, "url": result.url},
                    message="Video ready!",
                )
                return
            if result.status == "failed":
                tracker.mark_failed(job_id, result.error_message or "Render failed")
                return

        tracker.mark_failed(job_id, f"Render {render_id} did not finish after {attempts} status checks")

    except Exception as exc:
        logger.exception("Video job %s failed", job_id)
        tracker.mark_failed(job_id, str(exc) or repr(exc))
