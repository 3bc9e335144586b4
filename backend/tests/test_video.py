from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from creatomate import CreatomateApiError, RenderStatusResult
from generations import GenerationTracker, JobStatus
from video import TEMPLATE_IDS, VideoRequest, build_modifications, process_video_job


class FakeCreatomate:
    def __init__(self, statuses=(), create_error: Exception | None = None) -> None:
        self.statuses = list(statuses)
        self.create_error = create_error
        self.submitted: list[tuple[str, dict]] = []
        self.lookups = 0

    async def create_render(self, template_id: str, modifications: dict) -> list[dict]:
        if self.create_error is not None:
            raise self.create_error
        self.submitted.append((template_id, modifications))
        return [{"id": "r1", "status": "planned"}]

    async def get_render_status(self, render_id: str) -> RenderStatusResult:
        self.lookups += 1
        if self.statuses:
            return self.statuses.pop(0)
        return RenderStatusResult(success=True, status="rendering")


def reel_request(**overrides) -> VideoRequest:
    payload = {
        "slides": [
            {"frameUrl": "https://cdn.example.com/1.png", "caption": "Summer\x07 sale "},
            {"frameUrl": "data:image/png;base64,AAAA"},
        ],
        "template": "social-reel",
        "aspectRatio": "9:16",
    }
    payload.update(overrides)
    return VideoRequest.model_validate(payload)


@pytest.fixture
def tracker(store):
    return GenerationTracker(store)


def test_social_reel_modifications():
    modifications = build_modifications(reel_request())

    assert modifications == {
        "width": 1080,
        "height": 1920,
        "Image-1.source": "https://cdn.example.com/1.png",
        "Text-1.text": "Summer sale",
        "Image-2.source": "https://placehold.co/600x400/png?text=Slide+2",
        "Text-2.text": "Item 2",
    }


def test_social_reel_uses_at_most_four_slides():
    slides = [{"frameUrl": f"https://cdn.example.com/{i}.png"} for i in range(6)]

    modifications = build_modifications(reel_request(slides=slides, aspectRatio="1:1"))

    assert (modifications["width"], modifications["height"]) == (1080, 1080)
    assert "Image-4.source" in modifications
    assert "Image-5.source" not in modifications


def test_product_showcase_fills_defaults():
    request = VideoRequest.model_validate(
        {
            "slides": [{"frameUrl": "https://cdn.example.com/mug.png"}],
            "template": "product-showcase",
            "productData": {"productName": "Mug", "normalPrice": " 25 ", "logoUrl": "https://cdn.example.com/logo.png"},
        }
    )

    modifications = build_modifications(request)

    assert (modifications["width"], modifications["height"]) == (1920, 1080)
    assert modifications["Product-Image.source"] == "https://cdn.example.com/mug.png"
    assert modifications["Product-Name.text"] == "Mug"
    assert modifications["Product-Description.text"] == "Product Description"
    assert modifications["Normal-Price.text"] == "$25"
    assert modifications["Discounted-Price.text"] == "$79.99"
    assert modifications["CTA.text"] == "Shop Now"
    assert modifications["Website.text"] == "www.example.com"
    assert modifications["Logo.source"] == "https://cdn.example.com/logo.png"
    assert "Subtitle.text" not in modifications


def test_request_requires_slides():
    with pytest.raises(ValidationError, match="No slides provided"):
        reel_request(slides=[])


def test_product_showcase_requires_product_data():
    with pytest.raises(ValidationError, match="Product data required"):
        VideoRequest.model_validate(
            {"slides": [{"frameUrl": "https://cdn.example.com/mug.png"}], "template": "product-showcase"}
        )


def test_job_completes_when_render_succeeds(tracker):
    client = FakeCreatomate(
        statuses=[
            RenderStatusResult(success=True, status="rendering"),
            RenderStatusResult(success=False, error="API error 503"),
            RenderStatusResult(success=True, status="rendering"),
            RenderStatusResult(success=True, status="succeeded", url="https://cdn.creatomate.test/r1.mp4"),
        ]
    )
    tracker.start("job-1")

    asyncio.run(process_video_job(tracker, client, "job-1", reel_request(), poll_interval=0))

    status = tracker.get_status("job-1")
    updates = tracker.get_updates("job-1")
    assert status.status == JobStatus.COMPLETED
    assert status.result == {"renderId": "r1", "url": "https://cdn.creatomate.test/r1.mp4"}
    assert updates.is_complete is True
    assert [(p.id, p.url) for p in updates.image_preview_urls] == [("r1", "https://cdn.creatomate.test/r1.mp4")]
    assert "Status check failed: API error 503" in updates.status_messages
    assert updates.status_messages.count("Render status: rendering") == 1
    assert updates.status_messages[-1] == "Video ready!"
    assert client.submitted[0][0] == TEMPLATE_IDS["social-reel"]


def test_job_fails_when_render_fails(tracker):
    client = FakeCreatomate(
        statuses=[RenderStatusResult(success=True, status="failed", error_message="Source image unreachable")]
    )

    asyncio.run(process_video_job(tracker, client, "job-1", reel_request(), poll_interval=0))

    status = tracker.get_status("job-1")
    assert status.status == JobStatus.FAILED
    assert status.error == "Source image unreachable"


def test_job_fails_after_max_polls(tracker):
    client = FakeCreatomate()

    asyncio.run(process_video_job(tracker, client, "job-1", reel_request(), poll_interval=0, max_polls=3))

    status = tracker.get_status("job-1")
    assert client.lookups == 3
    assert status.status == JobStatus.FAILED
    assert status.error == "Render r1 did not finish after 3 status checks"


def test_job_fails_when_submission_raises(tracker):
    client = FakeCreatomate(create_error=CreatomateApiError(message="Missing Creatomate API Key"))

    asyncio.run(process_video_job(tracker, client, "job-1", reel_request(), poll_interval=0))

    status = tracker.get_status("job-1")
    assert status.status == JobStatus.FAILED
    assert status.error == "Missing Creatomate API Key"
    assert tracker.get_updates("job-1").status_messages[-1] == "Generation failed: Missing Creatomate API Key"
