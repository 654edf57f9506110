"""
HTTP API
========

FastAPI application exposing channels, videos, summaries, background
progress and Markdown export under /api.

Run with:
    uvicorn tubedigest.api:app
or:
    python orchestrator.py serve
"""

import logging
import urllib.parse as up
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .channel_resolver import ChannelResolutionError
from .progress import InvalidTransition
from .service import DigestService, build_service
from .store import FREQUENCIES, DuplicateError, NotFoundError
from .youtube_api import YTError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ChannelCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    channel_url: str = Field(alias="channelUrl")
    frequency: str = "daily"
    is_active: bool = Field(True, alias="isActive")

    @field_validator("channel_url")
    @classmethod
    def validate_url(cls, v: str):
        parsed = up.urlparse(v.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Please enter a valid URL.")
        return v.strip()

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, v: str):
        if v not in FREQUENCIES:
            raise ValueError(f"frequency must be one of {', '.join(FREQUENCIES)}")
        return v


def _message(text: str, code: int = 200) -> JSONResponse:
    return JSONResponse({"message": text}, status_code=code)


def _attachment(filename: str) -> str:
    quoted = up.quote(filename)
    return f"attachment; filename=\"{quoted}\"; filename*=UTF-8''{quoted}"


def create_app(service: Optional[DigestService] = None) -> FastAPI:
    """Build the API; a service is wired from settings when none is given."""
    app = FastAPI(title="tubedigest", version="1.0.0")
    app.state.service = service

    def get_service(request: Request) -> DigestService:
        if request.app.state.service is None:
            request.app.state.service = build_service()
        return request.app.state.service

    @app.exception_handler(ApiError)
    async def api_error_handler(_request: Request, exc: ApiError):
        return _message(exc.message, exc.status_code)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_request: Request, exc: NotFoundError):
        return _message(str(exc), status.HTTP_404_NOT_FOUND)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(_request: Request, exc: RequestValidationError):
        logger.info("Rejected request body: %s", exc.errors())
        return _message("Invalid input data.", status.HTTP_400_BAD_REQUEST)

    # ----- stats -----

    @app.get("/api/stats")
    def get_stats(svc: DigestService = Depends(get_service)):
        return svc.stats()

    # ----- channels -----

    @app.get("/api/channels")
    def list_channels(svc: DigestService = Depends(get_service)):
        return [c.api_dict() for c in svc.store.channels_with_stats()]

    @app.post("/api/channels", status_code=status.HTTP_201_CREATED)
    def create_channel(body: ChannelCreate, svc: DigestService = Depends(get_service)):
        try:
            channel = svc.register_channel(body.channel_url, body.frequency, body.is_active)
        except ChannelResolutionError as e:
            logger.info("Channel resolution failed for %s: %s", body.channel_url, e)
            raise ApiError(status.HTTP_400_BAD_REQUEST, e.user_message)
        except DuplicateError:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "This channel is already registered.")
        return channel.api_dict()

    @app.post("/api/channels/fetch-all-videos")
    def fetch_all_videos(svc: DigestService = Depends(get_service)):
        if not svc.store.list_channels():
            raise ApiError(status.HTTP_400_BAD_REQUEST, "No channels are registered.")
        result = svc.fetch_all_channel_videos()
        body = result.as_dict("channels")
        body["totalChannels"] = body.pop("total")
        return body

    @app.put("/api/channels/{channel_id}/refresh")
    def refresh_channel(channel_id: int, svc: DigestService = Depends(get_service)):
        try:
            return svc.refresh_channel(channel_id).api_dict()
        except ChannelResolutionError as e:
            raise ApiError(status.HTTP_400_BAD_REQUEST, e.user_message)
        except DuplicateError:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "This channel is already registered.")

    @app.delete("/api/channels/{channel_id}")
    def delete_channel(channel_id: int, svc: DigestService = Depends(get_service)):
        svc.delete_channel(channel_id)
        return {"message": "Channel deleted."}

    @app.post("/api/channels/{channel_id}/fetch-videos")
    def fetch_videos(channel_id: int, svc: DigestService = Depends(get_service)):
        try:
            added = svc.fetch_channel_videos(channel_id)
        except YTError as e:
            logger.error("Video fetch failed for channel %s: %s", channel_id, e)
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch videos.")
        return {"message": "Videos fetched successfully.", "added": added}

    # ----- videos -----

    @app.get("/api/videos")
    def list_videos(
        channelId: Optional[int] = None,
        limit: int = 50,
        svc: DigestService = Depends(get_service),
    ):
        if channelId is not None:
            videos = svc.store.videos_by_channel(channelId)
        else:
            videos = svc.store.latest_videos(limit)
        return [v.api_dict() for v in videos]

    @app.delete("/api/videos/{video_id}")
    def delete_video(video_id: int, svc: DigestService = Depends(get_service)):
        svc.delete_video(video_id)
        return {"message": "Video deleted."}

    def _start_summary(video_id: int, svc: DigestService) -> JSONResponse:
        progress_id = svc.start_summary(video_id)
        return JSONResponse(
            {"message": "Summary generation started.", "progressId": progress_id},
            status_code=status.HTTP_202_ACCEPTED,
        )

    @app.post("/api/videos/{video_id}/summary")
    def start_video_summary(video_id: int, svc: DigestService = Depends(get_service)):
        return _start_summary(video_id, svc)

    # ----- summaries -----

    @app.post("/api/summaries/{video_id}")
    def start_summary_legacy(video_id: int, svc: DigestService = Depends(get_service)):
        return _start_summary(video_id, svc)

    @app.get("/api/summaries")
    def list_summaries(
        channelId: Optional[int] = None,
        search: Optional[str] = None,
        svc: DigestService = Depends(get_service),
    ):
        if search:
            rows = svc.store.search_summaries(search)
        elif channelId is not None:
            rows = svc.store.summaries(channelId)
        else:
            rows = svc.store.latest_summaries(20)
        return [r.api_dict() for r in rows]

    @app.delete("/api/summaries/{summary_id}")
    def delete_summary(summary_id: int, svc: DigestService = Depends(get_service)):
        svc.delete_summary(summary_id)
        return {"message": "Summary deleted."}

    # ----- progress -----

    @app.get("/api/progress")
    def list_progress(svc: DigestService = Depends(get_service)):
        return [item.api_dict() for item in svc.registry.list()]

    @app.post("/api/progress/{progress_id}/cancel")
    def cancel_progress(progress_id: str, svc: DigestService = Depends(get_service)):
        try:
            svc.registry.cancel(progress_id)
        except InvalidTransition:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "This task can no longer be cancelled.")
        except KeyError:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Progress item not found.")
        return {"message": "Summary generation cancelled."}

    @app.delete("/api/progress/{progress_id}")
    def delete_progress(progress_id: str, svc: DigestService = Depends(get_service)):
        if not svc.registry.remove(progress_id):
            raise ApiError(status.HTTP_404_NOT_FOUND, "Progress item not found.")
        return {"message": "Progress item deleted."}

    # ----- export -----

    @app.get("/api/export/{summary_id}")
    def export_summary(summary_id: int, svc: DigestService = Depends(get_service)):
        result = svc.export_summary(summary_id)
        if result.method == "obsidian_direct":
            return {
                "message": "Saved to Obsidian.",
                "path": result.path,
                "method": result.method,
            }
        return Response(
            content=result.markdown.encode("utf-8"),
            media_type="text/markdown; charset=utf-8",
            headers={"Content-Disposition": _attachment(result.filename)},
        )

    @app.get("/api/export-all")
    def export_all(channelId: Optional[int] = None, svc: DigestService = Depends(get_service)):
        return Response(
            content=svc.export_all(channelId),
            media_type="application/zip",
            headers={"Content-Disposition": _attachment("obsidian-summaries.zip")},
        )

    return app


app = create_app()
