from datetime import datetime, tzinfo
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from guide_engine import __version__
from guide_engine.dependencies import (
    GuideEngine,
    get_engine,
    get_response_timezone,
    get_schedule_service,
    get_subtitle_session,
)
from guide_engine.schemas import (
    ActiveCueResponse,
    ChannelResponse,
    CueResponse,
    CurrentProgramResponse,
    ProgramListResponse,
    ProgramResponse,
    RefreshResponse,
    SourceRefreshResult,
    SubtitleStateResponse,
    SubtitleTrackRequest,
)
from guide_engine.services.schedule_query_service import current_program, next_programs
from guide_engine.services.schedule_service import ScheduleService
from guide_engine.services.subtitle_service import SubtitleSession
from guide_engine.utils.http_fetch import sanitize_url_for_logging
from guide_engine.utils.timestamps import ensure_utc, utc_now


logger = logging.getLogger(__name__)

main_router = APIRouter()

ScheduleDep = Annotated[ScheduleService, Depends(get_schedule_service)]
SubtitleDep = Annotated[SubtitleSession, Depends(get_subtitle_session)]
ZoneDep = Annotated[tzinfo, Depends(get_response_timezone)]


@main_router.get("/")
async def root(engine: Annotated[GuideEngine, Depends(get_engine)]) -> dict:
    """Root endpoint with service information"""
    next_run = engine.scheduler.get_next_run_time() if engine.scheduler else None

    return {
        "service": "Guide Engine",
        "version": __version__,
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "refresh": "/refresh - Manually refresh all guide sources (POST)",
            "channels": "/channels - Cached channels",
            "current": "/channels/{id}/current - Program airing now",
            "next": "/channels/{id}/next - Upcoming programs",
            "programs": "/channels/{id}/programs - Programs in a time range",
            "subtitles": "/subtitles/track, /subtitles/active - Subtitle selection and active cue",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(engine: Annotated[GuideEngine, Depends(get_engine)]) -> dict:
    """Health check endpoint"""
    next_run = engine.scheduler.get_next_run_time() if engine.scheduler else None
    return {
        "status": "ok",
        "scheduler_running": engine.scheduler.running if engine.scheduler else False,
        "next_refresh": next_run.isoformat() if next_run else None,
        "channels_cached": len(engine.schedule_service.cache),
    }


@main_router.post("/refresh", response_model=RefreshResponse)
async def trigger_refresh(service: ScheduleDep) -> RefreshResponse:
    """
    Manually refresh every configured guide source

    Sources that cannot be fetched fall back to their persisted snapshot.
    """
    logger.info("Manual guide refresh triggered via API")
    outcomes = await service.refresh_all()

    return RefreshResponse(
        timestamp=utc_now().isoformat(),
        sources_processed=len(outcomes),
        channels_cached=len(service.list_channels()),
        source_details=[
            SourceRefreshResult(
                source_url=sanitize_url_for_logging(outcome.source_url),
                status=outcome.status,
                channels=len(outcome.channels),
            )
            for outcome in outcomes
        ],
    )


@main_router.get("/channels", response_model=list[ChannelResponse])
async def list_channels(service: ScheduleDep) -> list[ChannelResponse]:
    """List cached channels that are still within retention"""
    return [
        ChannelResponse(id=channel.id, name=channel.name, program_count=len(channel.programs))
        for channel in service.list_channels()
    ]


@main_router.get("/channels/{channel_id}/current", response_model=CurrentProgramResponse)
async def get_current_program(
    channel_id: str,
    service: ScheduleDep,
    zone: ZoneDep,
    at: datetime | None = Query(None, description="ISO8601 instant, defaults to now")
) -> CurrentProgramResponse:
    """Program airing on a channel at an instant (null when nothing airs)"""
    instant = ensure_utc(at) if at else utc_now()
    # Staleness follows the wall clock, the lookup follows the requested instant
    channel = service.get_channel(channel_id)
    program = current_program(channel, instant) if channel is not None else None

    return CurrentProgramResponse(
        channel_id=channel_id,
        at=instant.astimezone(zone).isoformat(),
        program=ProgramResponse.from_program(program, zone) if program else None,
    )


@main_router.get("/channels/{channel_id}/next", response_model=ProgramListResponse)
async def get_next_programs(
    channel_id: str,
    service: ScheduleDep,
    zone: ZoneDep,
    at: datetime | None = Query(None, description="ISO8601 instant, defaults to now"),
    count: int | None = Query(None, ge=1, le=100, description="Maximum number of programs")
) -> ProgramListResponse:
    """Programs starting after an instant"""
    instant = ensure_utc(at) if at else utc_now()
    channel = service.get_channel(channel_id)
    programs = next_programs(channel, instant, count or service.default_count) if channel is not None else []

    return ProgramListResponse(
        channel_id=channel_id,
        count=len(programs),
        programs=[ProgramResponse.from_program(program, zone) for program in programs],
    )


@main_router.get("/channels/{channel_id}/programs", response_model=ProgramListResponse)
async def get_programs_in_range(
    channel_id: str,
    service: ScheduleDep,
    zone: ZoneDep,
    from_date: datetime = Query(..., description="ISO8601 start of range (inclusive)"),
    to_date: datetime = Query(..., description="ISO8601 end of range (exclusive)")
) -> ProgramListResponse:
    """Programs overlapping [from_date, to_date)"""
    start = ensure_utc(from_date)
    end = ensure_utc(to_date)
    if start >= end:
        raise HTTPException(
            status_code=422,
            detail=f"from_date ({from_date.isoformat()}) must be before to_date ({to_date.isoformat()})",
        )

    programs = service.programs_in_range(channel_id, start, end)

    return ProgramListResponse(
        channel_id=channel_id,
        count=len(programs),
        programs=[ProgramResponse.from_program(program, zone) for program in programs],
    )


@main_router.put("/subtitles/track", response_model=SubtitleStateResponse)
async def select_subtitle_track(request: SubtitleTrackRequest, session: SubtitleDep) -> SubtitleStateResponse:
    """Select a subtitle track and load its cues"""
    await session.select(request.to_track())
    return SubtitleStateResponse(
        track_id=session.track.id if session.track else None,
        cue_count=len(session.cues),
    )


@main_router.delete("/subtitles/track", response_model=SubtitleStateResponse)
async def clear_subtitle_track(session: SubtitleDep) -> SubtitleStateResponse:
    """Clear the subtitle selection"""
    session.clear()
    return SubtitleStateResponse(track_id=None, cue_count=0)


@main_router.get("/subtitles/active", response_model=ActiveCueResponse)
async def get_active_cue(
    session: SubtitleDep,
    t: float = Query(..., ge=0, description="Playback time in seconds")
) -> ActiveCueResponse:
    """Cue to display at playback time t"""
    cue = session.on_time_update(t)
    return ActiveCueResponse(t=t, cue=CueResponse.from_cue(cue) if cue else None)
