from datetime import datetime, tzinfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from guide_engine.services.guide_types import Channel, Cue, Program, SubtitleTrack
from guide_engine.utils.timestamps import epoch_millis, from_epoch_millis


class ProgramSnapshot(BaseModel):
    """Persisted program, times as epoch milliseconds"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    channel_id: str = Field(..., alias="channelId")
    title: str
    description: str = ""
    start: int
    end: int
    category: str | None = None


class ChannelSnapshot(BaseModel):
    """Persisted channel with its sorted programs"""
    id: str
    name: str
    programs: list[ProgramSnapshot] = Field(default_factory=list)


class ScheduleSnapshot(BaseModel):
    """Blob-store layout of one source's parsed schedule"""
    channels: list[ChannelSnapshot] = Field(default_factory=list)
    timestamp: int = Field(..., description="Fetch instant as epoch milliseconds")

    @classmethod
    def from_channels(cls, channels: list[Channel], fetched_at: datetime) -> "ScheduleSnapshot":
        return cls(
            timestamp=epoch_millis(fetched_at),
            channels=[
                ChannelSnapshot(
                    id=channel.id,
                    name=channel.name,
                    programs=[
                        ProgramSnapshot(
                            id=program.id,
                            channel_id=program.channel_id,
                            title=program.title,
                            description=program.description,
                            start=epoch_millis(program.start),
                            end=epoch_millis(program.end),
                            category=program.category,
                        )
                        for program in channel.programs
                    ],
                )
                for channel in channels
            ],
        )

    @property
    def fetched_at(self) -> datetime:
        return from_epoch_millis(self.timestamp)

    def to_channels(self) -> list[Channel]:
        """Rebuild immutable channels, dropping empty intervals"""
        channels = []
        for channel in self.channels:
            programs = [
                Program(
                    id=program.id,
                    channel_id=program.channel_id,
                    title=program.title,
                    description=program.description,
                    start=from_epoch_millis(program.start),
                    end=from_epoch_millis(program.end),
                    category=program.category,
                )
                for program in channel.programs
                if program.start < program.end
            ]
            programs.sort(key=lambda p: p.start)
            channels.append(Channel(id=channel.id, name=channel.name, programs=tuple(programs)))
        return channels

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ScheduleSnapshot":
        return cls.model_validate_json(raw)


class ProgramResponse(BaseModel):
    """Single program data"""
    id: str
    channel_id: str
    title: str
    description: str
    start_time: str = Field(..., description="ISO8601 start time in the requested timezone")
    stop_time: str = Field(..., description="ISO8601 stop time in the requested timezone")
    category: str | None = None

    @classmethod
    def from_program(cls, program: Program, zone: tzinfo) -> "ProgramResponse":
        return cls(
            id=program.id,
            channel_id=program.channel_id,
            title=program.title,
            description=program.description,
            start_time=program.start.astimezone(zone).isoformat(),
            stop_time=program.end.astimezone(zone).isoformat(),
            category=program.category,
        )


class ChannelResponse(BaseModel):
    id: str
    name: str
    program_count: int


class CurrentProgramResponse(BaseModel):
    channel_id: str
    at: str
    program: ProgramResponse | None = None


class ProgramListResponse(BaseModel):
    channel_id: str
    count: int
    programs: list[ProgramResponse]


class SourceRefreshResult(BaseModel):
    source_url: str
    status: str = Field(..., description="'fetched', 'fallback', 'empty' or 'superseded'")
    channels: int


class RefreshResponse(BaseModel):
    timestamp: str
    sources_processed: int
    channels_cached: int
    source_details: list[SourceRefreshResult]


class SubtitleTrackRequest(BaseModel):
    """Subtitle track selection"""
    id: str = Field(..., min_length=1)
    url: str = Field(..., description="URL of the track file")
    format: str = Field(..., description="Track format, e.g. 'srt' or 'vtt'")
    language: str = ""
    label: str = ""

    @field_validator("format")
    @classmethod
    def normalize_format(cls, v: str) -> str:
        return v.strip().lower()

    def to_track(self) -> SubtitleTrack:
        return SubtitleTrack(id=self.id, url=self.url, format=self.format, language=self.language, label=self.label)


class CueResponse(BaseModel):
    start: float
    end: float
    text: str

    @classmethod
    def from_cue(cls, cue: Cue) -> "CueResponse":
        return cls(start=cue.start, end=cue.end, text=cue.text)


class SubtitleStateResponse(BaseModel):
    track_id: str | None = None
    cue_count: int


class ActiveCueResponse(BaseModel):
    t: float
    cue: CueResponse | None = None
