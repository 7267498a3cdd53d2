"""Data models for track points, photo waypoints and playback state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Final


class InvalidTrack(ValueError):
    """Raised when a track cannot be played back (fewer than 2 points, or none loaded)."""


@dataclass(frozen=True, slots=True)
class TrackPoint:
    """A single track sample.

    Attributes:
        longitude: Longitude in decimal degrees.
        latitude: Latitude in decimal degrees.
        timestamp: Capture instant, or None when the source had no time for this point.
    """

    longitude: float
    latitude: float
    timestamp: datetime | None = None

    @property
    def position(self) -> tuple[float, float]:
        """(longitude, latitude) pair, the order the renderer expects."""

        return (self.longitude, self.latitude)


@dataclass(frozen=True, slots=True)
class GeoBounds:
    """Axis-aligned lon/lat bounding box."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @property
    def center(self) -> tuple[float, float]:
        return ((self.min_lon + self.max_lon) / 2.0, (self.min_lat + self.max_lat) / 2.0)


@dataclass(slots=True)
class PhotoWaypoint:
    """A photo that may pause playback when the runner passes it.

    `location` stays None until metadata extraction resolves it; such a waypoint
    is never considered for proximity. `shown` only ever flips False -> True
    within one playback run.
    """

    id: str
    photo_ref: str = ""
    location: tuple[float, float] | None = None  # (longitude, latitude)
    capture_time: datetime | None = None
    shown: bool = False

    @property
    def has_location(self) -> bool:
        return self.location is not None


class PlaybackPhase(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(slots=True)
class PlaybackState:
    """Mutable per-run state, owned by the scheduler.

    Invariant: is_paused implies is_playing.
    """

    progress: float = 0.0
    elapsed_ms: float = 0.0
    is_playing: bool = False
    is_paused: bool = False
    active_waypoint_id: str | None = None
    bearing_deg: float = 0.0
    completed: bool = False

    @property
    def phase(self) -> PlaybackPhase:
        if self.is_paused:
            return PlaybackPhase.PAUSED
        if self.is_playing:
            return PlaybackPhase.PLAYING
        if self.completed:
            return PlaybackPhase.COMPLETED
        return PlaybackPhase.IDLE

    def copy(self) -> PlaybackState:
        return PlaybackState(
            progress=self.progress,
            elapsed_ms=self.elapsed_ms,
            is_playing=self.is_playing,
            is_paused=self.is_paused,
            active_waypoint_id=self.active_waypoint_id,
            bearing_deg=self.bearing_deg,
            completed=self.completed,
        )


@dataclass(frozen=True, slots=True)
class CameraPose:
    """Camera state sent to the renderer each frame."""

    position: tuple[float, float]
    bearing: float
    pitch: float
    zoom: float


@dataclass(frozen=True, slots=True)
class MarkerState:
    """Runner marker position."""

    position: tuple[float, float]


@dataclass(frozen=True, slots=True)
class OverlayEvent:
    """Emitted when a waypoint pause begins (active) or ends (active=False)."""

    waypoint_id: str
    photo_ref: str
    active: bool


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    """End-of-run signal for recording collaborators."""

    final_position: tuple[float, float]
    elapsed_ms: float
    waypoints_shown: int


@dataclass(frozen=True, slots=True)
class PlaybackParams:
    """Parameters controlling the playback timeline and camera.

    Defaults reproduce the presentation speed of the web flyover: a one-minute
    animation regardless of the real activity length.
    """

    duration_ms: float = 60_000.0
    pause_ms: float = 1_000.0
    rotation_deg_per_ms: float = 0.02
    pitch_deg: float = 50.0
    zoom: float = 14.0
    overview_pitch_deg: float = 60.0
    overview_zoom: float = 11.0
    # Half-size of the proximity box in degrees (~50 m at mid latitudes).
    proximity_deg: float = 0.0005
    pace_interval_ms: float = 1_000.0
    max_pace_minutes: int = 30

    def validate(self) -> None:
        """Validate parameter values.

        Raises:
            ValueError: If any value is out of range.
        """

        if self.duration_ms <= 0:
            raise ValueError(f"duration_ms 必须为正数，当前：{self.duration_ms!r}")
        if self.pause_ms < 0:
            raise ValueError(f"pause_ms 不能为负，当前：{self.pause_ms!r}")
        if self.proximity_deg <= 0:
            raise ValueError(f"proximity_deg 必须为正数，当前：{self.proximity_deg!r}")
        if self.pace_interval_ms < 0:
            raise ValueError(f"pace_interval_ms 不能为负，当前：{self.pace_interval_ms!r}")
        if self.max_pace_minutes <= 0:
            raise ValueError(f"max_pace_minutes 必须为正数，当前：{self.max_pace_minutes!r}")


DEFAULT_PARAMS: Final[PlaybackParams] = PlaybackParams()
