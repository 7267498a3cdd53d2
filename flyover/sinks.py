"""Output sinks: where the scheduler sends camera, marker, overlay, pace and completion events.

The renderer, pace display and recorder are external collaborators; they plug in
by implementing PlaybackSink (or subclassing NullSink and overriding what they need).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence

from flyover.models import CameraPose, CompletionEvent, MarkerState, OverlayEvent, PhotoWaypoint

logger = logging.getLogger(__name__)


class PlaybackSink(Protocol):
    def on_marker(self, marker: MarkerState) -> None: ...

    def on_camera(self, camera: CameraPose) -> None: ...

    def on_overlay(self, overlay: OverlayEvent) -> None: ...

    def on_pace(self, pace: str) -> None: ...

    def on_waypoints(self, waypoints: Sequence[PhotoWaypoint]) -> None: ...

    def on_complete(self, event: CompletionEvent) -> None: ...


class NullSink:
    """Ignores everything."""

    def on_marker(self, marker: MarkerState) -> None:
        pass

    def on_camera(self, camera: CameraPose) -> None:
        pass

    def on_overlay(self, overlay: OverlayEvent) -> None:
        pass

    def on_pace(self, pace: str) -> None:
        pass

    def on_waypoints(self, waypoints: Sequence[PhotoWaypoint]) -> None:
        pass

    def on_complete(self, event: CompletionEvent) -> None:
        pass


@dataclass(frozen=True, slots=True)
class WaypointMarker:
    """A located waypoint as published to the renderer's photo layer."""

    id: str
    position: tuple[float, float]


@dataclass(slots=True)
class RecordingSink(NullSink):
    """Keeps every event in memory (headless export and tests)."""

    markers: list[MarkerState] = field(default_factory=list)
    cameras: list[CameraPose] = field(default_factory=list)
    overlays: list[OverlayEvent] = field(default_factory=list)
    paces: list[str] = field(default_factory=list)
    waypoint_layers: list[list[WaypointMarker]] = field(default_factory=list)
    completions: list[CompletionEvent] = field(default_factory=list)

    def on_marker(self, marker: MarkerState) -> None:
        self.markers.append(marker)

    def on_camera(self, camera: CameraPose) -> None:
        self.cameras.append(camera)

    def on_overlay(self, overlay: OverlayEvent) -> None:
        self.overlays.append(overlay)

    def on_pace(self, pace: str) -> None:
        self.paces.append(pace)

    def on_waypoints(self, waypoints: Sequence[PhotoWaypoint]) -> None:
        self.waypoint_layers.append(
            [WaypointMarker(id=wp.id, position=wp.location) for wp in waypoints if wp.location is not None]
        )

    def on_complete(self, event: CompletionEvent) -> None:
        self.completions.append(event)

    @property
    def triggered_ids(self) -> list[str]:
        """Waypoint ids in the order their pauses began."""

        return [o.waypoint_id for o in self.overlays if o.active]


class FanoutSink(NullSink):
    """Forwards every event to several sinks in order.

    A sink that raises is logged and skipped; the sinks after it still get the event.
    """

    def __init__(self, sinks: Iterable[PlaybackSink]) -> None:
        self._sinks = list(sinks)

    def on_marker(self, marker: MarkerState) -> None:
        self._forward("on_marker", marker)

    def on_camera(self, camera: CameraPose) -> None:
        self._forward("on_camera", camera)

    def on_overlay(self, overlay: OverlayEvent) -> None:
        self._forward("on_overlay", overlay)

    def on_pace(self, pace: str) -> None:
        self._forward("on_pace", pace)

    def on_waypoints(self, waypoints: Sequence[PhotoWaypoint]) -> None:
        self._forward("on_waypoints", waypoints)

    def on_complete(self, event: CompletionEvent) -> None:
        self._forward("on_complete", event)

    def _forward(self, method: str, payload: object) -> None:
        for s in self._sinks:
            try:
                getattr(s, method)(payload)
            except Exception:
                logger.exception("Sink %s.%s 失败", type(s).__name__, method)
