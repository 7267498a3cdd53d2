from __future__ import annotations

from pathlib import Path
from typing import Sequence

import streamlit as st

from flyover.csv_io import load_track_csv, load_waypoints_csv
from flyover.inspect import summarize_track
from flyover.loop import RealtimeLoop
from flyover.models import (
    DEFAULT_PARAMS,
    CameraPose,
    CompletionEvent,
    MarkerState,
    OverlayEvent,
    PhotoWaypoint,
    PlaybackParams,
    PlaybackState,
)
from flyover.session import PlaybackSession
from flyover.sinks import NullSink
from flyover.timeutils import format_hhmmss


class StreamlitSink(NullSink):
    """Paints playback events into streamlit placeholders."""

    def __init__(self, duration_ms: float, redraw_every: int = 5) -> None:
        self._duration_ms = duration_ms
        self._redraw_every = max(1, redraw_every)
        self._frames = 0
        self._waypoints: list[dict[str, float]] = []
        self.map_slot = st.empty()
        self.progress_slot = st.progress(0.0, text="准备就绪")
        c1, c2 = st.columns(2)
        self.pace_slot = c1.empty()
        self.bearing_slot = c2.empty()
        self.overlay_slot = st.empty()
        self.pace_slot.metric("配速", "-")

    def on_waypoints(self, waypoints: Sequence[PhotoWaypoint]) -> None:
        self._waypoints = [
            {"lon": wp.location[0], "lat": wp.location[1]} for wp in waypoints if wp.location is not None
        ]

    def on_marker(self, marker: MarkerState) -> None:
        self._frames += 1
        if self._frames % self._redraw_every != 1:
            return
        lon, lat = marker.position
        self.map_slot.map([{"lon": lon, "lat": lat}, *self._waypoints], zoom=13)

    def on_camera(self, camera: CameraPose) -> None:
        if self._frames % self._redraw_every != 1:
            return
        self.bearing_slot.metric("相机朝向", f"{camera.bearing:.0f}°")

    def on_pace(self, pace: str) -> None:
        self.pace_slot.metric("配速", pace)

    def on_overlay(self, overlay: OverlayEvent) -> None:
        if overlay.active:
            self.overlay_slot.info(f"📷 {overlay.photo_ref or overlay.waypoint_id}")
        else:
            self.overlay_slot.empty()

    def on_complete(self, event: CompletionEvent) -> None:
        self.progress_slot.progress(1.0, text=f"播放完成（照片 {event.waypoints_shown} 张）")

    def show_progress(self, elapsed_ms: float) -> None:
        frac = min(1.0, elapsed_ms / self._duration_ms)
        self.progress_slot.progress(frac, text=f"{format_hhmmss(elapsed_ms / 1000.0)} / {format_hhmmss(self._duration_ms / 1000.0)}")


def paint_progress(sink: StreamlitSink, state: PlaybackState) -> bool:
    """Refresh the progress readout.

    Returns:
        Whether to paint again. Once playback has completed the bar keeps the
        completion text from on_complete.
    """

    if state.completed:
        return False
    sink.show_progress(state.elapsed_ms)
    return state.is_playing


def main() -> None:
    st.set_page_config(page_title="轨迹 3D 回放预览", layout="wide")
    st.title("轨迹回放预览：照片航点暂停 + 实时配速")

    with st.sidebar:
        st.subheader("数据")
        track_csv = st.text_input("轨迹CSV（longitude, latitude, time）", value="sample_data/track.csv")
        waypoints_csv = st.text_input("照片航点CSV（可选）", value="sample_data/photos.csv")
        tz_name = st.text_input("时区（IANA，用于无时区时间）", value="UTC")

        st.subheader("播放参数")
        duration_s = st.number_input("动画总时长（秒）", value=DEFAULT_PARAMS.duration_ms / 1000.0, step=5.0)
        pause_s = st.number_input("航点暂停（秒）", value=DEFAULT_PARAMS.pause_ms / 1000.0, step=0.5)
        proximity_deg = st.number_input(
            "航点触发范围（度）", value=DEFAULT_PARAMS.proximity_deg, format="%.5f", step=0.0001
        )
        fps = st.slider("预览帧率", min_value=5, max_value=60, value=20)

    p = Path(track_csv)
    if not p.exists():
        st.error(f"找不到文件：{track_csv!r}。可先运行 scripts/generate_sample_track_csv.py 生成示例数据。")
        return

    rows, csv_summary = load_track_csv(p)
    if csv_summary.rows_skipped:
        st.warning(f"{csv_summary.rows_skipped} 行无法解析，已跳过")

    params = PlaybackParams(
        duration_ms=float(duration_s) * 1000.0,
        pause_ms=float(pause_s) * 1000.0,
        proximity_deg=float(proximity_deg),
    )
    try:
        params.validate()
    except ValueError as exc:
        st.error(str(exc))
        return

    if not st.button("开始播放", type="primary", use_container_width=True):
        return

    loop = RealtimeLoop(fps=float(fps))
    sink = StreamlitSink(params.duration_ms)
    session = PlaybackSession(loop, sink, params)
    try:
        track = session.load_track(rows.coordinates, rows.coord_times, tz_name)
    except ValueError as exc:
        st.error(str(exc))
        return

    summary = summarize_track(track)
    st.caption(
        f"points={summary.points}，distance={summary.distance_km:.2f} km，"
        f"average_pace={summary.average_pace or '-'}"
    )

    wp_path = Path(waypoints_csv)
    if waypoints_csv and wp_path.exists():
        for wr in load_waypoints_csv(wp_path, tz_name):
            session.add_waypoint(wr.photo_ref, wr.id)
            if wr.latitude is not None and wr.longitude is not None:
                session.resolve_waypoint(wr.id, wr.latitude, wr.longitude, wr.capture_time)

    session.start()
    # Progress is painted from a timer so it keeps moving smoothly between redraws.
    def _paint() -> None:
        if paint_progress(sink, session.snapshot()):
            loop.call_later(250.0, _paint)

    loop.call_later(0.0, _paint)
    loop.run(max_ms=params.duration_ms * 3)


if __name__ == "__main__":
    main()
