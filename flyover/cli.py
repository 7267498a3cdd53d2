"""Command-line interface for flyover.

Run:
    python -m flyover inspect --csv track.csv
    python -m flyover simulate --csv track.csv --waypoints photos.csv --out frames.csv
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict

from flyover.csv_io import FrameRow, load_track_csv, load_waypoints_csv, write_frames_csv
from flyover.inspect import summarize_track
from flyover.loop import SimulatedLoop
from flyover.models import DEFAULT_PARAMS, InvalidTrack, PlaybackParams
from flyover.pace import iter_segment_paces
from flyover.session import PlaybackSession
from flyover.sinks import RecordingSink
from flyover.timeutils import format_hhmmss
from flyover.track import Track


def _load_track(args: argparse.Namespace) -> Track:
    rows, summary = load_track_csv(args.csv)
    if summary.rows_skipped:
        print(f"注意：{summary.rows_skipped} 行无法解析，已跳过", file=sys.stderr)
    return Track.from_coordinates(rows.coordinates, rows.coord_times, args.tz)


def _params_from_args(args: argparse.Namespace) -> PlaybackParams:
    return PlaybackParams(
        duration_ms=args.duration_ms,
        pause_ms=args.pause_ms,
        rotation_deg_per_ms=args.rotation_deg_per_ms,
        pitch_deg=args.pitch,
        zoom=args.zoom,
        proximity_deg=args.proximity_deg,
        pace_interval_ms=args.pace_interval_ms,
        max_pace_minutes=args.max_pace_minutes,
    )


def _cmd_inspect(args: argparse.Namespace) -> int:
    track = _load_track(args)
    res = summarize_track(track)

    print("### 轨迹点")
    print(f"points={res.points}, timestamped={res.timestamped_points}, all_timestamped={res.has_timestamps}")
    print()

    if res.start_time is not None or res.end_time is not None:
        print("### 时间范围")
        print(f"start={res.start_time}, end={res.end_time}")
        if res.duration_s is not None:
            print(f"duration={format_hhmmss(res.duration_s)}（{res.duration_s:.1f}s）")
        print()

    if res.delta is not None:
        print("### 采样间隔（秒）")
        print(
            f"count={res.delta.count}, min={res.delta.min_s:.3f}, median={res.delta.median_s:.3f}, "
            f"p95={res.delta.p95_s:.3f}, max={res.delta.max_s:.3f}"
        )
        print()

    print("### 距离与配速")
    print(f"distance={res.distance_km:.3f} km, average_pace={res.average_pace or '-'}")
    print()

    print("### 经纬度范围（粗略）")
    print(f"lat=[{res.min_lat}, {res.max_lat}], lon=[{res.min_lon}, {res.max_lon}]")
    print()

    if args.json:
        import json

        print(json.dumps(asdict(res), ensure_ascii=False, indent=2))
    return 0


def _cmd_pace(args: argparse.Namespace) -> int:
    track = _load_track(args)
    if not track.has_timestamps:
        print("轨迹缺少完整时间戳，无法计算配速", file=sys.stderr)
    n = 0
    for seg in iter_segment_paces(track, args.max_pace_minutes):
        n += 1
        print(f"{seg.index:>6d}  {seg.distance_km * 1000:8.1f} m  {seg.seconds:7.1f} s  {seg.pace}")
    print(f"有效配速段数={n}/{max(0, len(track) - 1)}")
    return 0


def _cmd_simulate(args: argparse.Namespace) -> int:
    if args.fps <= 0:
        raise ValueError(f"--fps 必须为正数，当前：{args.fps!r}")
    rows, _ = load_track_csv(args.csv)
    params = _params_from_args(args)
    loop = SimulatedLoop(frame_interval_ms=1000.0 / args.fps)
    sink = RecordingSink()
    session = PlaybackSession(loop, sink, params)
    session.load_track(rows.coordinates, rows.coord_times, args.tz)

    if args.waypoints:
        for wr in load_waypoints_csv(args.waypoints, args.tz):
            session.add_waypoint(wr.photo_ref, wr.id)
            if wr.latitude is not None and wr.longitude is not None:
                session.resolve_waypoint(wr.id, wr.latitude, wr.longitude, wr.capture_time)

    session.start()
    started = loop.now_ms()
    max_ms = args.max_wall_ms
    frames: list[FrameRow] = []
    while loop.has_pending():
        if loop.now_ms() - started >= max_ms:
            print(f"注意：模拟超过 {max_ms:.0f} ms 仍未结束，已停止", file=sys.stderr)
            session.stop()
            break
        before = loop.frames_run
        loop.step()
        if loop.frames_run == before or not sink.cameras:
            continue
        st = session.snapshot()
        cam = sink.cameras[-1]
        lon, lat = sink.markers[-1].position
        frames.append(
            FrameRow(
                frame=len(frames) + 1,
                t_ms=loop.now_ms() - started,
                elapsed_ms=st.elapsed_ms,
                progress=st.progress,
                longitude=lon,
                latitude=lat,
                bearing=cam.bearing,
                pitch=cam.pitch,
                zoom=cam.zoom,
                paused=st.is_paused,
                active_waypoint_id=st.active_waypoint_id,
                pace=session.scheduler.last_pace,
            )
        )

    for o in sink.overlays:
        if o.active:
            print(f"暂停：waypoint={o.waypoint_id} photo={o.photo_ref or '-'}")

    if sink.completions:
        done = sink.completions[-1]
        print(
            f"播放完成：frames={len(frames)}, wall={format_hhmmss((loop.now_ms() - started) / 1000.0)}, "
            f"waypoints_shown={done.waypoints_shown}, final=({done.final_position[0]:.6f}, {done.final_position[1]:.6f})"
        )
    if args.out:
        write_frames_csv(frames, args.out)
        print(f"已导出：{args.out}")
    return 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--csv", type=str, default="track.csv", help="轨迹CSV路径（longitude, latitude, time）")
    p.add_argument("--tz", type=str, default="UTC", help="无时区时间字符串所用时区（IANA），默认 UTC")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="flyover")
    p.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_ins = sub.add_parser("inspect", help="分析轨迹的点数/时间范围/距离/配速")
    _add_common(p_ins)
    p_ins.add_argument("--json", action="store_true", help="额外输出JSON（便于后处理）")
    p_ins.set_defaults(func=_cmd_inspect)

    p_pace = sub.add_parser("pace", help="逐段输出配速（min/km）")
    _add_common(p_pace)
    p_pace.add_argument(
        "--max-pace-minutes",
        type=int,
        default=DEFAULT_PARAMS.max_pace_minutes,
        help="整数分钟配速达到该值视为非跑步（停留/噪声），不输出",
    )
    p_pace.set_defaults(func=_cmd_pace)

    p_sim = sub.add_parser("simulate", help="无界面完整播放一遍，导出逐帧相机/标记状态")
    _add_common(p_sim)
    p_sim.add_argument("--waypoints", type=str, default=None, help="照片航点CSV（id, photo_ref, latitude, longitude, capture_time）")
    p_sim.add_argument("--out", type=str, default=None, help="逐帧输出CSV路径")
    p_sim.add_argument("--fps", type=float, default=60.0, help="模拟帧率")
    p_sim.add_argument("--duration-ms", type=float, default=DEFAULT_PARAMS.duration_ms, help="动画总时长（毫秒）")
    p_sim.add_argument("--pause-ms", type=float, default=DEFAULT_PARAMS.pause_ms, help="航点处暂停时长（毫秒）")
    p_sim.add_argument(
        "--rotation-deg-per-ms",
        type=float,
        default=DEFAULT_PARAMS.rotation_deg_per_ms,
        help="相机旋转速度（度/毫秒）",
    )
    p_sim.add_argument("--pitch", type=float, default=DEFAULT_PARAMS.pitch_deg, help="相机俯仰角")
    p_sim.add_argument("--zoom", type=float, default=DEFAULT_PARAMS.zoom, help="相机缩放等级")
    p_sim.add_argument(
        "--proximity-deg",
        type=float,
        default=DEFAULT_PARAMS.proximity_deg,
        help="航点触发范围（经纬度半边长，0.0005约50米）",
    )
    p_sim.add_argument(
        "--pace-interval-ms",
        type=float,
        default=DEFAULT_PARAMS.pace_interval_ms,
        help="配速刷新间隔（毫秒）",
    )
    p_sim.add_argument(
        "--max-pace-minutes",
        type=int,
        default=DEFAULT_PARAMS.max_pace_minutes,
        help="整数分钟配速达到该值时不显示",
    )
    p_sim.add_argument(
        "--max-wall-ms",
        type=float,
        default=10 * 60 * 1000.0,
        help="模拟时钟上限（毫秒），防止异常情况下无限运行",
    )
    p_sim.set_defaults(func=_cmd_simulate)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        return int(args.func(args))
    except (InvalidTrack, FileNotFoundError, KeyError, ValueError) as exc:
        print(f"错误：{exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
