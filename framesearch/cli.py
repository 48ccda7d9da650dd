import argparse
import json
import logging
import os
import sys
import uuid
from dataclasses import replace
from typing import Optional

from . import config
from .config import StoreConfig
from .errors import FrameSearchError
from .pipeline import FramePipeline
from .store import VectorStore
from .video_extractor import probe_video


def _build_pipeline(args: argparse.Namespace) -> FramePipeline:
    store = VectorStore(StoreConfig.from_env())
    store.ensure_collection()
    extraction_cfg = config.extraction
    if getattr(args, "workers", None):
        extraction_cfg = replace(extraction_cfg, workers=args.workers)
    frames_dir = getattr(args, "frames_dir", None)
    if not frames_dir:
        config.ensure_directories()
        frames_dir = config.paths.frames_dir
    return FramePipeline(store, frames_dir=frames_dir, extraction_cfg=extraction_cfg)


def _default_video_id(video_path: str) -> str:
    stem = os.path.splitext(os.path.basename(video_path))[0]
    return stem or uuid.uuid4().hex


def cmd_probe(args: argparse.Namespace) -> None:
    asset = probe_video(args.video)
    print(json.dumps(asset.to_dict(), indent=2, ensure_ascii=False))


def cmd_extract_frames(args: argparse.Namespace) -> None:
    pipeline = _build_pipeline(args)
    video_id = args.video_id or _default_video_id(args.video)

    print(f"Video: {args.video}")
    print(f"Video id: {video_id}")
    print(f"Frames dir: {pipeline.frames_dir}")
    print(f"Vector store: {pipeline.store.active_backend}")

    frames = pipeline.ingest(args.video, video_id, interval=args.interval)
    for frame in frames:
        status = "ok" if frame.feature_vector is not None else "no features"
        print(f"{frame.id}  t={frame.timestamp:.2f}s  {frame.path}  [{status}]")
    print(f"Extracted {len(frames)} frames.")


def cmd_frames(args: argparse.Namespace) -> None:
    pipeline = _build_pipeline(args)
    frames = pipeline.list_frames(args.video_id, interval=args.interval)
    for frame in frames:
        print(f"{frame.id}  t={frame.timestamp:.2f}s  {frame.path}")
    print(f"{len(frames)} frames.")


def cmd_search(args: argparse.Namespace) -> None:
    pipeline = _build_pipeline(args)
    if args.video:
        # The in-memory store only lives for this run; ingest first.
        video_id = args.video_id or _default_video_id(args.video)
        pipeline.ingest(args.video, video_id, interval=args.interval)

    results = pipeline.find_similar(args.frame_id, args.top_k)
    if not results:
        print("No results found.")
        return

    print(f"Top {len(results)} results:")
    for i, r in enumerate(results, start=1):
        print(
            f"{i:02d}. score={r.score:.4f}, "
            f"frame={r.frame.id}, "
            f"video={r.frame.video_id}, "
            f"timestamp={r.frame.timestamp:.2f}s, "
            f"path={r.frame.path}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Video frame extraction and similarity search")
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("FRAMESEARCH_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO or $FRAMESEARCH_LOG_LEVEL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # probe
    p_probe = subparsers.add_parser("probe", help="Print size, duration and resolution of a video")
    p_probe.add_argument("--video", type=str, required=True, help="Path to the video file")
    p_probe.set_defaults(func=cmd_probe)

    # extract-frames
    p_extract = subparsers.add_parser(
        "extract-frames", help="Extract frames at a fixed interval and store their descriptors"
    )
    p_extract.add_argument("--video", type=str, required=True, help="Path to the video file")
    p_extract.add_argument(
        "--video-id",
        type=str,
        default=None,
        help="Id used for the frames directory and frame ids (default: video file stem)",
    )
    p_extract.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sampled frames (default: config.extraction.interval_sec)",
    )
    p_extract.add_argument(
        "--frames-dir",
        type=str,
        default=None,
        help="Directory to store extracted frames (default: config.paths.frames_dir)",
    )
    p_extract.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Threads used to compute frame descriptors (default: 1)",
    )
    p_extract.set_defaults(func=cmd_extract_frames)

    # frames
    p_frames = subparsers.add_parser("frames", help="List the extracted frames of a video")
    p_frames.add_argument("--video-id", type=str, required=True, help="Video id")
    p_frames.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Extraction interval; only needed for directories without a manifest",
    )
    p_frames.add_argument(
        "--frames-dir",
        type=str,
        default=None,
        help="Directory holding extracted frames (default: config.paths.frames_dir)",
    )
    p_frames.set_defaults(func=cmd_frames)

    # search
    p_search = subparsers.add_parser("search", help="Search frames similar to a stored frame")
    p_search.add_argument("--frame-id", type=str, required=True, help="Reference frame id")
    p_search.add_argument(
        "--top-k",
        type=int,
        default=10,
        help="Number of results to return (default: 10)",
    )
    p_search.add_argument(
        "--video",
        type=str,
        default=None,
        help="Ingest this video before searching (needed without a remote index)",
    )
    p_search.add_argument("--video-id", type=str, default=None, help="Id for --video")
    p_search.add_argument("--interval", type=float, default=None, help="Interval for --video")
    p_search.add_argument(
        "--frames-dir",
        type=str,
        default=None,
        help="Directory to store extracted frames (default: config.paths.frames_dir)",
    )
    p_search.set_defaults(func=cmd_search)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="[%(asctime)s] %(levelname)s %(name)s : %(message)s",
        handlers=[logging.StreamHandler()],
    )
    try:
        args.func(args)
    except FrameSearchError as e:
        print(f"error: {e.kind}: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
