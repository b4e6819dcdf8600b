"""FFmpeg command construction for live HLS output."""
from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple

from ..utils.streams import MANIFEST_NAME


@dataclass(frozen=True)
class VideoOptions:
    codec: Optional[str] = "libx264"
    profile: Optional[str] = "baseline"
    crf: Optional[int] = 18
    maxrate: Optional[str] = "400k"
    bufsize: Optional[str] = "1835k"
    pix_fmt: Optional[str] = "yuv420p"
    extra_args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AudioOptions:
    codec: Optional[str] = "aac"
    channels: Optional[int] = 2
    extra_args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HlsOptions:
    segment_seconds: int = 10
    list_size: int = 6
    start_number: int = 1
    flags: Tuple[str, ...] = ("delete_segments",)
    manifest_name: str = MANIFEST_NAME


@dataclass(frozen=True)
class EncoderSettings:
    """Everything needed to turn one ingest stream into an HLS directory."""

    ffmpeg_binary: str = "ffmpeg"
    read_url_template: str = "rtmp://127.0.0.1:1935/live/{stream_id}"
    video: VideoOptions = field(default_factory=VideoOptions)
    audio: AudioOptions = field(default_factory=AudioOptions)
    hls: HlsOptions = field(default_factory=HlsOptions)
    input_args: Tuple[str, ...] = ()
    log_level: str = "warning"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EncoderSettings":
        """Build settings from the Flask config mapping."""

        video = VideoOptions(
            codec=config.get("VIDEO_CODEC", "libx264"),
            profile=config.get("VIDEO_PROFILE", "baseline"),
            crf=config.get("VIDEO_CRF", 18),
            maxrate=config.get("VIDEO_MAXRATE", "400k"),
            bufsize=config.get("VIDEO_BUFSIZE", "1835k"),
            pix_fmt=config.get("VIDEO_PIX_FMT", "yuv420p"),
        )
        audio = AudioOptions(
            codec=config.get("AUDIO_CODEC", "aac"),
            channels=config.get("AUDIO_CHANNELS", 2),
        )
        hls = HlsOptions(
            segment_seconds=int(config.get("HLS_SEGMENT_SECONDS", 10)),
            list_size=int(config.get("HLS_LIST_SIZE", 6)),
            start_number=int(config.get("HLS_START_NUMBER", 1)),
            flags=tuple(config.get("HLS_FLAGS") or ()),
        )
        return cls(
            ffmpeg_binary=config.get("FFMPEG_BINARY", "ffmpeg"),
            read_url_template=config.get("INGEST_READ_URL_TEMPLATE", cls.read_url_template),
            video=video,
            audio=audio,
            hls=hls,
        )

    def read_url(self, stream_id: str) -> str:
        return self.read_url_template.format(stream_id=stream_id)


class HlsCommandBuilder:
    """Build the FFmpeg CLI invocation that writes a live HLS playlist."""

    def __init__(self, settings: EncoderSettings) -> None:
        self.settings = settings

    def build(self, stream_id: str, output_dir: Path) -> List[str]:
        settings = self.settings
        cmd: List[str] = [settings.ffmpeg_binary, "-hide_banner", "-nostdin"]
        if settings.log_level:
            cmd.extend(["-loglevel", settings.log_level])
        cmd.extend(str(arg) for arg in settings.input_args)
        cmd.extend(["-i", settings.read_url(stream_id)])
        cmd.extend(self._video_args())
        cmd.extend(self._audio_args())
        cmd.extend(self._hls_args(output_dir))
        cmd.append(str(output_dir / settings.hls.manifest_name))
        return cmd

    def dry_run(self, stream_id: str, output_dir: Path) -> str:
        """Return a shell-escaped command string without executing it."""

        return shlex.join(self.build(stream_id, output_dir))

    def _video_args(self) -> List[str]:
        opts = self.settings.video
        args: List[str] = []
        if opts.codec:
            args.extend(["-c:v", opts.codec])
        if opts.crf is not None:
            args.extend(["-crf", str(opts.crf)])
        if opts.profile:
            args.extend(["-profile:v", opts.profile])
        if opts.maxrate:
            args.extend(["-maxrate", opts.maxrate])
        if opts.bufsize:
            args.extend(["-bufsize", opts.bufsize])
        if opts.pix_fmt:
            args.extend(["-pix_fmt", opts.pix_fmt])
        args.extend(opts.extra_args)
        return args

    def _audio_args(self) -> List[str]:
        opts = self.settings.audio
        args: List[str] = []
        if opts.codec:
            args.extend(["-c:a", opts.codec])
        if opts.channels is not None:
            args.extend(["-ac", str(opts.channels)])
        args.extend(opts.extra_args)
        return args

    def _hls_args(self, output_dir: Path) -> List[str]:
        opts = self.settings.hls
        args: List[str] = [
            "-f",
            "hls",
            "-hls_time",
            str(opts.segment_seconds),
            "-hls_list_size",
            str(opts.list_size),
            "-start_number",
            str(opts.start_number),
        ]
        if opts.flags:
            args.extend(["-hls_flags", "+".join(opts.flags)])
        args.extend(["-hls_segment_filename", str(output_dir / "index%d.ts")])
        return args


__all__ = [
    "AudioOptions",
    "EncoderSettings",
    "HlsCommandBuilder",
    "HlsOptions",
    "VideoOptions",
]
