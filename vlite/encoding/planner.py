# vlite/encoding/planner.py
"""Map compression settings onto an ffmpeg argument list.

Everything here is pure: the same source path, output path, settings snapshot
and encoder set always produce the same ``EncodePlan``. Nothing touches the
filesystem or spawns a process; the set of encoders the local ffmpeg build
offers comes from ``EncoderCapabilities`` and is passed in.

The compression level is expected in 1..10. Callers clamp it; values outside
that range are passed through the linear mapping unchanged.
"""
import logging
import math
from dataclasses import dataclass

from ..models.settings import CompressionSettings, OutputFormat, ResolutionPreset

logger = logging.getLogger(__name__)

SAFE_ENCODER = "libvpx-vp9"
SVT_AV1 = "libsvtav1"
AOM_AV1 = "libaom-av1"
HARDWARE_AV1 = ("av1_nvenc", "av1_qsv", "av1_amf")  # preference order

GIF_FILTER = "fps=15,scale=-1:-1:flags=lanczos,split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse"

AUDIO_BITRATE = "128k"
AUDIO_CODECS = {
    OutputFormat.MP4: "aac",
    OutputFormat.MKV: "aac",
    OutputFormat.WEBM: "libopus",  # WebM only carries Opus/Vorbis
}
FORBIDDEN_AUDIO = {
    OutputFormat.WEBM: frozenset({"aac", "mp3", "ac3"}),
}

_FIXED_SCALES = {
    ResolutionPreset.UHD_4K: "scale=3840:-2",
    ResolutionPreset.YOUTUBE: "scale=3840:-2",
    ResolutionPreset.FHD_1080P: "scale=1920:-2",
    ResolutionPreset.HD_720P: "scale=1280:-2",
    ResolutionPreset.SD_480P: "scale=854:-2",
    ResolutionPreset.INSTAGRAM: "scale=1080:1080:force_original_aspect_ratio=increase,crop=1080:1080",
}


@dataclass(frozen=True)
class QualityScale:
    base: float
    step: float

    def value(self, level: int) -> int:
        # half-up so 30.5 -> 31 rather than banker's rounding
        return int(math.floor(self.base + (level - 1) * self.step + 0.5))


VP9_SCALE = QualityScale(base=28, step=2.5)   # CRF 0-63, useful 15-50
AV1_SCALE = QualityScale(base=18, step=3.5)


@dataclass(frozen=True)
class EncodePlan:
    encoder: str | None
    args: tuple[str, ...]

    def __iter__(self):
        return iter(self.args)

    def __len__(self):
        return len(self.args)


def quality_for(level: int, high_efficiency: bool) -> int:
    return (AV1_SCALE if high_efficiency else VP9_SCALE).value(level)


def needs_encoders(settings: CompressionSettings) -> bool:
    """Only the AV1 family depends on what the local ffmpeg build offers."""
    return settings.use_high_efficiency_codec and settings.format != OutputFormat.GIF


def select_encoder(settings: CompressionSettings, encoders: frozenset[str] = frozenset()) -> str | None:
    if settings.format == OutputFormat.GIF:
        return None
    if not settings.use_high_efficiency_codec:
        return SAFE_ENCODER
    if settings.enable_turbo:
        for name in HARDWARE_AV1:
            if name in encoders:
                return name
    return SVT_AV1 if SVT_AV1 in encoders else AOM_AV1


def video_args(encoder: str, settings: CompressionSettings) -> list[str]:
    turbo, hdr = settings.enable_turbo, settings.enable_hdr

    if encoder == SAFE_ENCODER:
        q = VP9_SCALE.value(settings.compression_level)
        return [
            "-c:v", encoder, "-b:v", "0", "-crf", str(q),
            "-deadline", "realtime",
            "-cpu-used", "8" if turbo else "5",
            "-row-mt", "1",
        ]

    q = str(AV1_SCALE.value(settings.compression_level))
    args = ["-c:v", encoder]
    if encoder == SVT_AV1:
        args += ["-crf", q, "-preset", "10" if turbo else "6"]
        params = []
        if settings.subjective_tune:
            params.append("tune=0")
        if hdr:
            args += ["-pix_fmt", "yuv420p10le"]
            params.append("enable-hdr=1")
        if turbo:
            params += ["tile-columns=2", "tile-rows=1"]
        if params:
            args += ["-svtav1-params", ":".join(params)]
    elif encoder == "av1_nvenc":
        args += ["-rc", "vbr", "-cq", q, "-preset", "p1" if turbo else "p4"]
        if hdr:
            args += ["-pix_fmt", "p010le"]
    elif encoder == "av1_qsv":
        args += ["-global_quality", q, "-preset", "veryfast" if turbo else "medium"]
        if hdr:
            args += ["-pix_fmt", "p010le"]
    elif encoder == "av1_amf":
        args += ["-rc", "cqp", "-qp_i", q, "-qp_p", q, "-quality", "speed" if turbo else "balanced"]
        if hdr:
            args += ["-pix_fmt", "p010le"]
    else:
        args += ["-crf", q, "-b:v", "0", "-cpu-used", "8" if turbo else "4", "-row-mt", "1"]
        if hdr:
            args += ["-pix_fmt", "yuv420p10le"]
        if settings.subjective_tune:
            args += ["-tune", "ssim"]
        if turbo:
            args += ["-tiles", "2x1"]
    return args


def scale_filter(settings: CompressionSettings) -> str | None:
    if settings.resolution == ResolutionPreset.CUSTOM:
        w, h = settings.custom_width, settings.custom_height
        if not (w and h):
            logger.warning("Custom resolution without width/height, leaving size unchanged")
            return None
        if settings.lock_aspect_ratio:
            return f"scale={w}:{h}:force_original_aspect_ratio=decrease,pad={w}:{h}:(ow-iw)/2:(oh-ih)/2"
        return f"scale={w}:{h}"
    return _FIXED_SCALES.get(settings.resolution)


def audio_args(settings: CompressionSettings) -> list[str]:
    if settings.remove_audio or settings.format == OutputFormat.GIF:
        return ["-an"]
    return ["-c:a", AUDIO_CODECS[settings.format], "-b:a", AUDIO_BITRATE]


def plan(source_path: str, output_path: str, settings: CompressionSettings,
         encoders: frozenset[str] = frozenset()) -> EncodePlan:
    args = ["-i", str(source_path)]
    encoder = select_encoder(settings, encoders)

    if encoder is None:
        args += ["-vf", GIF_FILTER]
    else:
        args += video_args(encoder, settings)
        if settings.enable_turbo:
            args += ["-threads", "0"]
        if vf := scale_filter(settings):
            args += ["-vf", vf]

    args += audio_args(settings)
    if settings.clean_metadata:
        args += ["-map_metadata", "-1"]
    args += ["-y", str(output_path)]
    return EncodePlan(encoder=encoder, args=tuple(args))
