# vlite/models/settings.py
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum


class OutputFormat(str, Enum):
    MP4 = "MP4"
    WEBM = "WebM"
    MKV = "MKV"
    GIF = "GIF"

    @property
    def extension(self) -> str:
        return self.value.lower()


class ResolutionPreset(str, Enum):
    ORIGINAL = "Original"
    UHD_4K = "4K"
    FHD_1080P = "1080p"
    HD_720P = "720p"
    SD_480P = "480p"
    INSTAGRAM = "Instagram"
    YOUTUBE = "YouTube"
    CUSTOM = "Custom"


class OutputMode(str, Enum):
    SAME_AS_SOURCE = "Same"
    CUSTOM = "Custom"


_ENUM_FIELDS = {
    "format": OutputFormat,
    "resolution": ResolutionPreset,
    "output_mode": OutputMode,
}


@dataclass(frozen=True)
class CompressionSettings:
    format: OutputFormat = OutputFormat.MP4
    resolution: ResolutionPreset = ResolutionPreset.ORIGINAL
    custom_width: int | None = None
    custom_height: int | None = None
    lock_aspect_ratio: bool = True
    compression_level: int = 6  # 1..10, clamped by whoever builds the snapshot
    remove_audio: bool = False
    clean_metadata: bool = False
    enable_turbo: bool = False
    enable_hdr: bool = False
    subjective_tune: bool = True
    move_to_trash: bool = False
    use_high_efficiency_codec: bool = False  # True => AV1, False => VP9
    parallel_limit: int = 2
    output_mode: OutputMode = OutputMode.SAME_AS_SOURCE
    custom_output_dir: str | None = None

    def updated(self, **partial) -> "CompressionSettings":
        return replace(self, **_coerce(partial))

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in _ENUM_FIELDS:
            data[key] = data[key].value
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> "CompressionSettings":
        known = {f.name for f in fields(cls)}
        return cls(**_coerce({k: v for k, v in (data or {}).items() if k in known}))


def _coerce(values: dict) -> dict:
    out = dict(values)
    for key, enum_type in _ENUM_FIELDS.items():
        if key in out and not isinstance(out[key], enum_type):
            out[key] = enum_type(out[key])
    return out


# One-click presets from the settings panel
PRESETS = {
    "best_quality": {"compression_level": 4, "enable_turbo": False},
    "balanced": {"compression_level": 6, "enable_turbo": False},
    "smallest_size": {"compression_level": 8, "enable_turbo": True},
}


def estimated_reduction(level: int) -> float:
    """Rough fraction of the input size saved at a given compression level."""
    return 0.15 + (level - 1) * 0.07


def estimate_output_size(total_bytes: int, level: int) -> int:
    return round(total_bytes * (1 - estimated_reduction(level)))
