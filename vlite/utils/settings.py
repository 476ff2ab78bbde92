# vlite/utils/settings.py
import json
import logging
from pathlib import Path

from ..models.settings import CompressionSettings

logger = logging.getLogger(__name__)


# Top directory = folder that contains the `vlite/` package
def _top_dir() -> Path:
    # This file is vlite/utils/settings.py → parents[2] is the folder above vlite/
    return Path(__file__).resolve().parents[2]

APP_SETTINGS_FILE = _top_dir() / "vlite_settings.json"
FALLBACK_FILE = Path("vlite_settings.json")

DEFAULT_SETTINGS = {
    "ffmpeg_path": "ffmpeg",
    "ffprobe_path": "ffprobe",
    "probe_timeout": 30,          # seconds, ffprobe size/duration lookups
    "capability_timeout": 30,     # seconds, `ffmpeg -encoders`
    # last used compression settings, see CompressionSettings.to_dict()
    "compression": CompressionSettings().to_dict(),
}


def _merge(data: dict) -> dict:
    merged = {**DEFAULT_SETTINGS, **data}
    merged["compression"] = {**DEFAULT_SETTINGS["compression"], **(data.get("compression") or {})}
    return merged


def load_settings() -> dict:
    p = APP_SETTINGS_FILE
    if p.exists():
        try:
            data = json.loads(p.read_text())
            if isinstance(data, dict):
                return _merge(data)
            logger.warning("Ignoring %s: not a JSON object", p)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read %s: %s", p, e)
    # First run or broken file → write defaults so the file exists in the top dir
    save_settings(DEFAULT_SETTINGS)
    return _merge({})


def save_settings(data: dict) -> None:
    text = json.dumps(data, indent=2)
    try:
        APP_SETTINGS_FILE.write_text(text)
    except OSError as e:
        # Last resort fallback to CWD
        logger.warning("Could not write %s (%s), using %s", APP_SETTINGS_FILE, e, FALLBACK_FILE.resolve())
        FALLBACK_FILE.write_text(text)


def compression_settings(data: dict) -> CompressionSettings:
    try:
        return CompressionSettings.from_dict(data.get("compression"))
    except (TypeError, ValueError) as e:
        logger.warning("Stored compression settings are invalid (%s), using defaults", e)
        return CompressionSettings()
