# vlite/encoding/capabilities.py
import logging
import re
import subprocess

logger = logging.getLogger(__name__)

# " V....D libsvtav1            SVT-AV1(Scalable Video Technology for AV1) encoder"
_ENCODER_LINE = re.compile(r"^\s*([VAS][A-Z.]{5})\s+(\S+)")


def parse_encoders(output: str) -> frozenset[str]:
    names = set()
    for line in output.splitlines():
        if m := _ENCODER_LINE.match(line):
            if m.group(2) != "=":  # legend line " V..... = Video"
                names.add(m.group(2))
    return frozenset(names)


class EncoderCapabilities:
    """Which encoders the local ffmpeg build offers. Queried once, then cached.

    ``query()`` blocks on the ffmpeg child, so the orchestrator runs it on its
    probe thread and hands the answer back through ``remember()``.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: int = 30):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self._encoders: frozenset[str] | None = None

    @classmethod
    def fixed(cls, names=()) -> "EncoderCapabilities":
        caps = cls()
        caps.remember(names)
        return caps

    @property
    def known(self) -> bool:
        return self._encoders is not None

    def remember(self, names) -> None:
        self._encoders = frozenset(names)

    def encoders(self) -> frozenset[str]:
        if self._encoders is None:
            self.remember(self.query())
        return self._encoders

    def supports(self, name: str) -> bool:
        return name in self.encoders()

    def query(self) -> frozenset[str]:
        cmd = [self.ffmpeg_path, "-hide_banner", "-encoders"]
        try:
            out = subprocess.check_output(cmd, stderr=subprocess.STDOUT, text=True, timeout=self.timeout)
        except FileNotFoundError:
            logger.warning("ffmpeg not found at %r, assuming no optional encoders", self.ffmpeg_path)
            return frozenset()
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            logger.warning("Encoder query failed: %s", e)
            return frozenset()
        names = parse_encoders(out)
        logger.debug("ffmpeg reports %d encoders", len(names))
        return names
