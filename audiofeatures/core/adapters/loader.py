"""PCM sources and audio file loading."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Union

import librosa
import numpy as np
import soundfile as sf

from audiofeatures.common.logging import get_logger
from audiofeatures.common.primitives.signal import mix_to_mono
from audiofeatures.core.errors import AudioLoadError, ConfigurationError

logger = get_logger(__name__)


class PcmSource(Protocol):
    """Multi-channel sample buffer consumed by the analysis pipeline."""

    @property
    def sample_rate(self) -> int: ...

    @property
    def channel_count(self) -> int: ...

    @property
    def length(self) -> int: ...

    def channel(self, index: int) -> np.ndarray: ...

    def mono(self) -> np.ndarray: ...


@dataclass
class ArrayPcmSource:
    """
    In-memory PCM source.

    Attributes:
        samples: Array shaped (channels, samples) or (samples,)
        sample_rate: Sample rate in Hz
        source_path: Optional file the samples came from
    """
    samples: np.ndarray
    sample_rate: int
    source_path: Optional[str] = None
    _mono: Optional[np.ndarray] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2:
            raise ConfigurationError(
                "PCM samples must be 1-D or (channels, samples)",
                data={"shape": list(samples.shape)},
            )
        if self.sample_rate is None or self.sample_rate <= 0:
            raise ConfigurationError(
                "PCM sample rate must be positive", data={"sample_rate": self.sample_rate}
            )
        self.samples = np.ascontiguousarray(samples)

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def length(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration_sec(self) -> float:
        return self.length / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        return self.samples[index]

    def mono(self) -> np.ndarray:
        """Average of all channels (computed once)."""
        if self._mono is None:
            self._mono = mix_to_mono(list(self.samples))
        return self._mono


class AudioLoader:
    """Loads audio files into ArrayPcmSource with validation and error handling."""

    SUPPORTED_FORMATS = {'.mp3', '.wav', '.flac', '.m4a', '.mp4', '.ogg', '.aiff', '.aif'}

    def __init__(self, sample_rate: Optional[int] = None):
        """
        Initialize audio loader.

        Args:
            sample_rate: Target sample rate (None keeps the file's native rate)
        """
        self.sample_rate = sample_rate

    @classmethod
    def is_supported_format(cls, file_path: Union[str, Path]) -> bool:
        return Path(file_path).suffix.lower() in cls.SUPPORTED_FORMATS

    def load(
        self,
        file_path: Union[str, Path],
        duration: Optional[float] = None,
        offset: float = 0.0,
    ) -> ArrayPcmSource:
        """
        Load an audio file keeping all channels.

        Args:
            file_path: Path to audio file
            duration: Duration to load in seconds (None = entire file)
            offset: Start offset in seconds

        Returns:
            ArrayPcmSource shaped (channels, samples)

        Raises:
            AudioLoadError: If the file is missing, unsupported or unreadable
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise AudioLoadError(f"Audio file not found: {file_path}", data={"path": str(file_path)})

        if not self.is_supported_format(file_path):
            raise AudioLoadError(
                f"Unsupported format: {file_path.suffix}",
                data={"path": str(file_path), "supported": sorted(self.SUPPORTED_FORMATS)},
            )

        try:
            logger.info(f"Loading audio: {file_path.name}")
            y, sr = librosa.load(
                str(file_path),
                sr=self.sample_rate,
                mono=False,
                duration=duration,
                offset=offset,
            )
        except Exception as e:
            raise AudioLoadError(
                f"Failed to load audio file: {file_path.name}", data={"path": str(file_path)}, cause=e
            )

        source = ArrayPcmSource(samples=y, sample_rate=int(sr), source_path=str(file_path))
        logger.info(
            f"Loaded {file_path.name}: {source.duration_sec:.2f}s, {sr}Hz, "
            f"{source.channel_count} channel(s)"
        )
        return source

    def get_duration(self, file_path: Union[str, Path]) -> float:
        """
        Get audio file duration without decoding it.

        Raises:
            AudioLoadError: If the duration cannot be determined
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise AudioLoadError(f"Audio file not found: {file_path}", data={"path": str(file_path)})

        try:
            return float(sf.info(str(file_path)).duration)
        except Exception:
            # soundfile cannot read compressed formats such as mp3 on every platform
            try:
                return float(librosa.get_duration(path=str(file_path)))
            except Exception as e:
                raise AudioLoadError(
                    f"Failed to get audio duration: {file_path.name}",
                    data={"path": str(file_path)},
                    cause=e,
                )
