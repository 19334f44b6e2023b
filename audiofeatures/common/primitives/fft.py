"""
Radix-2 FFT with a precomputed per-size plan.

The plan owns its bit-reversal order, per-stage twiddle tables and scratch
buffers, so repeated transforms of the same size never allocate.
"""

from functools import lru_cache
from typing import Dict, List, Tuple

import numpy as np

from audiofeatures.core.errors import FFTConfigurationError


def is_power_of_two(n: int) -> bool:
    """Check if n is a positive power of two."""
    return isinstance(n, (int, np.integer)) and n >= 1 and (n & (n - 1)) == 0


def _bit_reversal_order(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    order = np.zeros(n, dtype=np.intp)
    for i in range(n):
        rev = 0
        value = i
        for _ in range(bits):
            rev = (rev << 1) | (value & 1)
            value >>= 1
        order[i] = rev
    return order


class _Scratch:
    """Per-dtype working buffers and twiddle tables for one plan."""

    def __init__(self, n: int, dtype: np.dtype, stages: List[Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]]):
        half = max(1, n // 2)
        self.permuted = np.empty(n, dtype=dtype)
        self.top_re = np.empty(half, dtype=dtype)
        self.top_im = np.empty(half, dtype=dtype)
        self.bot_re = np.empty(half, dtype=dtype)
        self.bot_im = np.empty(half, dtype=dtype)
        self.t_re = np.empty(half, dtype=dtype)
        self.t_im = np.empty(half, dtype=dtype)
        self.tmp = np.empty(half, dtype=dtype)
        self.twiddles = [
            (cos.astype(dtype), sin.astype(dtype)) for _, _, cos, sin in stages
        ]


class FFTPlan:
    """
    Iterative radix-2 Cooley-Tukey transform for a fixed size N.

    Usage:
        plan = get_fft_plan(2048)
        real = frame.astype(np.float64)
        imag = np.zeros_like(real)
        plan.transform(real, imag)   # in place

    A plan is not safe to share between threads running transforms at the
    same time; analysis runs calculators on a single worker thread.
    """

    def __init__(self, size: int):
        if not is_power_of_two(size):
            raise FFTConfigurationError(
                "FFT size must be a power of two", data={"size": size}
            )
        self.size = int(size)
        self.order = _bit_reversal_order(self.size)

        # Per stage: (top indices, bottom indices, cos, -sin)
        self._stages: List[Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]] = []
        butterflies = np.arange(self.size // 2, dtype=np.intp)
        span = 2
        while span <= self.size:
            half = span // 2
            offset = butterflies % half
            top = (butterflies // half) * span + offset
            angle = 2.0 * np.pi * offset / span
            self._stages.append((top, top + half, np.cos(angle), -np.sin(angle)))
            span *= 2

        self._scratch: Dict[np.dtype, _Scratch] = {}

    @property
    def n_stages(self) -> int:
        return len(self._stages)

    def _validate(self, real: np.ndarray, imag: np.ndarray) -> _Scratch:
        for name, buf in (("real", real), ("imag", imag)):
            if not isinstance(buf, np.ndarray) or buf.ndim != 1:
                raise FFTConfigurationError(
                    f"FFT {name} buffer must be a 1-D numpy array",
                    data={"size": self.size},
                )
            if buf.shape[0] != self.size:
                raise FFTConfigurationError(
                    "FFT buffer length does not match plan size",
                    data={"size": self.size, "buffer": name, "length": int(buf.shape[0])},
                )
            if not np.issubdtype(buf.dtype, np.floating):
                raise FFTConfigurationError(
                    f"FFT {name} buffer must be floating point",
                    data={"dtype": str(buf.dtype)},
                )
        if real.dtype != imag.dtype:
            raise FFTConfigurationError(
                "FFT real and imag buffers must share a dtype",
                data={"real": str(real.dtype), "imag": str(imag.dtype)},
            )
        scratch = self._scratch.get(real.dtype)
        if scratch is None:
            scratch = _Scratch(self.size, real.dtype, self._stages)
            self._scratch[real.dtype] = scratch
        return scratch

    def transform(self, real: np.ndarray, imag: np.ndarray) -> None:
        """
        Forward transform in place.

        Args:
            real: Real part, length N (overwritten with the spectrum)
            imag: Imaginary part, length N (overwritten with the spectrum)

        Raises:
            FFTConfigurationError: If buffers are not 1-D float arrays of length N
        """
        s = self._validate(real, imag)
        if self.size == 1:
            return

        np.take(real, self.order, out=s.permuted, mode="clip")
        real[:] = s.permuted
        np.take(imag, self.order, out=s.permuted, mode="clip")
        imag[:] = s.permuted

        for (top, bot, _, _), (cos, sin) in zip(self._stages, s.twiddles):
            np.take(real, top, out=s.top_re, mode="clip")
            np.take(imag, top, out=s.top_im, mode="clip")
            np.take(real, bot, out=s.bot_re, mode="clip")
            np.take(imag, bot, out=s.bot_im, mode="clip")

            # t = w * bottom
            np.multiply(s.bot_re, cos, out=s.t_re)
            np.multiply(s.bot_im, sin, out=s.tmp)
            np.subtract(s.t_re, s.tmp, out=s.t_re)
            np.multiply(s.bot_re, sin, out=s.t_im)
            np.multiply(s.bot_im, cos, out=s.tmp)
            np.add(s.t_im, s.tmp, out=s.t_im)

            np.add(s.top_re, s.t_re, out=s.tmp)
            np.put(real, top, s.tmp)
            np.subtract(s.top_re, s.t_re, out=s.tmp)
            np.put(real, bot, s.tmp)
            np.add(s.top_im, s.t_im, out=s.tmp)
            np.put(imag, top, s.tmp)
            np.subtract(s.top_im, s.t_im, out=s.tmp)
            np.put(imag, bot, s.tmp)

    def inverse(self, real: np.ndarray, imag: np.ndarray) -> None:
        """Inverse transform in place, scaled by 1/N."""
        self._validate(real, imag)
        np.negative(imag, out=imag)
        self.transform(real, imag)
        np.negative(imag, out=imag)
        real /= self.size
        imag /= self.size

    def __repr__(self) -> str:
        return f"FFTPlan(size={self.size})"


@lru_cache(maxsize=32)
def get_fft_plan(size: int) -> FFTPlan:
    """Get the shared plan for size N (built once per N)."""
    return FFTPlan(size)
