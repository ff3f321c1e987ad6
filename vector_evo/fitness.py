"""
Fitness evaluation.

Scores a rendered candidate against the target with a hybrid perceptual
metric: structural similarity (SSIM) over luminance, plus RMS similarity over
the two chroma channels of the YUV color space. The evaluator holds no
mutable state, so one instance can be shared by every worker thread.
"""

import math
from typing import Tuple

import numpy as np
from skimage.metrics import structural_similarity


class SearchInvariantError(RuntimeError):
    """An internal invariant of the search was broken (a defect, not bad input)."""
    pass


class RasterInvariantError(SearchInvariantError):
    """Candidate and target rasters do not share the same dimensions."""
    pass


# BT.601 RGB -> YUV
_YUV_MATRIX = np.array([
    [0.299, 0.587, 0.114],
    [-0.14713, -0.28886, 0.436],
    [0.615, -0.51499, -0.10001],
])

SSIM_MAX_WINDOW = 7
SCORE_DECIMALS = 6


def rgb_to_yuv(raster: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert an RGB raster to Y, U, V planes.

    Args:
        raster: (height, width, 3) array

    Returns:
        Tuple of (y, u, v) float64 planes
    """
    yuv = raster.astype(np.float64) @ _YUV_MATRIX.T
    return yuv[..., 0], yuv[..., 1], yuv[..., 2]


def ssim_window(height: int, width: int) -> int:
    """Largest odd SSIM window (at most 7) that fits the image, or 0 if none does."""
    size = min(SSIM_MAX_WINDOW, height, width)
    if size % 2 == 0:
        size -= 1
    return size if size >= 3 else 0


def rms_similarity(a: np.ndarray, b: np.ndarray, data_range: float = 255.0) -> float:
    """1 - normalized RMS difference, clipped to [0, 1]."""
    rms = math.sqrt(float(np.mean((a - b) ** 2)))
    return min(max(1.0 - rms / data_range, 0.0), 1.0)


def floor_score(score: float, decimals: int = SCORE_DECIMALS) -> float:
    """Clip to [0, 1] and floor to a fixed precision."""
    scale = 10 ** decimals
    score = min(max(score, 0.0), 1.0)
    return math.floor(score * scale) / scale


class FitnessEvaluator:
    """
    Pure similarity function between a candidate raster and the target.

    Higher is better; identical rasters score exactly 1.0. Scores are floored
    to SCORE_DECIMALS places so floating-point noise never reads as an
    improvement.
    """

    def __init__(self, luminance_weight: float = 0.5, chroma_weight: float = 0.25):
        """
        Args:
            luminance_weight: Weight of the luminance SSIM term
            chroma_weight: Weight of each of the U and V similarity terms
        """
        if luminance_weight < 0 or chroma_weight < 0 or luminance_weight + chroma_weight <= 0:
            raise ValueError("Fitness weights must be non-negative and not all zero")
        self.luminance_weight = float(luminance_weight)
        self.chroma_weight = float(chroma_weight)

    @classmethod
    def from_settings(cls, settings) -> "FitnessEvaluator":
        return cls(settings.luminance_weight, settings.chroma_weight)

    def luminance_similarity(self, candidate_y: np.ndarray, target_y: np.ndarray) -> float:
        window = ssim_window(*target_y.shape)
        if window == 0:
            return rms_similarity(candidate_y, target_y)
        ssim = structural_similarity(target_y, candidate_y, win_size=window, data_range=255.0)
        return max(float(ssim), 0.0)

    def score(self, candidate: np.ndarray, target: np.ndarray) -> float:
        """
        Score a candidate raster against the target raster.

        Args:
            candidate: Rendered candidate, (height, width, 3) uint8
            target: Target pixels, same shape

        Returns:
            Similarity in [0, 1]

        Raises:
            RasterInvariantError: If the rasters differ in shape
        """
        if candidate.shape != target.shape:
            raise RasterInvariantError(
                f"Candidate raster {candidate.shape} does not match target raster {target.shape}"
            )
        if np.array_equal(candidate, target):
            return 1.0

        cand_y, cand_u, cand_v = rgb_to_yuv(candidate)
        targ_y, targ_u, targ_v = rgb_to_yuv(target)

        weighted = (
            self.luminance_weight * self.luminance_similarity(cand_y, targ_y)
            + self.chroma_weight * rms_similarity(cand_u, targ_u)
            + self.chroma_weight * rms_similarity(cand_v, targ_v)
        )
        total_weight = self.luminance_weight + 2 * self.chroma_weight

        return floor_score(weighted / total_weight)
