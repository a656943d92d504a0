"""
pxmatch - Perceptual pixel-level image comparison
Counts the pixels that differ meaningfully between a "before" and an "after"
render and paints a diff image highlighting them.

- YIQ-based colour delta, alpha-blended against a white background.
- Anti-aliased edge detection on 3x3 neighbourhoods so smoothing artifacts
  are painted yellow instead of being counted.
- Unchanged pixels are rendered as dimmed grayscale for context.
- Numba-compiled kernels; rows are processed in parallel with per-row
  partial counts merged after the loop.
"""

import json
import logging
import math
import time
from dataclasses import dataclass, asdict, field, fields
from typing import Dict, Optional, Tuple, Any

import numba
import numpy as np
from numba import njit, prange

logger = logging.getLogger(__name__)

# Constants
DEFAULT_THRESHOLD = 0.1
MAX_YIQ_DELTA = 35215.0  # largest full-mode delta for 8-bit channels
GRAY_ALPHA = 0.1  # dimming factor for unchanged pixels
VERSION = "0.3.0"

RED = (255, 0, 0)
YELLOW = (255, 255, 0)


class PixelMatchError(Exception):
    """Base class for comparison errors"""
    exit_code = 1


class DimensionMismatch(PixelMatchError):
    """Before and after images differ in width or height"""
    exit_code = 2

    def __init__(self, before: Tuple[int, int], after: Tuple[int, int]):
        self.before = tuple(before)
        self.after = tuple(after)
        super().__init__(
            f"Image sizes do not match: {self.before[0]}x{self.before[1]} "
            f"vs {self.after[0]}x{self.after[1]}"
        )


class PixelFormatError(PixelMatchError):
    """Pixel buffer is not an (h, w, 4) uint8 array"""
    exit_code = 2


class ConfigError(PixelMatchError):
    """Configuration related errors"""
    exit_code = 2


class ImageLoadError(PixelMatchError):
    """Image file could not be opened or decoded"""
    pass


class ImageSaveError(PixelMatchError):
    """Diff image could not be written"""
    pass


@dataclass
class MatchConfig:
    """Configuration for a pixel comparison"""
    threshold: float = DEFAULT_THRESHOLD
    include_antialiased: bool = False
    parallel: bool = True
    num_threads: Optional[int] = None

    @property
    def max_delta(self) -> float:
        return MAX_YIQ_DELTA * self.threshold * self.threshold

    def validate(self) -> 'MatchConfig':
        """Check value ranges, raising ConfigError on the first bad field"""
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, (int, float)):
            raise ConfigError(f"Threshold must be a number, got {self.threshold!r}")
        if math.isnan(self.threshold) or not 0.0 <= self.threshold <= 1.0:
            raise ConfigError(f"Threshold must be within [0, 1], got {self.threshold}")
        if self.num_threads is not None and (
                isinstance(self.num_threads, bool)
                or not isinstance(self.num_threads, int)
                or self.num_threads < 1):
            raise ConfigError(f"num_threads must be a positive integer, got {self.num_threads!r}")
        return self

    @classmethod
    def from_json(cls, path: str) -> 'MatchConfig':
        """Load configuration from JSON file"""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            known = {fld.name for fld in fields(cls)}
            unknown = set(data) - known
            if unknown:
                raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
            config = cls(**data)
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e
        return config.validate()

    def to_json(self, path: str):
        """Save configuration to JSON file"""
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)


@dataclass
class MatchResult:
    """Outcome of one comparison"""
    diff_count: int
    width: int
    height: int
    diff_image: np.ndarray = field(repr=False)

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    @property
    def diff_ratio(self) -> float:
        if self.total_pixels == 0:
            return 0.0
        return self.diff_count / self.total_pixels

    def to_dict(self) -> Dict[str, Any]:
        return {
            'diff_count': self.diff_count,
            'width': self.width,
            'height': self.height,
            'total_pixels': self.total_pixels,
            'diff_ratio': self.diff_ratio,
        }


# --- colour metric ---------------------------------------------------------

@njit
def blend(c, a):
    """Blend channel value c toward white by opacity a (0..1)"""
    return int(255.0 + (float(c) - 255.0) * a)


@njit
def rgb2y(r, g, b):
    return r * 0.29889531 + g * 0.58662247 + b * 0.11448223


@njit
def rgb2i(r, g, b):
    return r * 0.59597799 - g * 0.27417610 - b * 0.32180189


@njit
def rgb2q(r, g, b):
    return r * 0.21147017 - g * 0.52261711 + b * 0.31114694


@njit
def color_delta(pixel_a, pixel_b, y_only):
    """Perceptual distance between two RGBA pixels.

    Semi-transparent pixels are blended against white first. With y_only the
    signed luma difference is returned, otherwise the weighted YIQ distance.
    """
    r1 = int(pixel_a[0])
    g1 = int(pixel_a[1])
    b1 = int(pixel_a[2])
    a1 = int(pixel_a[3])
    r2 = int(pixel_b[0])
    g2 = int(pixel_b[1])
    b2 = int(pixel_b[2])
    a2 = int(pixel_b[3])

    if r1 == r2 and g1 == g2 and b1 == b2 and a1 == a2:
        return 0.0

    if a1 < 255:
        alpha = a1 / 255.0
        r1 = blend(r1, alpha)
        g1 = blend(g1, alpha)
        b1 = blend(b1, alpha)
    if a2 < 255:
        alpha = a2 / 255.0
        r2 = blend(r2, alpha)
        g2 = blend(g2, alpha)
        b2 = blend(b2, alpha)

    dy = rgb2y(r1, g1, b1) - rgb2y(r2, g2, b2)
    if y_only:
        return dy

    di = rgb2i(r1, g1, b1) - rgb2i(r2, g2, b2)
    dq = rgb2q(r1, g1, b1) - rgb2q(r2, g2, b2)
    return 0.5053 * dy * dy + 0.299 * di * di + 0.1957 * dq * dq


# --- anti-aliasing detection -----------------------------------------------

@njit
def _on_border(image, x, y):
    return x == 0 or x == image.shape[1] - 1 or y == 0 or y == image.shape[0] - 1


@njit
def has_many_siblings(image, x, y):
    """More than two of the 8 neighbours of (x, y) are identical to it"""
    if _on_border(image, x, y):
        return False

    siblings = 0
    for dx in range(-1, 2):
        for dy in range(-1, 2):
            if dx == 0 and dy == 0:
                continue
            nx = x + dx
            ny = y + dy
            if (image[ny, nx, 0] == image[y, x, 0]
                    and image[ny, nx, 1] == image[y, x, 1]
                    and image[ny, nx, 2] == image[y, x, 2]
                    and image[ny, nx, 3] == image[y, x, 3]):
                siblings += 1
                if siblings > 2:
                    return True
    return False


@njit
def is_antialiased(reference, other, x, y):
    """Whether (x, y) in reference looks like an anti-aliased edge pixel.

    The luma of reference[x, y] is compared against the 8 neighbours taken
    from other. Three or more equal neighbours mark a flat region; otherwise
    the darkest and brightest neighbours are checked for siblings in both
    images.
    """
    if _on_border(reference, x, y):
        return False

    zeroes = 0
    min_diff = 0.0
    max_diff = 0.0
    min_x = -1
    min_y = -1
    max_x = -1
    max_y = -1

    pixel = reference[y, x]
    for dx in range(-1, 2):
        for dy in range(-1, 2):
            if dx == 0 and dy == 0:
                continue
            nx = x + dx
            ny = y + dy
            delta = color_delta(pixel, other[ny, nx], True)
            if delta == 0.0:
                zeroes += 1
                if zeroes > 2:
                    return True
            elif delta < min_diff:
                min_diff = delta
                min_x = nx
                min_y = ny
            elif delta > max_diff:
                max_diff = delta
                max_x = nx
                max_y = ny

    # no darker or no brighter neighbour
    if min_diff == 0.0 or max_diff == 0.0:
        return False

    return ((has_many_siblings(reference, min_x, min_y)
             and has_many_siblings(other, min_x, min_y))
            or (has_many_siblings(reference, max_x, max_y)
                and has_many_siblings(other, max_x, max_y)))


# --- rendering -------------------------------------------------------------

@njit
def draw_pixel(output, x, y, r, g, b):
    output[y, x, 0] = np.uint8(r)
    output[y, x, 1] = np.uint8(g)
    output[y, x, 2] = np.uint8(b)
    output[y, x, 3] = np.uint8(255)


@njit
def gray_pixel(pixel, alpha):
    """Dimmed grayscale value for an unchanged pixel"""
    luma = int(math.floor(rgb2y(float(pixel[0]), float(pixel[1]), float(pixel[2])) + 0.5))
    if luma > 255:
        luma = 255
    return blend(luma, alpha * float(pixel[3]) / 255.0)


@njit
def render_pixel(before, after, output, x, y, delta, max_delta, include_aa):
    """Paint output[x, y] for the given delta and return its diff contribution"""
    if delta > max_delta:
        if not include_aa and (is_antialiased(before, after, x, y)
                               or is_antialiased(after, before, x, y)):
            draw_pixel(output, x, y, YELLOW[0], YELLOW[1], YELLOW[2])
            return 0
        draw_pixel(output, x, y, RED[0], RED[1], RED[2])
        return 1

    gray = gray_pixel(before[y, x], GRAY_ALPHA)
    draw_pixel(output, x, y, gray, gray, gray)
    return 0


# --- matching --------------------------------------------------------------

def _match_rows(before, after, output, max_delta, include_aa):
    height = before.shape[0]
    width = before.shape[1]
    row_diffs = np.zeros(height, dtype=np.int64)
    for y in prange(height):
        count = 0
        for x in range(width):
            delta = color_delta(before[y, x], after[y, x], False)
            count += render_pixel(before, after, output, x, y, delta, max_delta, include_aa)
        row_diffs[y] = count
    return row_diffs.sum()


# Same loop compiled twice; prange degrades to range in the serial build
_match_rows_serial = njit(_match_rows)
_match_rows_parallel = njit(parallel=True)(_match_rows)


def check_rgba(name: str, image: np.ndarray):
    """Raise PixelFormatError unless image is an (h, w, 4) buffer"""
    shape = getattr(image, 'shape', None)
    if shape is None or len(shape) != 3 or shape[2] != 4:
        raise PixelFormatError(f"{name} must be an (h, w, 4) RGBA array, got shape {shape}")


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """(width, height) of an (h, w, 4) pixel buffer"""
    return int(image.shape[1]), int(image.shape[0])


def match_pixels(before: np.ndarray, after: np.ndarray, output: np.ndarray,
                 threshold: float = DEFAULT_THRESHOLD, include_aa: bool = False,
                 parallel: bool = True) -> int:
    """Compare two RGBA buffers, paint output and return the diff count.

    All three arrays are (height, width, 4) uint8. output is written once per
    coordinate and never read. Raises DimensionMismatch before touching any
    pixel when the sizes disagree.
    """
    check_rgba('before', before)
    check_rgba('after', after)
    check_rgba('output', output)
    if output.dtype != np.uint8 or not output.flags.writeable:
        raise PixelFormatError(f"output must be a writable uint8 array, got {output.dtype}")

    before_size = image_size(before)
    after_size = image_size(after)
    if before_size != after_size:
        raise DimensionMismatch(before_size, after_size)
    output_size = image_size(output)
    if output_size != before_size:
        raise DimensionMismatch(before_size, output_size)

    before = np.ascontiguousarray(before, dtype=np.uint8)
    after = np.ascontiguousarray(after, dtype=np.uint8)
    max_delta = MAX_YIQ_DELTA * threshold * threshold

    kernel = _match_rows_parallel if parallel else _match_rows_serial
    start_time = time.time()
    diff = int(kernel(before, after, output, float(max_delta), bool(include_aa)))
    logger.debug(f"Compared {before_size[0]}x{before_size[1]} pixels "
                 f"(threshold={threshold}, max_delta={max_delta:.2f}) "
                 f"in {time.time() - start_time:.3f}s: {diff} differ")
    return diff


def compare_arrays(before: np.ndarray, after: np.ndarray,
                   config: Optional[MatchConfig] = None) -> MatchResult:
    """Allocate an output buffer sized to the inputs and run match_pixels"""
    if config is None:
        config = MatchConfig()
    config.validate()

    check_rgba('before', before)
    check_rgba('after', after)
    before_size = image_size(before)
    after_size = image_size(after)
    if before_size != after_size:
        raise DimensionMismatch(before_size, after_size)

    width, height = before_size
    output = np.zeros((height, width, 4), dtype=np.uint8)

    previous_threads = None
    if config.num_threads is not None:
        previous_threads = numba.get_num_threads()
        numba.set_num_threads(min(config.num_threads, numba.config.NUMBA_NUM_THREADS))
    try:
        diff = match_pixels(before, after, output, config.threshold,
                            config.include_antialiased, config.parallel)
    finally:
        if previous_threads is not None:
            numba.set_num_threads(previous_threads)

    return MatchResult(diff_count=diff, width=width, height=height, diff_image=output)
