"""
Color system module for divflow visualization.

Maps normalized scalars onto named palettes by piecewise-linear interpolation
between fixed RGB anchors, plus the pulsing heat-map opacity and the
magnitude ramp used by the volumetric 3D view.
"""

import colorsys
import math
from enum import Enum

import numpy as np
from matplotlib.colors import LinearSegmentedColormap

from .. import config


class Palette(str, Enum):
    VIRIDIS = 'viridis'
    PLASMA = 'plasma'
    COOL = 'cool'
    HOT = 'hot'
    RAINBOW = 'rainbow'
    GRAYSCALE = 'grayscale'


# Anchor colors per palette, first anchor at t=0 and last at t=1
PALETTES = {
    Palette.VIRIDIS: (
        (68, 1, 84),
        (72, 40, 120),
        (62, 73, 137),
        (49, 104, 142),
        (38, 130, 142),
        (31, 158, 137),
        (53, 183, 121),
        (110, 206, 88),
        (181, 222, 43),
        (253, 231, 37),
    ),
    Palette.PLASMA: (
        (13, 8, 135),
        (75, 3, 161),
        (125, 3, 168),
        (168, 34, 150),
        (203, 70, 121),
        (229, 107, 93),
        (248, 148, 65),
        (253, 195, 40),
        (240, 249, 33),
    ),
    Palette.COOL: (
        (0, 255, 255),
        (51, 204, 255),
        (102, 153, 255),
        (153, 102, 255),
        (204, 51, 255),
        (255, 0, 255),
    ),
    Palette.HOT: (
        (0, 0, 0),
        (128, 0, 0),
        (255, 0, 0),
        (255, 128, 0),
        (255, 255, 0),
        (255, 255, 128),
        (255, 255, 255),
    ),
    Palette.RAINBOW: (
        (148, 0, 211),
        (75, 0, 130),
        (0, 0, 255),
        (0, 255, 0),
        (255, 255, 0),
        (255, 127, 0),
        (255, 0, 0),
    ),
    Palette.GRAYSCALE: (
        (0, 0, 0),
        (64, 64, 64),
        (128, 128, 128),
        (192, 192, 192),
        (255, 255, 255),
    ),
}


def get_palette(palette):
    """
    Resolve a palette name or member to its anchor tuple.

    Raises:
        KeyError: for an unknown palette name
    """
    try:
        key = Palette(palette)
    except ValueError:
        available = ", ".join(p.value for p in Palette)
        raise KeyError(f"Unknown palette '{palette}'. Available: {available}") from None
    return PALETTES[key]


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def map_color(t, palette=config.DEFAULT_PALETTE):
    """
    Map a scalar in [0, 1] to an RGB triple on the given palette.

    ``t`` is clamped first (NaN counts as 0), so every input yields a color.

    Args:
        t (float): Normalized value
        palette (Palette or str): Palette to use

    Returns:
        tuple: (r, g, b) integers in [0, 255]
    """
    colors = get_palette(palette)
    t = float(t)
    if math.isnan(t):
        t = 0.0
    t = max(0.0, min(1.0, t))

    scaled = t * (len(colors) - 1)
    idx = int(math.floor(scaled))
    frac = scaled - idx

    if idx >= len(colors) - 1:
        return tuple(colors[-1])

    c1 = colors[idx]
    c2 = colors[idx + 1]
    return tuple(_round_half_up(a + (b - a) * frac) for a, b in zip(c1, c2))


def map_colors(values, palette=config.DEFAULT_PALETTE):
    """
    Vectorized ``map_color`` over an array.

    Args:
        values (np.ndarray): Normalized values, any shape (NaN maps like 0)
        palette (Palette or str): Palette to use

    Returns:
        np.ndarray: uint8 array of shape values.shape + (3,)
    """
    anchors = np.asarray(get_palette(palette), dtype=float)
    n = len(anchors)
    t = np.clip(np.nan_to_num(np.asarray(values, dtype=float), nan=0.0), 0.0, 1.0)

    scaled = t * (n - 1)
    idx = np.minimum(np.floor(scaled).astype(int), n - 2)
    frac = (scaled - idx)[..., np.newaxis]

    rgb = anchors[idx] + (anchors[idx + 1] - anchors[idx]) * frac
    return np.floor(rgb + 0.5).astype(np.uint8)


def rgb_to_hex(rgb):
    """Convert an (r, g, b) integer triple to a hex string."""
    return '#{:02x}{:02x}{:02x}'.format(*(int(c) for c in rgb))


def hex_to_rgb(hex_color):
    """Convert a hex color to an (r, g, b) integer triple."""
    hex_color = hex_color.lstrip('#')
    return tuple(int(hex_color[i:i + 2], 16) for i in (0, 2, 4))


def rgb_string(rgb):
    """CSS-style ``rgb(r, g, b)`` string for drawing APIs that take one."""
    r, g, b = rgb
    return f"rgb({int(r)}, {int(g)}, {int(b)})"


def to_matplotlib_cmap(palette=config.DEFAULT_PALETTE, n=256):
    """Build a matplotlib colormap that interpolates the palette anchors linearly."""
    key = Palette(palette)
    anchors = np.asarray(PALETTES[key], dtype=float) / 255.0
    return LinearSegmentedColormap.from_list(f"divflow_{key.value}", anchors, N=n)


def pulse_alpha(divergence, normalized, elapsed, enabled=True):
    """
    Heat-map cell opacity with an optional slow pulse.

    Cells with larger |divergence| pulse faster; cells far from the middle
    of the color range pulse harder. The result is clamped to
    [MIN_HEATMAP_ALPHA, MAX_HEATMAP_ALPHA].

    Args:
        divergence (float or np.ndarray): Raw divergence values
        normalized (float or np.ndarray): Same values normalized to [0, 1]
        elapsed (float): Seconds since the animation started
        enabled (bool): When False the base alpha is returned

    Returns:
        float or np.ndarray: Opacity per cell
    """
    divergence = np.asarray(divergence, dtype=float)
    normalized = np.asarray(normalized, dtype=float)
    alpha = np.full(np.broadcast_shapes(divergence.shape, normalized.shape), config.BASE_HEATMAP_ALPHA)
    if enabled:
        frequency = 0.5 + np.abs(divergence) * 0.5
        intensity = 0.05 + 0.1 * np.abs(normalized - 0.5)
        pulse = np.sin(elapsed * frequency * np.pi) * intensity
        alpha = config.BASE_HEATMAP_ALPHA + pulse * 0.15
    alpha = np.clip(np.nan_to_num(alpha, nan=config.BASE_HEATMAP_ALPHA),
                    config.MIN_HEATMAP_ALPHA, config.MAX_HEATMAP_ALPHA)
    if alpha.ndim == 0:
        return float(alpha)
    return alpha


def divergence_rgba(divergence_grid, palette=config.DEFAULT_PALETTE, elapsed=0.0, pulsing=False):
    """
    Heat-map colors for a DivergenceGrid.

    Args:
        divergence_grid (DivergenceGrid): Grid to color
        palette (Palette or str): Palette to use
        elapsed (float): Animation time for the pulse
        pulsing (bool): Enable the pulse

    Returns:
        np.ndarray: float RGBA in [0, 1], shape grid.shape + (4,); alpha is 0
        for non-finite samples
    """
    normalized = divergence_grid.normalized()
    rgba = np.zeros(divergence_grid.grid.shape + (4,))
    rgba[..., :3] = map_colors(normalized, palette) / 255.0
    alpha = pulse_alpha(divergence_grid.grid, normalized, elapsed, pulsing)
    rgba[..., 3] = np.where(divergence_grid.finite, alpha, 0.0)
    return rgba


def magnitude_color(normalized):
    """
    Blue -> cyan -> green -> yellow -> red ramp for normalized magnitude.

    Args:
        normalized (float): Magnitude in [0, 1]

    Returns:
        tuple: (r, g, b) floats in [0, 1]
    """
    n = min(1.0, max(0.0, float(normalized)))
    if n < 0.25:
        hue, lightness = 0.6, 0.3 + n * 0.8
    elif n < 0.5:
        hue, lightness = 0.5 - (n - 0.25) * 0.8, 0.5
    elif n < 0.75:
        hue, lightness = 0.3 - (n - 0.5) * 0.6, 0.5
    else:
        hue, lightness = 0.1 - (n - 0.75) * 0.4, 0.5
    return colorsys.hls_to_rgb(hue % 1.0, lightness, 1.0)


def magnitude_colors(normalized):
    """Vectorized ``magnitude_color``; returns an (n, 3) float array."""
    values = np.asarray(normalized, dtype=float).ravel()
    return np.array([magnitude_color(v) for v in values]).reshape(-1, 3)
