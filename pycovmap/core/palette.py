"""Color palettes and value-to-palette scaling."""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Iterator, Sequence
from typing import Any

import numpy as np
import numpy.typing as npt

from pycovmap.utils import dependencies

logger = logging.getLogger(__name__)

#: A color is a hex string ("#rrggbb" or "#rgb"), a named color
#: (requires matplotlib) or an RGB triple with channels in [0, 255]
Color = str | Sequence[float]

#: Bias added to the palette size in :func:`scale` so that the upper end of
#: the extent maps to the last palette index
BYTSCL_BIAS = 0.9999


@dataclasses.dataclass(frozen=True, eq=False)
class Palette:
    """Fixed-length sequence of RGB colors.

    The channel arrays are read-only ``uint8`` arrays of equal length.
    """

    #: Red channel
    red: npt.NDArray[np.uint8]

    #: Green channel
    green: npt.NDArray[np.uint8]

    #: Blue channel
    blue: npt.NDArray[np.uint8]

    def __post_init__(self) -> None:
        channels = []
        for name in ("red", "green", "blue"):
            arr = np.array(getattr(self, name), dtype=np.uint8).reshape(-1)
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)
            channels.append(arr)

        if not channels[0].size:
            raise ValueError("Palette must have at least one step")
        if any(c.size != channels[0].size for c in channels):
            raise ValueError("Palette channels must have equal length")

    def __len__(self) -> int:
        return self.steps

    def __repr__(self) -> str:
        return f"Palette(steps={self.steps})"

    @property
    def steps(self) -> int:
        """Number of colors."""
        return self.red.size

    @property
    def colors(self) -> npt.NDArray[np.uint8]:
        """Colors as an array of shape ``(steps, 3)``."""
        return np.stack([self.red, self.green, self.blue], axis=1)

    def to_hex(self) -> list[str]:
        """Colors as ``"#rrggbb"`` strings."""
        return [f"#{r:02x}{g:02x}{b:02x}" for r, g, b in self.colors.tolist()]


def parse_color(color: Color) -> tuple[float, float, float]:
    """Convert a color to an RGB triple with channels in ``[0, 255]``.

    Named colors are resolved with :func:`matplotlib.colors.to_rgb`.

    Examples
    --------
    >>> parse_color("#ff8000")
    (255.0, 128.0, 0.0)
    >>> parse_color("#fff")
    (255.0, 255.0, 255.0)
    >>> parse_color((0, 10, 20))
    (0.0, 10.0, 20.0)
    """
    if not isinstance(color, str):
        r, g, b = (float(c) for c in color)
        return r, g, b

    if color.startswith("#"):
        digits = color[1:]
        if len(digits) == 3:
            digits = "".join(d * 2 for d in digits)
        if len(digits) != 6:
            msg = f"Invalid hex color '{color}'"
            raise ValueError(msg)
        return (
            float(int(digits[0:2], 16)),
            float(int(digits[2:4], 16)),
            float(int(digits[4:6], 16)),
        )

    try:
        import matplotlib.colors
    except ModuleNotFoundError as exc:
        dependencies.raise_module_not_found_error(
            name="parse_color function",
            package_name="matplotlib",
            module_not_found_error=exc,
            pycovmap_optional_package="vis",
            extra="Named colors require matplotlib. Use hex strings or RGB triples instead.",
        )

    r, g, b = matplotlib.colors.to_rgb(color)
    return r * 255.0, g * 255.0, b * 255.0


def linear_palette(colors: Sequence[Color], steps: int = 256) -> Palette:
    """Build a palette by linear interpolation between evenly spaced color stops.

    Parameters
    ----------
    colors : Sequence[Color]
        Color stops, evenly spaced over the palette.
    steps : int, optional
        Number of palette colors.

    Returns
    -------
    Palette
        Palette with ``steps`` colors. Channels are rounded to the nearest
        integer. If ``steps == 1``, the palette holds the first stop's color.

    Examples
    --------
    >>> palette = linear_palette(["#000000", "#ffffff"], steps=3)
    >>> palette.to_hex()
    ['#000000', '#808080', '#ffffff']
    """
    if steps < 1:
        msg = f"Palette must have at least one step, got {steps}"
        raise ValueError(msg)
    if not len(colors):
        raise ValueError("At least one color stop is required")

    rgb = np.array([parse_color(c) for c in colors], dtype=np.float64)
    if steps == 1 or len(rgb) == 1:
        channels = np.repeat(rgb[:1], steps, axis=0)
    else:
        stops = np.linspace(0.0, 1.0, len(rgb))
        positions = np.linspace(0.0, 1.0, steps)
        channels = np.stack([np.interp(positions, stops, rgb[:, i]) for i in range(3)], axis=1)

    channels = np.clip(np.rint(channels), 0, 255).astype(np.uint8)
    return Palette(channels[:, 0], channels[:, 1], channels[:, 2])


def direct_palette(colors: Sequence[Color]) -> Palette:
    """Build a palette with exactly one color per input color.

    Examples
    --------
    >>> direct_palette(["#ff0000", "#00ff00"]).steps
    2
    """
    if not len(colors):
        raise ValueError("At least one color is required")
    rgb = np.array([parse_color(c) for c in colors], dtype=np.float64)
    channels = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    return Palette(channels[:, 0], channels[:, 1], channels[:, 2])


def palette_from_colormap(name: str, steps: int = 256) -> Palette:
    """Sample a matplotlib colormap into a palette.

    Parameters
    ----------
    name : str
        Name of a registered matplotlib colormap, for example "viridis".
    steps : int, optional
        Number of palette colors.

    Returns
    -------
    Palette
    """
    try:
        import matplotlib
    except ModuleNotFoundError as exc:
        dependencies.raise_module_not_found_error(
            name="palette_from_colormap function",
            package_name="matplotlib",
            module_not_found_error=exc,
            pycovmap_optional_package="vis",
        )

    cmap = matplotlib.colormaps[name]
    rgba = cmap(np.linspace(0.0, 1.0, steps))
    channels = np.clip(np.rint(rgba[:, :3] * 255.0), 0, 255).astype(np.uint8)
    return Palette(channels[:, 0], channels[:, 1], channels[:, 2])


def _check_extent(extent: Sequence[float]) -> tuple[float, float]:
    lo, hi = extent
    if lo == hi:
        msg = f"Cannot scale values onto a palette with a degenerate extent {tuple(extent)}"
        raise ValueError(msg)
    return lo, hi


def scale(value: float, palette: Palette, extent: Sequence[float]) -> int:
    """Map ``value`` onto a palette index.

    Uses the byte-scale formula
    ``floor((steps - 1 + 0.9999) * (value - lo) / (hi - lo))``. The bias
    keeps ``hi`` from rounding past the last index. Results are clamped to
    ``[0, steps - 1]`` for values outside the extent.

    Parameters
    ----------
    value : float
        Value to scale.
    palette : Palette
        Target palette.
    extent : Sequence[float]
        Value extent ``(lo, hi)`` mapped onto the palette.

    Returns
    -------
    int
        Palette index.

    Raises
    ------
    ValueError
        If ``lo == hi``. Callers must handle constant extents themselves.

    Examples
    --------
    >>> palette = linear_palette(["#000000", "#ffffff"])
    >>> scale(0.0, palette, (0.0, 10.0)), scale(10.0, palette, (0.0, 10.0))
    (0, 255)
    >>> scale(5.0, palette, (0.0, 10.0))
    127
    """
    lo, hi = _check_extent(extent)
    idx = math.floor((palette.steps - 1 + BYTSCL_BIAS) * (value - lo) / (hi - lo))
    return min(max(idx, 0), palette.steps - 1)


def scale_array(
    values: npt.NDArray[np.floating], palette: Palette, extent: Sequence[float]
) -> npt.NDArray[np.intp]:
    """Vectorized :func:`scale`.

    No-data (``nan``) values are mapped to ``-1``.
    """
    lo, hi = _check_extent(extent)
    values = np.asarray(values, dtype=np.float64)
    valid = ~np.isnan(values)

    out = np.full(values.shape, -1, dtype=np.intp)
    scaled = np.floor((palette.steps - 1 + BYTSCL_BIAS) * (values[valid] - lo) / (hi - lo))
    out[valid] = np.clip(scaled, 0, palette.steps - 1).astype(np.intp)
    return out


class PaletteManager:
    """Registry of named palettes.

    Examples
    --------
    >>> manager = PaletteManager()
    >>> manager.add_linear("ramp", ["#000000", "#ff0000"], steps=10)
    Palette(steps=10)
    >>> manager["ramp"].steps
    10
    """

    __slots__ = ("_palettes",)

    def __init__(self) -> None:
        self._palettes: dict[str, Palette] = {}

    def __getitem__(self, name: str) -> Palette:
        try:
            return self._palettes[name]
        except KeyError:
            msg = f"Unknown palette '{name}'. Available palettes: {', '.join(self._palettes)}"
            raise KeyError(msg) from None

    def __contains__(self, name: object) -> bool:
        return name in self._palettes

    def __iter__(self) -> Iterator[str]:
        return iter(self._palettes)

    def __len__(self) -> int:
        return len(self._palettes)

    def get(self, name: str, default: Any = None) -> Palette | Any:
        """Return palette ``name`` or ``default``."""
        return self._palettes.get(name, default)

    def add(self, name: str, palette: Palette) -> Palette:
        """Register ``palette`` under ``name``, replacing any existing palette."""
        logger.debug("Registering palette '%s' with %s steps", name, palette.steps)
        self._palettes[name] = palette
        return palette

    def add_linear(self, name: str, colors: Sequence[Color], steps: int = 256) -> Palette:
        """Register a :func:`linear_palette`."""
        return self.add(name, linear_palette(colors, steps))

    def add_direct(self, name: str, colors: Sequence[Color]) -> Palette:
        """Register a :func:`direct_palette`."""
        return self.add(name, direct_palette(colors))


#: Default palette registry
palettes = PaletteManager()
palettes.add_linear("grayscale", ["#000000", "#ffffff"])
palettes.add_linear("rainbow", ["#0000ff", "#00ffff", "#00ff00", "#ffff00", "#ff0000"])
palettes.add_linear("blues", ["#deebf7", "#3182bd"])
