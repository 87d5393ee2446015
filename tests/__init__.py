"""Pycovmap tests."""

try:
    import pyproj  # noqa: F401
except ModuleNotFoundError:
    PYPROJ_AVAILABLE = False
else:
    PYPROJ_AVAILABLE = True

try:
    import matplotlib  # noqa: F401
except ModuleNotFoundError:
    MATPLOTLIB_AVAILABLE = False
else:
    MATPLOTLIB_AVAILABLE = True

try:
    import aiohttp  # noqa: F401
except ModuleNotFoundError:
    AIOHTTP_AVAILABLE = False
else:
    AIOHTTP_AVAILABLE = True
