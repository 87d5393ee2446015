"""Helpful ``ImportError`` messages for optional dependencies."""

from __future__ import annotations

import importlib
from types import ModuleType
from typing import NoReturn


def _quote_name(name: str) -> str:
    """Quote the function, method or module name in ``name``.

    For example, ``"read function"`` becomes ``"'read' function"``.
    """
    head, _, tail = name.partition(" ")
    if "'" not in head:
        head = f"'{head}'"
    return f"{head} {tail}" if tail else head


def raise_module_not_found_error(
    name: str,
    package_name: str,
    module_not_found_error: ImportError,
    pycovmap_optional_package: str | None = None,
    extra: str | None = None,
) -> NoReturn:
    """Raise ``ImportError`` naming the missing package and how to install it.

    Parameters
    ----------
    name : str
        Context of the import, for example "read function", "TileMap class"
        or "covjson module".
    package_name : str
        Name of the package on the index, which may differ from the module
        name (e.g. "matplotlib" for ``matplotlib.colors``).
    module_not_found_error : ImportError
        The original error. Its subclass is preserved and it is chained with ``from``.
    pycovmap_optional_package : str, optional
        Extra of ``pycovmap`` that installs ``package_name``. See ``setup.py``.
    extra : str, optional
        Text appended to the message.
    """
    msg = (
        f"The {_quote_name(name)} requires the '{package_name}' package. "
        f"This can be installed with 'pip install {package_name}'"
    )
    if pycovmap_optional_package:
        msg = f"{msg} or 'pip install pycovmap[{pycovmap_optional_package}]'."
    else:
        msg = f"{msg}."
    if extra:
        msg = f"{msg} {extra}"

    raise type(module_not_found_error)(msg) from module_not_found_error


def import_optional(
    module_name: str,
    name: str,
    package_name: str | None = None,
    pycovmap_optional_package: str | None = None,
    extra: str | None = None,
) -> ModuleType:
    """Import an optional module, raising a helpful error if it is missing.

    Parameters
    ----------
    module_name : str
        Dotted module name, for example "pyproj".
    name : str
        Context of the import, passed to :func:`raise_module_not_found_error`.
    package_name : str, optional
        Package providing the module. Defaults to the top-level module name.
    pycovmap_optional_package : str, optional
        Extra of ``pycovmap`` that installs the package.
    extra : str, optional
        Text appended to the error message.

    Returns
    -------
    ModuleType
        The imported module.
    """
    try:
        return importlib.import_module(module_name)
    except ModuleNotFoundError as exc:
        raise_module_not_found_error(
            name=name,
            package_name=package_name or module_name.partition(".")[0],
            module_not_found_error=exc,
            pycovmap_optional_package=pycovmap_optional_package,
            extra=extra,
        )
