"""Trial discovery for trial_* files, functions and classes."""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from collections.abc import Iterable
from pathlib import Path
from types import ModuleType
from typing import Any

from trialkit.declarations import get_declaration
from trialkit.errors import ConfigurationError
from trialkit.registry import Registry, contains_trials, is_trial_member


logger = logging.getLogger(__name__)

FILE_PATTERN = "trial_*.py"
CLASS_PREFIX = "Trial"


def _module_name(path: Path, root: Path) -> str:
    try:
        relative = path.relative_to(root)
    except ValueError:
        relative = Path(path.name)
    return ".".join(relative.with_suffix("").parts)


def _load_module(path: Path, name: str) -> ModuleType:
    """Dynamically load a Python module from path."""
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        msg = f"Cannot load module from {path}"
        raise ConfigurationError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        del sys.modules[name]
        msg = f"Failed to import {path}: {type(e).__name__}: {e}"
        raise ConfigurationError(msg) from e
    return module


def _is_suite_class(name: str, obj: type) -> bool:
    declaration = get_declaration(obj)
    if declaration is not None:
        return declaration.kind == "suite"
    return name.startswith(CLASS_PREFIX) and contains_trials(obj)


def _members(module: ModuleType) -> list[Any]:
    """Trials and suites defined in ``module``, in definition order."""
    found = []
    for name, obj in vars(module).items():
        if getattr(obj, "__module__", None) != module.__name__:
            continue
        if inspect.isclass(obj):
            if _is_suite_class(name, obj):
                found.append(obj)
        elif inspect.isfunction(obj) and is_trial_member(name, obj):
            found.append(obj)
    return found


def _display_path(path: Path) -> str:
    try:
        return path.relative_to(Path.cwd()).as_posix()
    except ValueError:
        return path.as_posix()


def _iter_files(path: Path) -> list[Path]:
    if path.is_file():
        if path.suffix != ".py":
            msg = f"Not a Python file: {path}"
            raise ConfigurationError(msg)
        return [path]
    if path.is_dir():
        return sorted(p for p in path.rglob(FILE_PATTERN) if "__pycache__" not in p.parts)
    msg = f"Path does not exist: {path}"
    raise ConfigurationError(msg)


def collect(
    paths: Iterable[Path | str] | Path | str | None = None,
    registry: Registry | None = None,
) -> Registry:
    """Discover all trial_* trials from paths into a registry.

    Each module becomes a suite named after its file; the module's trials
    and suites are registered under it in definition order.

    Args:
        paths: Files or directories to search. Defaults to current directory.
        registry: Registry to add to. A new one is created when omitted.

    Returns:
        The registry holding the discovered units.

    Example:
        registry = collect()  # Current directory
        registry = collect("trial_checkout.py")  # Specific file
        registry = collect(["./trials/", "trial_extra.py"])
    """
    if paths is None:
        paths = [Path.cwd()]
    elif isinstance(paths, (str, Path)):
        paths = [paths]
    registry = registry if registry is not None else Registry()

    seen: set[Path] = set()
    for entry in paths:
        root = Path(entry).resolve()
        base = root.parent if root.is_file() else root
        for file_path in _iter_files(root):
            if file_path in seen:
                continue
            seen.add(file_path)
            module = _load_module(file_path, _module_name(file_path, base))
            members = _members(module)
            if not members:
                logger.debug("No trials found in %s", file_path)
                continue
            label = _display_path(file_path)
            group = registry.group(file_path.name, identifier=label, display_name=label)
            for member in members:
                registry.add(member, parent=group)
            logger.debug("Collected %d top-level units from %s", len(members), label)
    return registry
