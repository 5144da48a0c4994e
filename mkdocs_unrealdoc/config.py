"""
Project configuration.

``Settings`` controls which symbols are navigable. ``ProjectConfig`` is the
command line's ``UnrealDoc.toml``::

    input_dirs = ["Source/MyPlugin/Public", "Documentation"]
    output_dir = "Build/Docs"
    backend = "mkdocs"            # or "json" (default)
    dependencies = ["../Core/UnrealDoc.toml"]

    [settings]
    show_all = false
    document_protected = true
    document_private = false

    [backend_mkdocs]
    title = "My Plugin"
    build = true
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from mkdocs.config import config_options
from mkdocs.config.base import Config
from mkdocs.exceptions import ConfigurationError

from .errors import ConfigError

log = logging.getLogger("mkdocs.plugins.unrealdoc")

SITE_URL_ENV = "UNREAL_DOC_MKDOCS_SITE_URL"
BACKENDS = ("json", "mkdocs")


# -- UnrealDoc.toml schema --


class _SettingsSchema(Config):
    show_all = config_options.Type(bool, default=False)
    document_protected = config_options.Type(bool, default=False)
    document_private = config_options.Type(bool, default=False)


class _MkDocsSchema(Config):
    title = config_options.Type(str, default="Documentation")
    authors = config_options.ListOfItems(config_options.Type(str), default=[])
    language = config_options.Type(str, default="en")
    build = config_options.Type(bool, default=False)
    cleanup = config_options.Type(bool, default=False)
    header = config_options.Optional(config_options.Type(str))
    footer = config_options.Optional(config_options.Type(str))
    assets = config_options.Optional(config_options.Type(str))
    site_url = config_options.Optional(config_options.Type(str))


class _ProjectSchema(Config):
    input_dirs = config_options.ListOfItems(config_options.Type(str))
    output_dir = config_options.Optional(config_options.Type(str))
    backend = config_options.Choice(BACKENDS, default="json")
    dependencies = config_options.ListOfItems(config_options.Type(str), default=[])
    settings = config_options.SubConfig(_SettingsSchema)
    backend_mkdocs = config_options.SubConfig(_MkDocsSchema)


@dataclass(frozen=True)
class Settings:
    show_all: bool = False
    document_protected: bool = False
    document_private: bool = False


@dataclass
class MkDocsBackend:
    title: str = "Documentation"
    authors: list[str] = field(default_factory=list)
    language: str = "en"
    build: bool = False
    cleanup: bool = False
    header: Path | None = None
    footer: Path | None = None
    assets: Path | None = None
    site_url: str | None = None


@dataclass
class ProjectConfig:
    path: Path
    input_dirs: list[Path]
    output_dir: Path
    backend: str = "json"
    settings: Settings = field(default_factory=Settings)
    dependencies: list[Path] = field(default_factory=list)
    backend_mkdocs: MkDocsBackend = field(default_factory=MkDocsBackend)

    @property
    def root(self):
        return self.path.parent


def _optional_path(value, base):
    return base / value if value else None


def _validate(path, data):
    schema = _ProjectSchema(config_file_path=str(path))
    try:
        schema.load_dict(data)
        failed, warnings = schema.validate()
    except ConfigurationError as exc:
        raise ConfigError(path, str(exc)) from exc
    for key, message in warnings:
        log.warning("unrealdoc: %s: '%s': %s", path, key, message)
    if failed:
        key, exc = failed[0]
        raise ConfigError(path, f"'{key}': {exc}")
    return schema


def load_config(path, output=None, _chain=()):
    """Load an ``UnrealDoc.toml``, following its dependencies.

    Relative paths resolve against the file's directory. *output* replaces
    ``output_dir`` (relative to the working directory, like any command line
    path). Dependencies contribute their ``input_dirs`` only.
    """
    path = Path(path).resolve()
    if path in _chain:
        raise ConfigError(path, "dependency cycle")
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8-sig"))
    except OSError as exc:
        raise ConfigError(path, f"cannot read: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(path, f"invalid TOML: {exc}") from exc

    schema = _validate(path, data)
    if schema["output_dir"] is None and output is None:
        raise ConfigError(path, "'output_dir': Required configuration not provided.")

    base = path.parent
    table = schema["settings"]
    settings = Settings(
        show_all=table["show_all"],
        document_protected=table["document_protected"],
        document_private=table["document_private"],
    )

    table = schema["backend_mkdocs"]
    mkdocs = MkDocsBackend(
        title=table["title"],
        authors=list(table["authors"]),
        language=table["language"],
        build=table["build"],
        cleanup=table["cleanup"],
        header=_optional_path(table["header"], base),
        footer=_optional_path(table["footer"], base),
        assets=_optional_path(table["assets"], base),
        site_url=os.environ.get(SITE_URL_ENV) or table["site_url"],
    )

    config = ProjectConfig(
        path=path,
        input_dirs=[base / d for d in schema["input_dirs"]],
        output_dir=Path(output).resolve() if output is not None else base / schema["output_dir"],
        backend=schema["backend"],
        settings=settings,
        dependencies=[base / d for d in schema["dependencies"]],
        backend_mkdocs=mkdocs,
    )
    for dependency in config.dependencies:
        # dependencies need no output of their own
        dep = load_config(dependency, output=config.output_dir, _chain=(*_chain, path))
        config.input_dirs.extend(dep.input_dirs)
    return config
