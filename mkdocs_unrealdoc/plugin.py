"""
MkDocs plugin for Unreal C++ API documentation and books.

Runs the parse/resolve pipeline once per build in ``on_config``, registers
every generated page as a virtual file, and serves their Markdown from
``on_page_markdown``. Cross-references between generated pages point at
the ``.md`` sources, so MkDocs rewrites them like any hand-written link.
"""

from __future__ import annotations

import functools
import logging
import os

from mkdocs.config import config_options
from mkdocs.config.base import Config as MkDocsConfig
from mkdocs.plugins import BasePlugin
from mkdocs.structure.files import File

from .config import Settings, load_config
from .pipeline import run
from .renderer import RenderConfig, build_nav, render_pages, symbol_url

log = logging.getLogger("mkdocs.plugins.unrealdoc")


class UnrealDocConfig(MkDocsConfig):
    config_file = config_options.Type(str, default="")
    input_dirs = config_options.Type(list, default=[])
    output_dir = config_options.Type(str, default="api")
    nav_title = config_options.Type(str, default="Unreal API")
    show_all = config_options.Type(bool, default=False)
    document_protected = config_options.Type(bool, default=False)
    document_private = config_options.Type(bool, default=False)
    show_source = config_options.Type(bool, default=True)
    jobs = config_options.Type(int, default=1)


class UnrealDocPlugin(BasePlugin[UnrealDocConfig]):

    def __init__(self):
        super().__init__()
        self._pages = {}
        self._nav = []
        self._tmpfiles = []
        self.document = None

    def _inputs(self, config_dir):
        """Input directories and settings, from ``config_file`` or plugin options."""
        config_file = self.config["config_file"]
        if config_file:
            if not os.path.isabs(config_file):
                config_file = os.path.join(config_dir, config_file)
            project = load_config(config_file, output=config_dir)
            return [str(p) for p in project.input_dirs], project.settings
        dirs = [d if os.path.isabs(d) else os.path.normpath(os.path.join(config_dir, d))
                for d in self.config["input_dirs"]]
        settings = Settings(
            show_all=self.config["show_all"],
            document_protected=self.config["document_protected"],
            document_private=self.config["document_private"],
        )
        return dirs, settings

    def _inject_nav(self, config):
        top_title = self.config["nav_title"]
        section = {top_title: self._nav}
        nav = config.get("nav")
        if nav is None:
            config["nav"] = [section]
            return
        for i, item in enumerate(nav):
            if isinstance(item, dict) and top_title in item:
                nav[i] = section
                return
        nav.append(section)

    # ── MkDocs lifecycle hooks ──

    def on_config(self, config, **kwargs):
        config_dir = os.path.dirname(config.get("config_file_path", "") or "") or os.getcwd()
        self._pages.clear()
        self._tmpfiles.clear()

        dirs, settings = self._inputs(config_dir)
        if not dirs:
            log.warning("unrealdoc: no input_dirs configured, nothing to document")
            return config

        prefix = self.config["output_dir"].strip("/")
        self.document = run(
            dirs,
            settings=settings,
            jobs=self.config["jobs"],
            linker=functools.partial(symbol_url, prefix=prefix),
        )
        cfg = RenderConfig(
            prefix=prefix,
            title=self.config["nav_title"],
            show_source=self.config["show_source"],
        )
        self._pages = render_pages(self.document, cfg)
        self._nav = build_nav(self.document, cfg)

        # generated pages link each other by .md source path; anything
        # MkDocs cannot map (e.g. anchors on filtered symbols) stays quiet
        try:
            config["validation"]["links"]["unrecognized_links"] = 0
        except (KeyError, TypeError):
            pass

        self._inject_nav(config)
        log.info("unrealdoc: %d pages generated under %s/", len(self._pages), prefix)
        return config

    def on_files(self, files, *, config, **kwargs):
        for uri in sorted(self._pages):
            try:
                f = File.generated(config, uri, content="")
            except (AttributeError, TypeError):
                f = File(
                    uri,
                    config["docs_dir"],
                    config["site_dir"],
                    config.get("use_directory_urls", True),
                )
                dest = os.path.join(config["docs_dir"], uri)
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                open(dest, "w").close()
                self._tmpfiles.append(dest)
            f.edit_uri = None
            files.append(f)
        return files

    def on_page_markdown(self, markdown, *, page, config, files, **kwargs):
        src_uri = getattr(page.file, "src_uri", None) or page.file.src_path
        return self._pages.get(src_uri, markdown)

    def on_post_build(self, *, config, **kwargs):
        docs_dir = config["docs_dir"]
        for p in self._tmpfiles:
            try:
                os.remove(p)
            except OSError:
                pass
            d = os.path.dirname(p)
            while d != docs_dir:
                try:
                    os.rmdir(d)
                except OSError:
                    break
                d = os.path.dirname(d)
