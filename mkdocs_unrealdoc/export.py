"""
Output backends for the command line: JSON and an MkDocs project.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess

import yaml

from .errors import UnrealDocError
from .renderer import RenderConfig, build_nav, render_pages

log = logging.getLogger("mkdocs.plugins.unrealdoc")

JSON_FILE = "documentation.json"


# ── JSON ──


def _doc(doc):
    return str(doc) if doc is not None else None


def symbol_to_dict(symbol):
    return {
        "kind": symbol.kind.name.lower(),
        "name": symbol.name,
        "path": symbol.path,
        "access": symbol.access.name.lower(),
        "macro": symbol.macro_tag.name if symbol.reflected else None,
        "specifiers": [[k, v] for k, v in symbol.meta],
        "template_params": list(symbol.template_params),
        "signature": symbol.signature,
        "doc": _doc(symbol.doc),
        "return_type": symbol.return_type,
        "value_type": symbol.value_type,
        "default": symbol.default_value,
        "bases": list(symbol.bases),
        "api": symbol.api,
        "static": symbol.is_static,
        "virtual": symbol.is_virtual,
        "const": symbol.is_const,
        "override": symbol.is_override,
        "parameters": [
            {"name": p.name, "type": p.type, "default": p.default, "doc": _doc(p.doc)}
            for p in symbol.parameters
        ],
        "excerpt": symbol.excerpt,
        "filename": symbol.filename,
        "line": symbol.line,
        "children": [symbol_to_dict(c) for c in symbol.children],
    }


def _page_to_dict(page):
    return {
        "title": page.title,
        "path": page.path,
        "kind": page.source_kind.name.lower(),
        "content": page.rendered if page.rendered is not None else page.content,
        "children": [_page_to_dict(c) for c in page.children],
    }


def document_to_dict(document, navigable=True, all_snippets=False):
    symbols = document.navigable() if navigable else document.symbols
    snippets = document.all_snippets() if all_snippets else document.active_snippets()
    book = document.book
    return {
        "symbols": [symbol_to_dict(s) for s in symbols],
        "snippets": {s.name: s.body for s in snippets},
        "book": {
            "content": book.root_rendered if book.root_rendered is not None else book.root_content,
            "pages": [_page_to_dict(p) for p in book.pages],
        },
        "diagnostics": [
            {"code": d.code, "message": d.message, "filename": d.filename, "line": d.line}
            for d in document.diagnostics
        ],
    }


def bake_json(document, output_dir, **kwargs):
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, JSON_FILE)
    content = json.dumps(document_to_dict(document, **kwargs), indent=2, sort_keys=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content + "\n")
    log.info("unrealdoc: wrote %s", path)
    return path


# ── MkDocs project ──


def _read_optional(path):
    if path is None:
        return ""
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            return f.read()
    except OSError as exc:
        raise UnrealDocError(f"cannot read {path}: {exc}") from exc


def mkdocs_manifest(document, backend):
    manifest = {
        "site_name": backend.title,
        "docs_dir": "docs",
        "theme": {"name": "mkdocs", "locale": backend.language},
        "markdown_extensions": ["toc", "tables", "fenced_code", "attr_list"],
        "nav": build_nav(document),
    }
    if backend.authors:
        manifest["site_author"] = ", ".join(backend.authors)
    if backend.site_url:
        manifest["site_url"] = backend.site_url
    return manifest


def bake_mkdocs(document, config):
    """Write an MkDocs project (``mkdocs.yml`` + ``docs/``) into the output directory."""
    backend = config.backend_mkdocs
    out = str(config.output_dir)
    if backend.cleanup and os.path.isdir(out):
        shutil.rmtree(out)
    docs_dir = os.path.join(out, "docs")

    cfg = RenderConfig(
        title=backend.title,
        header=_read_optional(backend.header),
        footer=_read_optional(backend.footer),
    )
    for uri, content in render_pages(document, cfg).items():
        dest = os.path.join(docs_dir, *uri.split("/"))
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        with open(dest, "w", encoding="utf-8") as f:
            f.write(content)

    if backend.assets is not None:
        if not os.path.isdir(backend.assets):
            raise UnrealDocError(f"assets directory not found: {backend.assets}")
        shutil.copytree(backend.assets, os.path.join(docs_dir, "assets"), dirs_exist_ok=True)

    manifest = os.path.join(out, "mkdocs.yml")
    with open(manifest, "w", encoding="utf-8") as f:
        yaml.safe_dump(mkdocs_manifest(document, backend), f, default_flow_style=False, sort_keys=False)
    log.info("unrealdoc: wrote MkDocs project to %s", out)

    if backend.build:
        log.info("unrealdoc: running mkdocs build")
        try:
            subprocess.run(["mkdocs", "build", "-f", manifest], cwd=out, check=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise UnrealDocError(f"mkdocs build failed: {exc}") from exc
    return manifest
