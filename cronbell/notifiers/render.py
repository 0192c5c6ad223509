"""HTML rendering of match digests with Jinja2."""
from __future__ import annotations

from datetime import datetime, tzinfo
from pathlib import Path
from typing import Iterable, Optional

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    TemplateError,
    select_autoescape,
)

from cronbell.collectors.match_client import Match

DIGEST_TEMPLATE = "matches.html"


class RenderError(RuntimeError):
    """Raised when a template is missing or fails to render."""


class DigestRenderer:
    """Render match listings into an HTML page.

    Templates in ``template_dir`` take precedence over the ones shipped in
    ``cronbell/templates``.
    """

    def __init__(self, template_dir: Optional[Path] = None, tz: Optional[tzinfo] = None) -> None:
        loaders = []
        if template_dir is not None:
            loaders.append(FileSystemLoader(str(template_dir)))
        loaders.append(PackageLoader("cronbell", "templates"))
        self._env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self._tz = tz
        self._env.filters["datetime"] = self._format_timestamp

    def render(self, matches: Iterable[Match], template: str = DIGEST_TEMPLATE) -> str:
        try:
            return self._env.get_template(template).render(
                matches=[match.to_dict() for match in matches]
            )
        except TemplateError as exc:
            raise RenderError(f"failed to render {template}: {exc}") from exc

    def _format_timestamp(self, value: int, fmt: str = "%Y-%m-%d %H:%M") -> str:
        return datetime.fromtimestamp(int(value), tz=self._tz).strftime(fmt)


__all__ = ["DIGEST_TEMPLATE", "DigestRenderer", "RenderError"]
