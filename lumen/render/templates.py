"""Jinja2 environments, one per theme root.

Template names are paths relative to the theme root
(``templates/post.html``, ``custom/about.html``), so themes can include
``partials/header.html`` or extend ``templates/base.html``.
"""

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from lumen.content.models import parse_timestamp
from lumen.content.slugs import slugify
from lumen.themes.registry import Theme

logger = logging.getLogger(__name__)


def format_date(value: str | None, fmt: str = "%B %d, %Y") -> str:
    if not value:
        return ""
    return parse_timestamp(value).strftime(fmt)


class TemplateEngine:
    def __init__(self):
        self._environments: dict[Path, Environment] = {}

    def environment(self, theme: Theme) -> Environment:
        env = self._environments.get(theme.root)
        if env is None:
            env = Environment(
                loader=FileSystemLoader(str(theme.root)),
                autoescape=select_autoescape(["html", "xml"]),
            )
            env.filters["date"] = format_date
            env.filters["slugify"] = slugify
            self._environments[theme.root] = env
        return env

    def render(self, theme: Theme, template: str, data: dict[str, Any]) -> str:
        return self.environment(theme).get_template(template).render(**data)

    def clear(self) -> None:
        """Drop cached environments (after theme install, update or switch)."""
        self._environments.clear()
