"""Output rendering for aggregated news sets."""

from __future__ import annotations

import json

from .models import RenderedNewsSet
from .templating import get_environment


def build_json(rendered: RenderedNewsSet) -> str:
    """Serialize the rendered news set as indented JSON."""
    return json.dumps(rendered.to_dict(), indent=2, ensure_ascii=False)


def build_text(rendered: RenderedNewsSet) -> str:
    """Render a plain-text digest using the Jinja2 template."""
    env = get_environment()
    template = env.get_template("news_set.txt.j2")
    return template.render(news_set=rendered.news_set, results=rendered.results)
