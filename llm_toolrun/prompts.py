"""System prompt loading and Jinja2 rendering.

Bundled prompts live in ``templates/`` next to this module. A profile may
override them with its own instructions, given either inline or as a path
to a .j2/.jinja2/.txt/.md file relative to the config directory.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from .exceptions import ConfigError

TEMPLATES_DIR = Path(__file__).parent / "templates"

_TEMPLATE_SUFFIXES = (".jinja2", ".j2")
_TEXT_SUFFIXES = (".txt", ".md")


def _environment(root: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(root),
        autoescape=False,  # Don't escape - we want raw text
        keep_trailing_newline=False,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )


def render_template(template_str: str, root: Path = TEMPLATES_DIR, **params: Any) -> str:
    """Render a Jinja2 template string; includes resolve against ``root``."""
    try:
        return _environment(root).from_string(template_str).render(**params).strip()
    except TemplateError as exc:
        raise ConfigError(f"Template error: {exc}") from exc


def render_bundled(name: str, **params: Any) -> str:
    """Render one of the bundled templates (``templates/{name}.j2``)."""
    path = TEMPLATES_DIR / f"{name}.j2"
    if not path.exists():
        raise ConfigError(f"No bundled prompt named '{name}'")
    return render_template(path.read_text(encoding="utf-8"), **params)


def resolve_instructions(
    raw: Optional[str],
    *,
    default_template: str,
    base_dir: Optional[Path] = None,
    **params: Any,
) -> str:
    """Return the final system prompt.

    Rules:
      - raw is None: render the bundled ``default_template``.
      - raw names an existing prompt file: load it, rendering Jinja2 files.
      - otherwise raw is the prompt text itself, rendered as a template.
    """
    if raw is None:
        return render_bundled(default_template, **params)

    candidate = Path(raw).expanduser()
    if candidate.suffix in _TEMPLATE_SUFFIXES + _TEXT_SUFFIXES:
        if not candidate.is_absolute() and base_dir is not None:
            candidate = base_dir / candidate
        if not candidate.is_file():
            raise ConfigError(f"Prompt file not found: {candidate}")
        content = candidate.read_text(encoding="utf-8")
        if candidate.suffix in _TEXT_SUFFIXES:
            return content.strip()
        return render_template(content, candidate.parent, **params)

    return render_template(raw, **params)
