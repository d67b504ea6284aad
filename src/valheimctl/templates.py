"""Jinja2 template engine for the cloud-init bootstrap payload.

Built-in templates ship inside the package under ``data/templates/``. An operator
may shadow any of them by placing a file with the same relative name in the
configured ``paths.templates_dir``.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
)

from .config import AppConfig

CLOUD_INIT_TEMPLATE = "cloud-init/user-data.yaml.j2"
SETUP_COMPLETE_MARKER = "/var/log/valheim-setup-complete"


class TemplateRenderError(RuntimeError):
    """Raised when a template cannot be rendered."""


@dataclass(slots=True)
class TemplateEngine:
    """Render templates with strict undefined-variable handling."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers templates found in *override_dir*."""
        loaders: list[BaseLoader] = []
        if override_dir is not None:
            loaders.append(FileSystemLoader(str(override_dir.expanduser())))
        loaders.append(PackageLoader("valheimctl", "data/templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,  # noqa: S701 - renders YAML/shell, not HTML
        )
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context*."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**dict(context))
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render {template_name}: {exc}") from exc


def bootstrap_context(config: AppConfig) -> dict[str, object]:
    """Return the template context for the cloud-init user data."""
    server = config.server
    return {
        "server_name": server.name,
        "world_name": server.world,
        "server_password": server.password,
        "admin_ids": ",".join(server.admin_ids),
        "port": server.port,
        "container_name": server.container_name,
        "image": server.image,
        "volume_device": config.volume.device,
        "mount_point": config.volume.mount_point,
        "setup_marker": SETUP_COMPLETE_MARKER,
    }


def render_bootstrap(engine: TemplateEngine, config: AppConfig) -> str:
    """Render the cloud-init user data for *config*."""
    return engine.render_to_string(CLOUD_INIT_TEMPLATE, bootstrap_context(config))


__all__ = [
    "CLOUD_INIT_TEMPLATE",
    "SETUP_COMPLETE_MARKER",
    "TemplateEngine",
    "TemplateRenderError",
    "bootstrap_context",
    "render_bootstrap",
]
