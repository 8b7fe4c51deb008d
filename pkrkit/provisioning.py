"""
Renders the NGINX provisioning assets from the packaged Jinja2 templates:
the shell provisioner script and the equivalent Chef cookbook.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Sequence

import jinja2

from .constants import ALL_PROVIDERS

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

PLATFORM_LABELS = {
    'aws': ('AWS', 'AWS EC2 AMI'),
    'gcp': ('GCP', 'Google Compute Engine image'),
    'azure': ('Azure', 'Azure managed image'),
}

SCRIPT_PATH = os.path.join("scripts", "install_nginx.sh")
COOKBOOK_DIR = os.path.join("cookbooks", "nginx")


def get_environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=jinja2.select_autoescape(["html.j2"]),
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
    )


def build_context(platforms: Sequence[str] = ALL_PROVIDERS, provisioner: str = "Packer + Shell Scripts") -> Dict[str, Any]:
    return {
        'title': "Multi-Cloud NGINX Server",
        'os_name': "Ubuntu 22.04 LTS",
        'provisioner': provisioner,
        'platforms': [
            {'name': p, 'short': PLATFORM_LABELS[p][0], 'label': PLATFORM_LABELS[p][1]}
            for p in platforms
        ],
        'web_root': "/var/www/html",
        'server_name': "_",
        'health_path': "/health",
        'cookbook_name': "nginx",
        'cookbook_version': "0.1.0",
        'maintainer': "DevOps Team",
        'maintainer_email': "devops@example.com",
    }


def render(template_name: str, context: Dict[str, Any]) -> str:
    return get_environment().get_template(template_name).render(**context)


def render_install_script(platforms: Sequence[str] = ALL_PROVIDERS) -> str:
    return render("install_nginx.sh.j2", build_context(platforms))


def render_cookbook(platforms: Sequence[str] = ALL_PROVIDERS) -> Dict[str, str]:
    """Cookbook files keyed by path relative to the cookbook directory."""
    context = build_context(platforms, provisioner="Packer + Chef")
    return {
        "metadata.rb": render("cookbook/metadata.rb.j2", context),
        os.path.join("recipes", "default.rb"): render("cookbook/default.rb.j2", context),
        os.path.join("templates", "index.html.erb"): render("index.html.j2", context),
        os.path.join("templates", "default.erb"): render("nginx_default.conf.j2", context),
    }


def write_provisioning(output_dir: str = ".", platforms: Sequence[str] = ALL_PROVIDERS) -> List[str]:
    """Write the install script and the cookbook under output_dir. Returns the written paths."""
    written = []

    script_path = os.path.join(output_dir, SCRIPT_PATH)
    os.makedirs(os.path.dirname(script_path), exist_ok=True)
    Path(script_path).write_text(render_install_script(platforms))
    os.chmod(script_path, 0o755)
    written.append(script_path)

    for relative, content in render_cookbook(platforms).items():
        path = os.path.join(output_dir, COOKBOOK_DIR, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        Path(path).write_text(content)
        written.append(path)

    for path in written:
        logger.info(f"Wrote {path}")
    return written
