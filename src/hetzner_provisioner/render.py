"""Derived artifacts: per-stage domain names and the reverse-proxy configuration.

Both functions are pure. The Caddyfile references the DNS provider tokens
through Caddy's ``{env.NAME}`` placeholders; the token values themselves are
handed to the proxy container as environment variables and never appear in
the rendered document.
"""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

PRODUCTION_STAGE = "production"
DEV_STAGE = "dev"

CATCH_ALL_BLOCK = """\
# Catch-all for any other requests
:80, :443 {
    respond "Not Found" 404
}
"""


def domain_for_stage(stage: str, base_domain: str) -> str:
    """``production`` -> ``<domain>``, ``dev`` -> ``dev.<domain>``, else ``<stage>.dev.<domain>``."""
    if stage == PRODUCTION_STAGE:
        return base_domain
    if stage == DEV_STAGE:
        return f"{DEV_STAGE}.{base_domain}"
    return f"{stage}.{DEV_STAGE}.{base_domain}"


def _site_block(domain: str, upstream: str, *, api_token_env: str, zone_token_env: str) -> str:
    return textwrap.dedent(
        f"""\
        https://{domain} {{
            reverse_proxy {upstream}

            tls {{
                dns cloudflare {{
                    zone_token {{env.{zone_token_env}}}
                    api_token {{env.{api_token_env}}}
                }}
            }}
        }}
        """
    )


def render_caddyfile(
    routes: Mapping[str, str],
    *,
    api_token_env: str = "CF_API_TOKEN",
    zone_token_env: str = "CF_ZONE_TOKEN",
) -> str:
    """Render a Caddyfile for *routes* (domain -> ``host:port`` upstream).

    The catch-all not-found block comes first and appears exactly once;
    routed sites follow in ascending domain order.
    """
    blocks = [CATCH_ALL_BLOCK]
    blocks.extend(
        _site_block(
            domain,
            routes[domain],
            api_token_env=api_token_env,
            zone_token_env=zone_token_env,
        )
        for domain in sorted(routes)
    )
    return "\n".join(blocks)


def render_proxy_config(
    stage: str,
    base_domain: str,
    upstream: str,
    *,
    api_token_env: str = "CF_API_TOKEN",
    zone_token_env: str = "CF_ZONE_TOKEN",
) -> str:
    """Render the Caddyfile routing the stage's domain to *upstream*."""
    return render_caddyfile(
        {domain_for_stage(stage, base_domain): upstream},
        api_token_env=api_token_env,
        zone_token_env=zone_token_env,
    )
