"""
foliotree.commands.sitemap_cmd - Generate the public sitemap.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path


def run(args: argparse.Namespace) -> int:
    """Run the sitemap command.

    Writes XML or JSON to stdout, or to ``--output`` when given.
    """
    from foliotree.config import get_config
    from foliotree.graph.factory import build_service

    config_path = getattr(args, "config", None)
    config = get_config(config_path)
    service = build_service(config, config_path=config_path)
    site_url = getattr(args, "site_url", None) or config.get("site", {}).get("url", "")

    report = asyncio.run(
        service.build_sitemap(
            site_url, include_unpublished=getattr(args, "include_unpublished", False)
        )
    )

    if getattr(args, "format", "xml") == "json":
        content = json.dumps(report.to_dict(), indent=2) + "\n"
    else:
        content = report.to_xml()

    output = getattr(args, "output", None)
    if output:
        Path(output).write_text(content, encoding="utf-8")
        if not getattr(args, "quiet", False):
            print(f"Wrote {report.counts['total']} URLs to {output}", file=sys.stderr)
    else:
        sys.stdout.write(content)
    return 0
