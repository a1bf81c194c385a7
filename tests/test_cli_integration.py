"""CLI tests.

Most tests call ``main()`` in-process; one runs ``python -m foliotree``
as a subprocess to check the module entry point.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from foliotree import __version__
from foliotree.cli import create_parser, main
from tests.core.tree_test_helpers import PORTFOLIO_ROWS

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


@pytest.fixture
def config_file(tmp_path, clean_env):
    """A config file whose memory store is seeded with the portfolio tree."""
    (tmp_path / "nodes.json").write_text(json.dumps(PORTFOLIO_ROWS))
    path = tmp_path / ".foliotree.toml"
    path.write_text(
        '[store]\nbackend = "memory"\nseed_file = "nodes.json"\n\n'
        '[site]\nurl = "https://me.dev"\n'
    )
    return path


class TestParser:
    def test_subcommands(self):
        parser = create_parser()
        args = parser.parse_args(["tree", "--max-depth", "2", "--root", "work"])
        assert args.command == "tree"
        assert args.max_depth == 2
        assert args.root == "work"

    def test_global_options(self):
        args = create_parser().parse_args(["--config", "x.toml", "-v", "doctor", "--json"])
        assert args.config == Path("x.toml")
        assert args.verbose is True
        assert args.json is True

    def test_sitemap_defaults(self):
        args = create_parser().parse_args(["sitemap"])
        assert args.format == "xml"
        assert args.output is None


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "foliotree" in capsys.readouterr().out

    def test_version(self, capsys):
        assert main(["version"]) == 0
        assert capsys.readouterr().out.strip() == f"foliotree {__version__}"

    def test_tree(self, config_file, capsys):
        assert main(["--config", str(config_file), "tree"]) == 0
        out = capsys.readouterr().out
        assert "Shop [project] /work/web/shop" in out
        assert "Draft Page" not in out

    def test_tree_include_unpublished(self, config_file, capsys):
        assert main(["--config", str(config_file), "tree", "--include-unpublished"]) == 0
        assert "Draft Page [section] /draft-page (draft)" in capsys.readouterr().out

    def test_tree_json(self, config_file, capsys):
        assert main(["--config", str(config_file), "tree", "--json", "--max-depth", "1"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["max_depth"] == 1
        assert [node["id"] for node in data["nodes"]] == ["work", "writing", "about"]

    def test_tree_unknown_root(self, config_file, capsys):
        assert main(["--config", str(config_file), "tree", "--root", "ghost"]) == 1
        assert "NOT_FOUND" in capsys.readouterr().err

    def test_sitemap_xml(self, config_file, capsys):
        assert main(["--config", str(config_file), "sitemap"]) == 0
        out = capsys.readouterr().out
        assert "<loc>https://me.dev</loc>" in out
        assert "<loc>https://me.dev/work/process</loc>" in out

    def test_sitemap_to_file(self, config_file, tmp_path, capsys):
        target = tmp_path / "sitemap.json"
        code = main(
            [
                "--config",
                str(config_file),
                "sitemap",
                "--format",
                "json",
                "--site-url",
                "https://other.dev",
                "-o",
                str(target),
            ]
        )
        assert code == 0
        data = json.loads(target.read_text())
        assert data["site_url"] == "https://other.dev"
        assert "Wrote 5 URLs" in capsys.readouterr().err

    def test_doctor(self, config_file, capsys):
        assert main(["--config", str(config_file), "doctor"]) == 0
        assert "HEALTHY" in capsys.readouterr().out

    def test_missing_config_reports_error(self, tmp_path, clean_env, capsys):
        assert main(["--config", str(tmp_path / "nope.toml"), "tree"]) == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_verbose_reraises(self, tmp_path, clean_env):
        with pytest.raises(FileNotFoundError):
            main(["--config", str(tmp_path / "nope.toml"), "-v", "tree"])


class TestModuleEntryPoint:
    def test_python_dash_m(self, clean_env):
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
        result = subprocess.run(
            [sys.executable, "-m", "foliotree", "--help"],
            capture_output=True,
            text=True,
            env=env,
            timeout=60,
        )
        assert result.returncode == 0
        assert "doctor" in result.stdout
