# revdeps/modules/cli.py
"""
revdeps CLI - find (and optionally rebuild) every usable package that has a
build-time dependency on a given package.

- Uses rich for colored output and tables.
- Build mode is dry-run by default (use --execute to really run the builds).

Usage examples:
  revdeps conduit --registry /usr/sources --just-print-all-deps
  revdeps conduit --just-print-all-deps --output -
  revdeps conduit --explain
  revdeps conduit --allow-broken --execute --jobs 8
"""

from __future__ import annotations
import argparse
import os
import sys
import traceback
from collections import Counter
from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text

from revdeps import __version__
from revdeps.modules import logger as _logger
from revdeps.modules.aggregate import ResultAggregator
from revdeps.modules.classifier import BrokennessClassifier, host_system
from revdeps.modules.config import RevdepsConfig, config as _default_config
from revdeps.modules.engine import BuildError, CommandBuildEngine
from revdeps.modules.registry import PackageRegistry, RegistryError
from revdeps.modules.reverse import ReverseDependencyFilter, Verdict

EXIT_OK = 0
EXIT_LOOKUP = 1
EXIT_BUILD = 2
EXIT_UNHANDLED = 3


def print_panel(console: Console, title: str, text: str, style: str = "green"):
    console.print(Panel(text, title=title, style=style))


def make_console(no_color: bool, quiet: bool) -> Console:
    if no_color:
        # markup stays on so style tags are stripped, not printed
        return Console(color_system=None, no_color=True, quiet=quiet, stderr=True)
    return Console(quiet=quiet, stderr=True)


class CLI:
    def __init__(self, console: Console, cfg: RevdepsConfig, log: _logger.Logger):
        self.console = console
        self.cfg = cfg
        self.log = log

    # -----------------------
    # settings (flags > config > defaults)
    # -----------------------
    def _registry_path(self, args) -> str:
        return args.registry or self.cfg.get("revdeps", "registry", fallback="recipes")

    def _system(self, args) -> str:
        return args.system or self.cfg.get("revdeps", "system", fallback=None) or host_system()

    def _jobs(self, args) -> int:
        if args.jobs:
            return args.jobs
        return self.cfg.getint("revdeps", "jobs", fallback=4) or 1

    def _allow_broken(self, args) -> bool:
        return args.allow_broken or self.cfg.getboolean("revdeps", "allow_broken", fallback=False)

    # -----------------------
    # output helpers
    # -----------------------
    def _print_explain(self, verdicts):
        table = Table(title="Verdicts")
        table.add_column("Package")
        table.add_column("Verdict")
        for name, verdict in verdicts.items():
            if verdict is Verdict.NO_DEPENDENCY:
                continue
            style = "green" if verdict is Verdict.INCLUDED else "yellow"
            table.add_row(name, Text(verdict.value, style=style))
        self.console.print(table)
        counts = Counter(v.value for v in verdicts.values())
        summary = ", ".join(f"{k}: {n}" for k, n in sorted(counts.items()))
        self.console.print(summary, markup=False)

    def _write_manifest(self, artifact, output: Optional[str]) -> Optional[str]:
        if output == "-":
            sys.stdout.write(artifact.content)
            sys.stdout.flush()
            return None
        if not output:
            output = self.cfg.get("revdeps", "output_dir", fallback=os.getcwd())
        return artifact.write(os.path.expanduser(output))

    # -----------------------
    # main command
    # -----------------------
    def run(self, args: argparse.Namespace) -> int:
        system = self._system(args)
        allow_broken = self._allow_broken(args)
        jobs = self._jobs(args)

        registry = PackageRegistry.open(self._registry_path(args), logger=self.log)
        classifier = BrokennessClassifier(system=system, logger=self.log)
        rfilter = ReverseDependencyFilter(classifier, workers=jobs, logger=self.log)

        result, verdicts = rfilter.select(registry, args.target, allow_broken)
        if args.explain:
            self._print_explain(verdicts)

        artifact = ResultAggregator().aggregate(args.target, result, args.just_print_all_deps)

        if args.just_print_all_deps:
            path = self._write_manifest(artifact, args.output)
            if path:
                self.console.print(f"[green]{len(result)} packages written to {path}[/green]")
            return EXIT_OK

        table = Table(title=artifact.name)
        table.add_column("Package")
        table.add_column("Version")
        for record in artifact.paths:
            table.add_row(record.name, record.version or "")
        self.console.print(table)

        engine = CommandBuildEngine(workers=jobs, dry_run=not args.execute, logger=self.log)
        try:
            artifact.realize(engine)
        except BuildError as e:
            print_panel(self.console, "build failed", str(e), style="red")
            return EXIT_BUILD
        if not args.execute:
            self.console.print("[yellow]dry-run: use --execute to run the builds[/yellow]")
        else:
            print_panel(self.console, artifact.name, f"{len(artifact.paths)} packages built")
        return EXIT_OK


def build_argparser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="revdeps",
        description="Find and build all usable reverse dependencies of a package")
    ap.add_argument("target", help="Package whose reverse dependencies are wanted")
    ap.add_argument("--just-print-all-deps", action="store_true",
                    help="Only write a manifest with the names of the reverse dependencies")
    ap.add_argument("--allow-broken", action="store_true",
                    help="Do not exclude packages marked broken")
    ap.add_argument("--registry", help="Recipes directory or registry index file")
    ap.add_argument("-o", "--output", help="Manifest path or directory ('-' for stdout)")
    ap.add_argument("--execute", action="store_true", help="Really run the builds")
    ap.add_argument("-j", "--jobs", type=int, help="Parallel workers")
    ap.add_argument("--system", help="Host platform id (default: detected)")
    ap.add_argument("--explain", action="store_true",
                    help="Show why each candidate was included or excluded")
    ap.add_argument("--conf", help="Path to revdeps.conf")
    ap.add_argument("--no-color", action="store_true", help="Disable color output")
    ap.add_argument("--quiet", action="store_true", help="Quiet mode; less output")
    ap.add_argument("-v", "--verbose", action="count", default=0,
                    help="More diagnostics (-vv shows exclusion traces)")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    args = build_argparser().parse_args(argv)

    cfg = RevdepsConfig([args.conf]) if args.conf else _default_config
    console = make_console(args.no_color, args.quiet)
    log = _logger.Logger("revdeps", cfg=cfg)
    if args.no_color:
        log.color_output = False
    if args.quiet:
        log.set_level("warning")
    elif args.verbose >= 2:
        log.set_level("trace")
    elif args.verbose == 1:
        log.set_level("debug")

    try:
        return CLI(console, cfg, log).run(args)
    except RegistryError as e:
        console.print(f"[red]error: {e}[/red]")
        return EXIT_LOOKUP
    except Exception as e:
        console.print(f"[red]Unhandled CLI error: {e}[/red]")
        log.error(traceback.format_exc())
        return EXIT_UNHANDLED


if __name__ == "__main__":
    raise SystemExit(main())
