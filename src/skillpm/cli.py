from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import textwrap
from pathlib import Path
from typing import Any

from ._version import __version__
from .cache import CacheKey
from .config import Config, cache_root, config_path, load_config, save_config
from .errors import SkillpmError
from .manager import SKIPPED, UP_TO_DATE, BatchResult, InstalledSkill, SkillManager
from .manifest import MANIFEST_FILENAME
from .references import parse_reference


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _configure_logging(verbose: bool) -> None:
    debug = verbose or bool(os.getenv("SKILLPM_DEBUG"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="skillpm",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Git-based package manager for agent skills.",
        epilog=textwrap.dedent(
            """\
            References:
              owner/repo[/subpath][@version]
              <registry>:owner/repo[@version]        (github, gitlab, or a host)
              https://host/owner/repo.git[/subpath][@version]
              git@host:owner/repo.git[/subpath][@version]

            Versions: v1.2.3, latest, ^1.0.0, ~1.2.0, branch:<name>, commit:<sha>

            Environment variables:
              SKILLPM_CONFIG_PATH, SKILLPM_CACHE_DIR, SKILLPM_DEBUG
            """
        ),
    )
    p.add_argument("--version", action="version", version=f"skillpm {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose (debug) logging")
    p.add_argument("-C", "--project", default=".", help="Project directory (default: current directory)")

    sub = p.add_subparsers(dest="cmd", required=True)

    init = sub.add_parser("init", help=f"Create {MANIFEST_FILENAME}")
    init.add_argument("--name", help="Project name")

    install = sub.add_parser("install", aliases=["i"], help=f"Install a skill or all skills from {MANIFEST_FILENAME}")
    install.add_argument("skill", nargs="?", help="Skill reference (e.g. github:user/skill@v1.0.0)")
    install.add_argument("-f", "--force", action="store_true", help="Reinstall even if already installed")
    install.add_argument(
        "--save",
        dest="save",
        action="store_true",
        default=None,
        help=f"Record the reference in {MANIFEST_FILENAME}, creating it if needed",
    )
    install.add_argument("--no-save", dest="save", action="store_false", help=f"Do not touch {MANIFEST_FILENAME}")
    install.add_argument("--json", action="store_true", help="Output JSON")

    ls = sub.add_parser("list", aliases=["ls"], help="List installed skills")
    ls.add_argument("--json", action="store_true", help="Output JSON")

    info = sub.add_parser("info", help="Show details of one skill")
    info.add_argument("skill", help="Skill name")
    info.add_argument("--json", action="store_true", help="Output JSON")

    update = sub.add_parser("update", aliases=["up"], help=f"Re-resolve and reinstall skills from {MANIFEST_FILENAME}")
    update.add_argument("skill", nargs="?", help="Skill name (default: all)")
    update.add_argument("--json", action="store_true", help="Output JSON")

    outdated = sub.add_parser("outdated", help="Compare installed versions with the latest remote tags")
    outdated.add_argument("--json", action="store_true", help="Output JSON")

    uninstall = sub.add_parser("uninstall", aliases=["un", "remove", "rm"], help="Uninstall a skill")
    uninstall.add_argument("skill", help="Skill name")

    link = sub.add_parser("link", help="Link a local skill directory for development")
    link.add_argument("path", help="Path to the local skill directory")
    link.add_argument("-n", "--name", help="Custom skill name")

    unlink = sub.add_parser("unlink", help="Remove a linked skill")
    unlink.add_argument("skill", help="Skill name")

    cache = sub.add_parser("cache", help="Manage the shared skill cache")
    cache_sub = cache.add_subparsers(dest="subcmd", required=True)
    cache_sub.add_parser("dir", help="Print the cache directory")
    cache_stats = cache_sub.add_parser("stats", help="Show cache statistics")
    cache_stats.add_argument("--json", action="store_true", help="Output JSON")
    cache_clear = cache_sub.add_parser("clear", help="Clear the whole cache, one repository, or one version")
    cache_clear.add_argument(
        "skill",
        nargs="?",
        help="Reference; with @version clears that version only, without it all versions",
    )

    cfg = sub.add_parser("config", help="Manage user config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show config")
    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--cache-dir")
    cfg_set.add_argument("--default-registry")
    cfg_set.add_argument("--git-executable")

    return p


def _make_manager(args: argparse.Namespace) -> SkillManager:
    return SkillManager.from_config(Path(args.project), load_config())


def _skill_rows(skills: list[InstalledSkill]) -> list[list[str]]:
    rows = [["NAME", "VERSION", "SOURCE"]]
    for skill in skills:
        version = f"{skill.version} (linked)" if skill.is_linked else skill.version
        rows.append([skill.name, version, skill.source or "-"])
    return rows


def cmd_init(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    if manager.manifest.exists():
        print(f"{MANIFEST_FILENAME} already exists: {manager.manifest.path}", file=sys.stderr)
        return 1
    manager.manifest.create(args.name)
    print(f"Created {manager.manifest.path}")
    return 0


def cmd_install(args: argparse.Namespace) -> int:
    manager = _make_manager(args)

    if args.skill:
        result = manager.install_result(args.skill, force=args.force, save=args.save)
        skill = result.skill
        if args.json:
            payload = {**skill.to_json(), "requested": result.requested, "status": result.status}
            print(json.dumps(payload, indent=2, sort_keys=True))
            return 0
        if result.status == SKIPPED:
            print(
                f"already installed: {skill.name}@{skill.version} (requested {result.requested}). "
                "Use --force to reinstall."
            )
        elif result.status == UP_TO_DATE:
            print(f"up to date: {skill.name}@{skill.version}")
        else:
            print(f"installed: {skill.name}@{skill.version} -> {skill.path}")
        return 0

    if not manager.manifest.exists():
        raise SkillpmError(f"{MANIFEST_FILENAME} not found. Run 'skillpm init' first.")
    if not manager.manifest.get_skills():
        print(f"No skills defined in {MANIFEST_FILENAME}")
        return 0

    result = manager.install_all(force=args.force)
    return _report_batch(result, verb="installed", as_json=args.json)


def _report_batch(result: BatchResult, *, verb: str, as_json: bool) -> int:
    if as_json:
        payload = {
            verb: [s.to_json() for s in result.installed],
            "failures": dict(result.failures),
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 1 if result.failures else 0

    for skill in result.installed:
        print(f"{verb}: {skill.name}@{skill.version}")
    for name, message in result.failures.items():
        print(f"failed: {name} ({message})")
    print(f"{verb.capitalize()} {len(result.installed)} skill(s)")
    return 1 if result.failures else 0


def cmd_list(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    skills = manager.list()

    if args.json:
        print(json.dumps([s.to_json() for s in skills], indent=2, sort_keys=True))
        return 0
    if not skills:
        print("No skills installed")
        return 0

    print(f"Installed skills ({manager.install_dir}):")
    _print_table(_skill_rows(skills))
    print(f"Total: {len(skills)} skill(s)")
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    info = manager.get_info(args.skill)

    payload: dict[str, Any] = {
        "installed": info.installed.to_json() if info.installed else None,
        "locked": info.locked.to_json() if info.locked else None,
        "reference": info.reference,
    }
    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0 if info.installed or info.locked or info.reference else 1

    if info.installed is None and info.locked is None and info.reference is None:
        print(f"Skill {args.skill} not found", file=sys.stderr)
        return 1

    print(f"name: {args.skill}")
    print(f"reference: {info.reference or '-'}")
    if info.installed:
        print(f"path: {info.installed.path}")
        print(f"version: {info.installed.version}")
        print(f"linked: {'yes' if info.installed.is_linked else 'no'}")
    else:
        print("installed: no")
    if info.locked:
        print(f"source: {info.locked.source}")
        print(f"resolved: {info.locked.resolved}")
        print(f"commit: {info.locked.commit or '-'}")
        print(f"installed_at: {info.locked.installed_at}")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    result = manager.update(args.skill)
    return _report_batch(result, verb="updated", as_json=args.json)


def cmd_outdated(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    results = manager.check_outdated()

    if args.json:
        payload = [
            {"name": r.name, "current": r.current, "latest": r.latest, "updateAvailable": r.update_available}
            for r in results
        ]
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0
    if not results:
        print(f"No skills defined in {MANIFEST_FILENAME}")
        return 0

    rows = [["NAME", "CURRENT", "LATEST", "STATUS"]]
    for r in results:
        rows.append([r.name, r.current, r.latest, "update available" if r.update_available else "up to date"])
    _print_table(rows)
    return 0


def cmd_uninstall(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    if not manager.uninstall(args.skill):
        print(f"Skill {args.skill} is not installed", file=sys.stderr)
        return 1
    print(f"removed: {args.skill}")
    return 0


def cmd_link(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    linked = manager.link(args.path, args.name)
    print(f"linked: {linked.name} -> {linked.source}")
    return 0


def cmd_unlink(args: argparse.Namespace) -> int:
    manager = _make_manager(args)
    if not manager.unlink(args.skill):
        print(f"Skill {args.skill} is not a linked skill", file=sys.stderr)
        return 1
    print(f"unlinked: {args.skill}")
    return 0


def cmd_cache(args: argparse.Namespace) -> int:
    if args.subcmd == "dir":
        print(str(cache_root(load_config())))
        return 0

    manager = _make_manager(args)
    cache = manager.cache

    if args.subcmd == "stats":
        stats = cache.stats()
        if args.json:
            payload = {
                "root": str(cache.root),
                "total_skills": stats.total_skills,
                "total_versions": stats.total_versions,
                "registries": list(stats.registries),
            }
            print(json.dumps(payload, indent=2, sort_keys=True))
            return 0
        print(f"cache: {cache.root}")
        _print_table(
            [
                ["ITEM", "COUNT"],
                ["skills", str(stats.total_skills)],
                ["versions", str(stats.total_versions)],
                ["registries", str(len(stats.registries))],
            ]
        )
        return 0

    if args.subcmd == "clear":
        if not args.skill:
            cache.clear()
            print(f"cleared: {cache.root}")
            return 0
        parsed = parse_reference(args.skill, default_registry=manager.resolver.default_registry)
        if parsed.version:
            removed = cache.clear(CacheKey.for_reference(parsed, parsed.version))
        else:
            removed = cache.clear_repo(parsed.registry, parsed.owner, parsed.repo)
        print(f"{'cleared' if removed else 'not cached'}: {args.skill}")
        return 0

    raise AssertionError("unreachable")


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        cfg = load_config()
        d = cfg.__dict__.copy()
        d["effective_cache_dir"] = str(cache_root(cfg))
        print(json.dumps(d, indent=2, sort_keys=True))
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        new_cfg = Config(
            cache_dir=args.cache_dir if args.cache_dir is not None else cfg.cache_dir,
            default_registry=args.default_registry if args.default_registry is not None else cfg.default_registry,
            git_executable=args.git_executable or cfg.git_executable,
        )
        path = save_config(new_cfg)
        print(f"Saved: {path}")
        return 0

    raise AssertionError("unreachable")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    try:
        if args.cmd == "init":
            return cmd_init(args)
        if args.cmd in ("install", "i"):
            return cmd_install(args)
        if args.cmd in ("list", "ls"):
            return cmd_list(args)
        if args.cmd == "info":
            return cmd_info(args)
        if args.cmd in ("update", "up"):
            return cmd_update(args)
        if args.cmd == "outdated":
            return cmd_outdated(args)
        if args.cmd in ("uninstall", "un", "remove", "rm"):
            return cmd_uninstall(args)
        if args.cmd == "link":
            return cmd_link(args)
        if args.cmd == "unlink":
            return cmd_unlink(args)
        if args.cmd == "cache":
            return cmd_cache(args)
        if args.cmd == "config":
            return cmd_config(args)
        raise AssertionError("unreachable")
    except SkillpmError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
