"""openflows main entry point.

Runs one task workflow and prints the agent's final answer on stdout::

    python -m app.main review --repo owner/repo --pr 42
    python -m app.main label --repo owner/repo --issue 7
    python -m app.main doc-sync --repo owner/repo [--pr 42 | --base main]
    python -m app.main release --repo owner/repo [--from v1.2.3] [--phase2-only --tag v1.3.0 --note ...]
    python -m app.main setup review label
"""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys

from app.core.active_repo import set_repo_root
from app.core.config import get_settings
from app.core.logging import get_logger, setup_logging
from app.core.retry import CancellationToken
from app.core import workflows


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="openflows", description="Run an agent task against a repository.")
    parser.add_argument("--model", default="", help="provider/model (default: DEFAULT_MODEL)")
    parser.add_argument("--root", default="", help="working tree root (default: TARGET_REPO_PATH or CWD)")
    parser.add_argument("--dry-run", action="store_true", help="validate tool calls without side effects")
    sub = parser.add_subparsers(dest="command", required=True)

    review = sub.add_parser("review", help="review a pull request")
    review.add_argument("--repo", required=True)
    review.add_argument("--pr", type=int, required=True)

    label = sub.add_parser("label", help="label an issue")
    label.add_argument("--repo", required=True)
    label.add_argument("--issue", type=int, required=True)

    docs = sub.add_parser("doc-sync", help="update documentation for a change")
    docs.add_argument("--repo", required=True)
    docs.add_argument("--pr", type=int, default=None)
    docs.add_argument("--base", default="HEAD", help="diff base when no --pr is given")

    release = sub.add_parser("release", help="publish a release")
    release.add_argument("--repo", required=True)
    release.add_argument("--from", dest="from_tag", default=None, help="previous release tag")
    release.add_argument("--to", dest="to_ref", default="HEAD")
    release.add_argument("--phase2-only", action="store_true",
                         help="only create the platform release for an already published version")
    release.add_argument("--tag", default="", help="release tag (with --phase2-only)")
    release.add_argument("--note", action="append", default=[], help="release note bullet (repeatable)")
    release.add_argument("--title", default=None)
    release.add_argument("--prerelease", action="store_true")
    release.add_argument("--draft", action="store_true")

    setup = sub.add_parser("setup", help="install CI workflow files")
    setup.add_argument("workflows", nargs="+", choices=["review", "label", "doc-sync", "release"])
    return parser


async def run(args: argparse.Namespace, cancel: CancellationToken) -> str:
    common = {"model": args.model, "dry_run": args.dry_run, "cancel": cancel}
    if args.command == "review":
        return await workflows.run_review(args.repo, args.pr, **common)
    if args.command == "label":
        return await workflows.run_label(args.repo, args.issue, **common)
    if args.command == "doc-sync":
        return await workflows.run_doc_sync(args.repo, args.pr, base=args.base, **common)
    if args.command == "release":
        if args.phase2_only:
            if not args.tag:
                raise ValueError("--phase2-only needs --tag")
            return await workflows.run_platform_release(
                args.repo, args.tag, args.note, title=args.title,
                prerelease=args.prerelease, draft=args.draft, dry_run=args.dry_run,
            )
        return await workflows.run_release(args.repo, args.from_tag, args.to_ref, **common)
    if args.command == "setup":
        return await workflows.run_setup(args.workflows, dry_run=args.dry_run)
    raise ValueError(f"Unknown command: {args.command}")


async def _main_async(args: argparse.Namespace) -> str:
    logger = get_logger("main")
    cancel = CancellationToken()
    ctrl_c_count = 0

    def _handle_signal() -> None:
        nonlocal ctrl_c_count
        ctrl_c_count += 1
        if ctrl_c_count == 1:
            logger.info("Interrupt received — finishing the current step (press again to force)")
            cancel.cancel()
        else:
            logger.warning("Second interrupt — forcing immediate exit")
            os._exit(130)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except NotImplementedError:
            # Windows event loops have no signal handlers.
            pass
    return await run(args, cancel)


def main(argv: list[str] | None = None) -> int:
    """Entry point: parse arguments, run the task, print the result."""
    args = build_parser().parse_args(argv)
    setup_logging()
    logger = get_logger("main")
    settings = get_settings()

    logger.info("=" * 60)
    logger.info("openflows %s starting", args.command)
    logger.info("=" * 60)

    if args.root:
        set_repo_root(os.path.abspath(args.root))
    if not settings.github_token and args.command != "setup":
        logger.warning("GITHUB_TOKEN not set - platform calls will be unauthenticated")

    try:
        output = asyncio.run(_main_async(args))
    except Exception as exc:
        logger.exception("Task failed")
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
