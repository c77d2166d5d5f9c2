import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from tabulate import tabulate

from registry_console.config_manager import config_manager
from registry_console.confirmation import SBOM_WARNING, DismissSignal
from registry_console.error_utils import ActionableError, FatalDeletionError, PartialDeletionError, ValidationError
from registry_console.format_utils import format_bytes, format_relative_date, short_digest
from registry_console.health_checks import print_health_report
from registry_console.logging_utils import setup_logging
from registry_console.models import DeletionOutcome, ImageRecord, PreviewResult
from registry_console.services import ConsoleServices
from registry_console.workflow import parse_threshold

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2

COMMANDS = {
    "repositories": "List repositories (optionally filtered with --search)",
    "global_stats": "Show global totals and the largest repositories",
    "images": "List images of a repository (--type all|most-downloaded|largest)",
    "dashboard": "Show totals, most recently pulled and largest images of a repository",
    "preview": "Show which images of a repository have not been pulled in --days days",
    "delete_by_date": "Delete images not pulled in --days days (default: dry-run)",
    "delete_image": "Delete specific images by digest (default: dry-run)",
    "health_check": "Check configuration and registry API connectivity",
    "config": "Show current configuration",
    "serve": "Run the Console API server",
}


def build_services() -> ConsoleServices:
    return ConsoleServices.from_config(config_manager)


def confirm_deletion(count: int, total_bytes: int, repository: str, force: bool = False) -> bool:
    """Confirmation prompt for deletions

    Returns:
        True if user confirmed, False otherwise
    """
    if force:
        logging.warning("⚠️  Force mode enabled - skipping confirmation prompt")
        return True

    print("\n" + "=" * 60)
    print("⚠️  WARNING: You are about to DELETE images from the registry!")
    print("=" * 60)
    print(f"This will delete {count} images ({format_bytes(total_bytes)}) from {repository}.")
    print("This action cannot be undone.")
    print(SBOM_WARNING)
    print("=" * 60)

    while True:
        response = input("Are you sure you want to proceed with deletion? (yes/no): ").lower().strip()
        if response in ["yes", "y"]:
            return True
        elif response in ["no", "n"]:
            return False
        else:
            print("Please enter 'yes' or 'no'.")


def image_table(images: List[ImageRecord]) -> str:
    rows = [
        [image.tag or "untagged", short_digest(image.digest), format_bytes(image.size_bytes),
         format_relative_date(image.last_pull_at)]
        for image in images
    ]
    return tabulate(rows, headers=["Tag", "Digest", "Size", "Last Pull"], tablefmt="grid")


def print_preview(preview: PreviewResult) -> None:
    print(f"\n{preview.count} image(s) in {preview.repository} not pulled in the last {preview.threshold_days} days")
    if preview.candidates:
        print(image_table(list(preview.candidates)))
        print(f"Total size to be freed: {format_bytes(preview.total_bytes)}")


def log_summary(outcome: DeletionOutcome) -> int:
    """Log a deletion summary and return the exit code for it"""
    logging.info("\n📊 Deletion Summary:")
    logging.info(f"   Requested: {outcome.requested}")
    logging.info(f"   Successfully deleted: {outcome.deleted}")
    logging.info(f"   Failed deletions: {outcome.failed_count}")
    for failure in outcome.failures:
        logging.info(f"     {failure.digest or '-'}: {failure.reason}")

    try:
        outcome.raise_for_status()
    except PartialDeletionError as e:
        logging.warning(e.format_message())
        return EXIT_PARTIAL
    except FatalDeletionError as e:
        logging.error(e.format_message())
        return EXIT_FAILED
    logging.info(f"✓ {outcome.summary()}")
    return EXIT_OK


# ── Commands ───────────────────────────────────────────────────────────────────


async def cmd_repositories(services: ConsoleServices, args) -> int:
    repos = await services.dashboard.repositories(args.search)
    print(tabulate([[repo] for repo in repos], headers=["Repository"], tablefmt="grid"))
    return EXIT_OK


async def cmd_global_stats(services: ConsoleServices, args) -> int:
    stats = await services.dashboard.global_stats(args.limit or 20)
    print(f"Repositories: {stats['totalRepositories']}")
    print(f"Images: {stats['totalImages']}")
    print(f"Total size: {stats['totalSizeDisplay']}")
    rows = [[r["name"], r["imageCount"], format_bytes(r["size"])] for r in stats["topRepositoriesBySize"]]
    print(tabulate(rows, headers=["Repository", "Images", "Size"], tablefmt="grid"))
    return EXIT_OK


async def cmd_images(services: ConsoleServices, args) -> int:
    images = await services.dashboard.image_list(args.repository, args.type, args.limit)
    rows = [[i["displayTag"], short_digest(i["imageDigest"]), i["displaySize"], i["displayLastPull"]] for i in images]
    print(tabulate(rows, headers=["Tag", "Digest", "Size", "Last Pull"], tablefmt="grid"))
    return EXIT_OK


async def cmd_dashboard(services: ConsoleServices, args) -> int:
    stats = await services.dashboard.repository_stats(args.repository, args.limit)
    print(f"{stats['repository']}: {stats['totalImages']} images, {stats['totalSizeDisplay']}")
    for title, key in (("Most recently pulled", "mostDownloaded"), ("Largest", "largest")):
        print(f"\n{title}:")
        rows = [[i["displayTag"], short_digest(i["imageDigest"]), i["displaySize"], i["displayLastPull"]]
                for i in stats[key]]
        print(tabulate(rows, headers=["Tag", "Digest", "Size", "Last Pull"], tablefmt="grid"))
    return EXIT_OK


async def cmd_preview(services: ConsoleServices, args) -> int:
    workflow = services.new_workflow(args.repository)
    workflow.set_threshold(args.days)
    print_preview(await workflow.run_preview())
    return EXIT_OK


async def cmd_delete_by_date(services: ConsoleServices, args) -> int:
    workflow = services.new_workflow(args.repository)
    workflow.set_threshold(args.days)
    preview = await workflow.run_preview()
    print_preview(preview)

    if preview.is_empty():
        logging.info("Nothing to delete")
        return EXIT_OK
    if not args.apply and config_manager.is_dry_run_by_default():
        logging.info(f"DRY RUN: would delete {preview.count} images. Re-run with --apply to delete them.")
        return EXIT_OK

    await workflow.request_confirmation()
    force = args.force or not config_manager.requires_confirmation()
    confirmed = await asyncio.to_thread(confirm_deletion, preview.count, preview.total_bytes, args.repository, force)
    if not confirmed:
        workflow.dismiss(DismissSignal.CANCEL)
        logging.info("Deletion cancelled")
        return EXIT_OK

    outcome = await workflow.confirm()
    return log_summary(outcome)


async def cmd_delete_image(services: ConsoleServices, args) -> int:
    if not args.digest:
        raise ValidationError("No images selected for deletion", suggestions=["Pass one or more --digest values"])
    if not args.apply and config_manager.is_dry_run_by_default():
        logging.info(f"DRY RUN: would delete {len(args.digest)} image(s) from {args.repository}")
        return EXIT_OK

    force = args.force or not config_manager.requires_confirmation()
    if not await asyncio.to_thread(confirm_deletion, len(args.digest), 0, args.repository, force):
        logging.info("Deletion cancelled")
        return EXIT_OK
    outcome = await services.commit_engine.delete_images(args.repository, args.digest)
    return log_summary(outcome)


async def cmd_health_check(services: ConsoleServices, args) -> int:
    results = await services.health.run_all_checks()
    return EXIT_OK if print_health_report(results) else EXIT_FAILED


ASYNC_COMMANDS = {
    "repositories": cmd_repositories,
    "global_stats": cmd_global_stats,
    "images": cmd_images,
    "dashboard": cmd_dashboard,
    "preview": cmd_preview,
    "delete_by_date": cmd_delete_by_date,
    "delete_image": cmd_delete_image,
    "health_check": cmd_health_check,
}
REPOSITORY_COMMANDS = {"images", "dashboard", "preview", "delete_by_date", "delete_image"}


async def run_command(command: str, args) -> int:
    services = build_services()
    try:
        return await ASYNC_COMMANDS[command](services, args)
    finally:
        await services.aclose()


def build_parser() -> argparse.ArgumentParser:
    epilog = "Available commands:\n" + "\n".join(f"  {name:<16}- {desc}" for name, desc in COMMANDS.items())
    epilog += """

Configuration:
  The tool uses config.yaml (or CONFIG_FILE) for default settings. Environment overrides:
  - REGISTRY_API_URL: Registry API base URL
  - CONSOLE_HOST / CONSOLE_PORT: Console API bind address

Examples:
  python main.py repositories --search web
  python main.py dashboard --repository my-app
  python main.py preview --repository my-app --days 60

  # Delete by date (dry run - default, safe)
  python main.py delete_by_date --repository my-app --days 60

  # Delete by date (actual deletion - requires confirmation)
  python main.py delete_by_date --repository my-app --days 60 --apply

  # Delete one image (force deletion - no confirmation)
  python main.py delete_image --repository my-app --digest sha256:abc... --apply --force

Safety Notes:
  - delete_by_date and delete_image run in dry-run mode by default
  - Use --apply to actually delete images
  - Use --force to skip the confirmation prompt
  - Images that were never pulled are never selected by delete_by_date
"""
    parser = argparse.ArgumentParser(
        description="Registry console: dashboards and delete-by-date for the registry API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    parser.add_argument("command", nargs="?", choices=COMMANDS.keys(), help="Command to run")
    parser.add_argument("--repository", help="Repository name")
    parser.add_argument("--days", default=str(config_manager.get_default_threshold_days()),
                        help="Days since last pull (default from config)")
    parser.add_argument("--search", help="For repositories: case-insensitive name filter")
    parser.add_argument("--type", default="all", choices=["all", "most-downloaded", "largest"],
                        help="For images: which list to show")
    parser.add_argument("--limit", type=int, help="Number of rows for top-N lists")
    parser.add_argument("--digest", action="append", help="For delete_image: digest to delete (repeatable)")
    parser.add_argument("--apply", action="store_true", help="Actually delete images (default is dry-run)")
    parser.add_argument("--force", action="store_true", help="Skip confirmation prompt when using --apply")
    parser.add_argument("--config", action="store_true", help="Show current configuration and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.config or args.command == "config":
        config_manager.print_config()
        return EXIT_OK

    if not args.command:
        parser.print_help()
        return EXIT_FAILED

    if args.command == "serve":
        import api

        api.main()
        return EXIT_OK

    if args.command in REPOSITORY_COMMANDS and not args.repository:
        logging.error(f"--repository is required for {args.command}")
        return EXIT_FAILED

    try:
        if args.command in ("preview", "delete_by_date"):
            args.days = parse_threshold(args.days)
        return asyncio.run(run_command(args.command, args))
    except ActionableError as e:
        print(e.format_message(), file=sys.stderr)
        return EXIT_FAILED
    except KeyboardInterrupt:
        logging.warning("Interrupted")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
