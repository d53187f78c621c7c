"""Command-line entry point.

Two forms are accepted. The shell form ``filetagger --manage-tags <file>`` is
what the context-menu entry launches; every other invocation is parsed as a
subcommand::

    filetagger add-dir ~/Pictures
    filetagger tag ~/Pictures/a.jpg holiday
    filetagger files --untagged
    filetagger cleanup ~/Pictures
"""
import argparse
import logging
import os
import sys
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from filetagger.core.config import Settings, settings as default_settings
from filetagger.core.errors import FileTaggerError, NotWatched
from filetagger.core.logging_config import configure_logging
from filetagger.integrations import ShellIntegration, TempResultsResolver
from filetagger.schemas import FileWithTags, OperationResult
from filetagger.services.database_manager import DatabaseManager

logger = logging.getLogger(__name__)

MANAGE_TAGS = "--manage-tags"

# Fields printed separately from the counters
_DETAIL_FIELDS = {"errors", "directory_path", "pull_result", "push_result", "missing_files", "affected_tags"}


def _notify(message: str) -> None:
    print(message, file=sys.stderr)


def handle_command_line_args(
    args: Sequence[str],
    manager: ShellIntegration,
    open_tag_view: Callable[[str], None],
    temp_results: Optional[TempResultsResolver] = None,
    notify: Callable[[str], None] = _notify,
) -> bool:
    """Handle the two-argument shell form ``<command> <path>``.

    Args:
        args: Command-line arguments without the program name
        manager: Decides whether a path lies in a watched directory
        open_tag_view: Shows the tag view for a file
        temp_results: Resolver for copies in the temporary results folder
        notify: Shows a message to the user

    Returns:
        True if the arguments were handled (including refusals), False otherwise
    """
    if len(args) < 2:
        return False

    command, file_path = args[0], args[1]
    if command != MANAGE_TAGS:
        return False

    try:
        if not os.path.isfile(file_path):
            return False

        original_path = file_path
        if temp_results is not None and temp_results.is_temp_path(file_path):
            mapped = temp_results.resolve_original_path(file_path)
            if not mapped:
                notify("Cannot find original file location for this temporary file.")
                return True
            original_path = mapped
        elif not manager.is_path_inside_any_watched_directory(file_path):
            notify(str(NotWatched(file_path)))
            return True

        open_tag_view(original_path)
        return True
    except (FileTaggerError, SQLAlchemyError, OSError) as e:
        logger.error(f"Error managing tags for {file_path}: {e}")
        notify(f"Error managing tags: {e}")
        return True


# Output

def _print_result(title: str, result: OperationResult, config: Settings) -> int:
    print(title)
    for field, value in result.model_dump(exclude=_DETAIL_FIELDS).items():
        print(f"  {field.replace('_', ' ')}: {value}")
    if result.errors:
        print(f"  errors ({len(result.errors)}):")
        for line in result.error_preview(config.ERROR_PREVIEW_LIMIT).splitlines():
            print(f"    {line}")
    return 0 if result.succeeded else 1


def _print_files(files: List[FileWithTags]) -> None:
    for item in files:
        tags = f"  [{item.tags_string}]" if item.is_tagged else ""
        print(f"{item.full_path}  ({item.file_size_formatted}){tags}")
    print(f"{len(files)} file(s)")


def _print_tags_of(manager: DatabaseManager, file_path: str) -> None:
    tags = manager.get_tags_for_file(file_path)
    print(file_path)
    print(f"  tags: {', '.join(tags) if tags else '(none)'}")


# Subcommands

def _add_dir(manager: DatabaseManager, args: argparse.Namespace) -> int:
    result = manager.add_directory(args.path)
    return _print_result(f"Watching {result.directory_path}", result, manager.config)


def _remove_dir(manager: DatabaseManager, args: argparse.Namespace) -> int:
    if manager.remove_directory(args.path):
        print(f"Stopped watching {args.path}")
        return 0
    print(f"Not a watched directory: {args.path}", file=sys.stderr)
    return 1


def _list_dirs(manager: DatabaseManager, args: argparse.Namespace) -> int:
    for path in manager.get_all_active_directories():
        print(path)
    return 0


def _pull(manager: DatabaseManager, args: argparse.Namespace) -> int:
    results = [manager.pull_from_folder(args.path)] if args.path else manager.pull_all_folders()
    status = 0
    for result in results:
        status |= _print_result(f"Pulled {result.directory_path}", result, manager.config)
    return status


def _push(manager: DatabaseManager, args: argparse.Namespace) -> int:
    results = [manager.push_to_folder(args.path)] if args.path else manager.push_all_folders()
    status = 0
    for result in results:
        status |= _print_result(f"Pushed {result.directory_path}", result, manager.config)
    return status


def _cleanup(manager: DatabaseManager, args: argparse.Namespace) -> int:
    result = manager.cleanup_folder(args.path)
    return _print_result(f"Cleaned up {result.directory_path}", result, manager.config)


def _merge_duplicates(manager: DatabaseManager, args: argparse.Namespace) -> int:
    result = manager.merge_all_duplicate_databases()
    return _print_result("Merged duplicate satellites", result, manager.config)


def _verify(manager: DatabaseManager, args: argparse.Namespace) -> int:
    result = manager.verify_and_cleanup_tagged_files()
    for path in result.missing_files:
        print(f"missing: {path}")
    if result.affected_tags:
        print(f"affected tags: {', '.join(result.affected_tags)}")
    return _print_result("Verified tagged files", result, manager.config)


def _tags(manager: DatabaseManager, args: argparse.Namespace) -> int:
    if args.all:
        for name in manager.get_all_tag_names():
            print(name)
        return 0
    for info in manager.get_all_available_tags():
        description = f" - {info.description}" if info.description else ""
        print(f"{info.name} ({info.total_usage_count}){description}  [{info.source_directories_string}]")
    return 0


def _files(manager: DatabaseManager, args: argparse.Namespace) -> int:
    if args.untagged:
        files = manager.get_untagged_files()
    elif args.all:
        files = manager.get_all_files_in_watched_directories()
    else:
        files = manager.get_all_files_with_tags()
    _print_files(files)
    return 0


def _tag(manager: DatabaseManager, args: argparse.Namespace) -> int:
    manager.add_tag_to_file(args.file, args.tag, args.description)
    print(f"Tagged {args.file} with '{args.tag}'")
    return 0


def _untag(manager: DatabaseManager, args: argparse.Namespace) -> int:
    if manager.remove_tag_from_file(args.file, args.tag):
        print(f"Removed '{args.tag}' from {args.file}")
        return 0
    print(f"{args.file} is not tagged with '{args.tag}'", file=sys.stderr)
    return 1


def _create_tag(manager: DatabaseManager, args: argparse.Namespace) -> int:
    tag = manager.create_tag(args.directory, args.name, args.description)
    print(f"Created tag '{tag.name}'")
    return 0


def _delete_tag(manager: DatabaseManager, args: argparse.Namespace) -> int:
    count = manager.delete_tag(args.name)
    print(f"Deleted {count} tag(s) named '{args.name}'")
    return 0 if count else 1


def _rename_tag(manager: DatabaseManager, args: argparse.Namespace) -> int:
    count = manager.rename_tag(args.old_name, args.new_name)
    print(f"Renamed {count} tag(s) '{args.old_name}' -> '{args.new_name}'")
    return 0 if count else 1


def _describe_tag(manager: DatabaseManager, args: argparse.Namespace) -> int:
    count = manager.update_tag_description(args.name, args.description)
    print(f"Updated description of {count} tag(s) named '{args.name}'")
    return 0 if count else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filetagger",
        description="Tag files in watched directories and reconcile the tag stores",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sub = subparsers.add_parser("add-dir", help="Watch a directory and pull its satellites")
    sub.add_argument("path")
    sub.set_defaults(handler=_add_dir)

    sub = subparsers.add_parser("remove-dir", help="Stop watching a directory (data is kept)")
    sub.add_argument("path")
    sub.set_defaults(handler=_remove_dir)

    sub = subparsers.add_parser("list-dirs", help="List watched directories")
    sub.set_defaults(handler=_list_dirs)

    sub = subparsers.add_parser("pull", help="Import satellite data into the central store")
    sub.add_argument("path", nargs="?", help="Watched directory (default: all)")
    sub.set_defaults(handler=_pull)

    sub = subparsers.add_parser("push", help="Export central data into satellite stores")
    sub.add_argument("path", nargs="?", help="Watched directory (default: all)")
    sub.set_defaults(handler=_push)

    sub = subparsers.add_parser("cleanup", help="Pull, delete all satellites, push one fresh satellite")
    sub.add_argument("path")
    sub.set_defaults(handler=_cleanup)

    sub = subparsers.add_parser("merge-duplicates", help="Fold duplicate satellites into the central store")
    sub.set_defaults(handler=_merge_duplicates)

    sub = subparsers.add_parser("verify", help="Remove records of files that no longer exist")
    sub.set_defaults(handler=_verify)

    sub = subparsers.add_parser("tags", help="List tags in use with their usage counts")
    sub.add_argument("--all", action="store_true", help="List every tag name, used or not")
    sub.set_defaults(handler=_tags)

    sub = subparsers.add_parser("files", help="List tagged files")
    group = sub.add_mutually_exclusive_group()
    group.add_argument("--untagged", action="store_true", help="List files without tags")
    group.add_argument("--all", action="store_true", help="List every file in watched directories")
    sub.set_defaults(handler=_files)

    sub = subparsers.add_parser("tag", help="Add a tag to a file")
    sub.add_argument("file")
    sub.add_argument("tag")
    sub.add_argument("--description", default="", help="Description for a new tag")
    sub.set_defaults(handler=_tag)

    sub = subparsers.add_parser("untag", help="Remove a tag from a file")
    sub.add_argument("file")
    sub.add_argument("tag")
    sub.set_defaults(handler=_untag)

    sub = subparsers.add_parser("create-tag", help="Create a tag without attaching it to a file")
    sub.add_argument("directory")
    sub.add_argument("name")
    sub.add_argument("--description", default="")
    sub.set_defaults(handler=_create_tag)

    sub = subparsers.add_parser("delete-tag", help="Delete a tag everywhere")
    sub.add_argument("name")
    sub.set_defaults(handler=_delete_tag)

    sub = subparsers.add_parser("rename-tag", help="Rename a tag everywhere")
    sub.add_argument("old_name")
    sub.add_argument("new_name")
    sub.set_defaults(handler=_rename_tag)

    sub = subparsers.add_parser("describe-tag", help="Set the description of a tag")
    sub.add_argument("name")
    sub.add_argument("description")
    sub.set_defaults(handler=_describe_tag)

    return parser


def main(argv: Optional[Sequence[str]] = None, config: Optional[Settings] = None) -> int:
    """Main entry point for the ``filetagger`` command.

    Returns:
        Process exit code
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    config = config or default_settings
    manager = DatabaseManager(config)

    if argv and argv[0] == MANAGE_TAGS:
        configure_logging(config)
        if handle_command_line_args(argv, manager, lambda path: _print_tags_of(manager, path)):
            return 0
        _notify(f"usage: filetagger {MANAGE_TAGS} <existing file>")
        return 2

    args = build_parser().parse_args(argv)
    configure_logging(config, verbose=args.verbose)

    try:
        return args.handler(manager, args)
    except (FileTaggerError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
