import argparse
import logging
import sys
import textwrap
from functools import wraps
from pathlib import Path
from typing import BinaryIO

from . import DagError, UnixfsDag, CarBlockSource, DagnavSettings, BlockIndexStore
from .archive.index_store import BlockIndexNotFound
from .archive.path import find_settings_root, get_fixtures_dir, resolve_fixture_path, FIXTURES_ENVIRONMENT_VARIABLE
from .archive.settings import SETTING_INDEX_PATH, SETTING_LOGGING_LEVEL, SETTING_LOGGING_PATH
from .codec.registry import registered_codecs
from .dag.cursor import list_descendants, resolve
from .dag.formatter import format_node
from .fixture import open_block_index

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def needs_blocks(func):
    """Decorator for commands that read an archive.

    The decorated function will receive (blocks, output, args).
    The wrapper function takes (settings, output, args), opens args.archive as a CarBlockSource
    (through the block index when index.path is set) and closes it afterwards.
    """
    @wraps(func)
    def wrapper(settings: DagnavSettings, output, args):
        archive_path = resolve_fixture_path(args.archive, _fixtures_dir(settings, args))
        index_store = open_block_index(settings)
        try:
            blocks = CarBlockSource(archive_path, index_store)
        finally:
            if index_store is not None:
                index_store.close()

        with blocks:
            return func(blocks, output, args)
    return wrapper


def needs_dag(func):
    """Decorator for commands that navigate the UnixFS tree of an archive.

    The decorated function will receive (dag, output, args).
    """
    @needs_blocks
    @wraps(func)
    def wrapper(blocks: CarBlockSource, output, args):
        return func(UnixfsDag.from_blocks(blocks), output, args)
    return wrapper


def no_archive(func):
    """Decorator for commands that don't read an archive.

    The decorated function will receive (settings, output, args).
    """
    @wraps(func)
    def wrapper(settings: DagnavSettings, output, args):
        return func(settings, output, args)
    return wrapper


def _fixtures_dir(settings: DagnavSettings, args) -> Path:
    if args.fixtures is not None:
        return Path(args.fixtures)
    return get_fixtures_dir(settings)


def _split_path(path: str | None) -> tuple[str, ...]:
    if not path:
        return ()
    return tuple(segment for segment in path.split('/') if segment)


def configure_logging(args, settings: DagnavSettings):
    """Configure logging from the command line, falling back to settings.

    --log-file takes precedence over logging.path in settings. The level defaults
    to INFO when a log file is used and WARNING (to stderr) otherwise.
    """
    log_file = args.log_file
    if log_file is None:
        configured = settings.get_path(SETTING_LOGGING_PATH)
        log_file = str(configured) if configured is not None else None

    log_level = args.log_level or settings.get(SETTING_LOGGING_LEVEL)
    if log_level is None:
        log_level = 'INFO' if log_file else 'WARNING'

    if log_file:
        logging.basicConfig(filename=log_file, level=getattr(logging, log_level), format=LOG_FORMAT)
    else:
        logging.basicConfig(level=getattr(logging, log_level), format=LOG_FORMAT)


def dagnav_main(argv: list[str] | None = None, output: BinaryIO | None = None):
    parser = argparse.ArgumentParser(
        prog='dagnav',
        description='Inspect UnixFS DAGs stored in CAR archives: list paths, show CIDs, dump raw blocks and '
                    're-encode nodes under other codecs.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              dagnav ls dir.car
              dagnav cid dir.car sub/ascii.txt
              dagnav format dir.car dag-json sub
            ''').strip()
    )
    parser.add_argument(
        '--fixtures',
        metavar='DIR',
        help=f'Directory fixture archives are looked up in. If not provided, uses the {FIXTURES_ENVIRONMENT_VARIABLE} '
             f'environment variable, fixtures.dir from settings or a fixtures directory next to .dagnav.')
    parser.add_argument(
        '--log-file',
        metavar='PATH',
        help='Path to log file. If not provided, uses logging.path from settings or standard error.')
    parser.add_argument(
        '--log-level',
        metavar='LEVEL',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Defaults to INFO when logging to a file.')
    subparsers = parser.add_subparsers(
        dest='command',
        required=True,
        title='Commands',
        description='Available commands for archive inspection',
        help='Use "dagnav COMMAND --help" for command-specific help'
    )

    def add_archive_argument(subparser):
        subparser.add_argument(
            'archive',
            metavar='ARCHIVE',
            help='Fixture archive name, or a path starting with ./ or /')

    def add_path_argument(subparser):
        subparser.add_argument(
            'path',
            nargs='?',
            metavar='PATH',
            help='Slash-separated path below the root (default: the root itself)')

    parser_roots = subparsers.add_parser(
        'roots',
        help='Show the root CIDs declared by an archive',
        description='Prints each root CID declared in the archive header, one per line.')
    add_archive_argument(parser_roots)
    parser_roots.set_defaults(method=_roots)

    parser_blocks = subparsers.add_parser(
        'blocks',
        help='List the CIDs of all blocks in an archive',
        description='Prints the CID of every block stored in the archive, in archive order.')
    add_archive_argument(parser_blocks)
    parser_blocks.set_defaults(method=_blocks)

    parser_ls = subparsers.add_parser(
        'ls',
        help='List every path below a directory',
        description='Lists all descendant paths of PATH depth-first, with names sorted at each level.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              dagnav ls dir.car
              dagnav ls --cids dir.car sub
            ''').strip())
    add_archive_argument(parser_ls)
    add_path_argument(parser_ls)
    parser_ls.add_argument(
        '--cids',
        action='store_true',
        help='Show the CID of each path')
    parser_ls.set_defaults(method=_ls)

    parser_cid = subparsers.add_parser(
        'cid',
        help='Show the CID of a path',
        description='Prints the CID of the node at PATH.')
    add_archive_argument(parser_cid)
    add_path_argument(parser_cid)
    parser_cid.set_defaults(method=_cid)

    parser_cat_block = subparsers.add_parser(
        'cat-block',
        help='Write the raw block of a path to standard output',
        description='Writes the block bytes of the node at PATH, exactly as stored in the archive.')
    add_archive_argument(parser_cat_block)
    add_path_argument(parser_cat_block)
    parser_cat_block.set_defaults(method=_cat_block)

    parser_format = subparsers.add_parser(
        'format',
        help='Re-encode the node at a path under a codec',
        description=f'Decodes the node at PATH and writes it encoded under CODEC. Supported codecs: '
                    f'{", ".join(registered_codecs())}.')
    add_archive_argument(parser_format)
    parser_format.add_argument(
        'codec',
        metavar='CODEC',
        help='Target codec name, e.g. dag-json')
    add_path_argument(parser_format)
    parser_format.set_defaults(method=_format)

    parser_inspect_index = subparsers.add_parser(
        'inspect-index',
        help='Inspect and display block index records',
        description='Displays the records of the persistent block index configured by index.path.')
    parser_inspect_index.set_defaults(method=_inspect_index)

    args = parser.parse_args(argv)

    settings = DagnavSettings(find_settings_root(Path.cwd()))
    configure_logging(args, settings)

    try:
        args.method(settings, output if output is not None else sys.stdout.buffer, args)
    except (DagError, BlockIndexNotFound) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _write_line(output: BinaryIO, text: str):
    output.write(text.encode('utf-8') + b'\n')


@needs_blocks
def _roots(blocks: CarBlockSource, output, args):
    for root in blocks.roots():
        _write_line(output, str(root))


@needs_blocks
def _blocks(blocks: CarBlockSource, output, args):
    for cid in blocks:
        _write_line(output, str(cid))


@needs_dag
def _ls(dag: UnixfsDag, output, args):
    root = dag.root_cursor
    for path in list_descendants(root, _split_path(args.path)):
        line = '/'.join(path)
        if args.cids:
            line = f"{resolve(root, path).cid} {line}"
        _write_line(output, line)


@needs_dag
def _cid(dag: UnixfsDag, output, args):
    _write_line(output, str(resolve(dag.root_cursor, _split_path(args.path)).cid))


@needs_dag
def _cat_block(dag: UnixfsDag, output, args):
    output.write(resolve(dag.root_cursor, _split_path(args.path)).raw_data)


@needs_dag
def _format(dag: UnixfsDag, output, args):
    output.write(format_node(resolve(dag.root_cursor, _split_path(args.path)), args.codec))


@no_archive
def _inspect_index(settings: DagnavSettings, output, args):
    index_path = settings.get_path(SETTING_INDEX_PATH)
    if index_path is None:
        raise BlockIndexNotFound("No block index configured (index.path is not set)")

    with BlockIndexStore(index_path) as index_store:
        for record in index_store.inspect():
            _write_line(output, record)


if __name__ == '__main__':
    dagnav_main()
