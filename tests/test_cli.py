import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr
from pathlib import Path
from unittest import mock

from dagnav.archive.path import FIXTURES_ENVIRONMENT_VARIABLE
from dagnav.cli import dagnav_main

from .test_utils import build_sample_dag, write_car


class CliTest(unittest.TestCase):
    """Test dagnav commands against an archive in a temporary project."""

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(os.path.realpath(self._tmpdir.name))
        (self.root / '.dagnav').mkdir()
        (self.root / 'fixtures').mkdir()

        self.builder, self.dag_root = build_sample_dag()
        self.archive = write_car(self.root / 'fixtures' / 'dir.car', [self.dag_root], self.builder.blocks)

        previous = Path.cwd()
        os.chdir(self.root)
        self.addCleanup(os.chdir, previous)

        environment = mock.patch.dict(os.environ)
        environment.start()
        os.environ.pop(FIXTURES_ENVIRONMENT_VARIABLE, None)
        self.addCleanup(environment.stop)

    def tearDown(self):
        self._tmpdir.cleanup()

    def _run(self, *argv: str) -> bytes:
        output = io.BytesIO()
        dagnav_main(list(argv), output)
        return output.getvalue()

    def _run_failing(self, *argv: str) -> str:
        stderr = io.StringIO()
        with redirect_stderr(stderr), self.assertRaises(SystemExit) as cm:
            dagnav_main(list(argv), io.BytesIO())
        self.assertEqual(1, cm.exception.code)
        return stderr.getvalue()

    def test_roots(self):
        self.assertEqual(f"{self.dag_root}\n".encode(), self._run('roots', 'dir.car'))

    def test_blocks_in_archive_order(self):
        expected = ''.join(f"{cid}\n" for cid, _ in self.builder.blocks)
        self.assertEqual(expected.encode(), self._run('blocks', 'dir.car'))

    def test_ls(self):
        self.assertEqual(
            b'a.txt\nb.txt\nsub\nsub/ascii.txt\nsub/hello.txt\n',
            self._run('ls', 'dir.car'))

    def test_ls_subdirectory_with_cids(self):
        lines = self._run('ls', '--cids', 'dir.car', 'sub').decode().splitlines()

        self.assertEqual(2, len(lines))
        cid, path = lines[0].split(' ')
        self.assertEqual('sub/ascii.txt', path)
        self.assertEqual(self._run('cid', 'dir.car', 'sub/ascii.txt').decode().strip(), cid)

    def test_cid_of_root(self):
        self.assertEqual(f"{self.dag_root}\n".encode(), self._run('cid', 'dir.car'))

    def test_cat_block(self):
        self.assertEqual(b'bbb', self._run('cat-block', 'dir.car', 'b.txt'))

    def test_format(self):
        value = json.loads(self._run('format', 'dir.car', 'dag-json', 'sub'))
        self.assertEqual(['hello.txt', 'ascii.txt'], [link['Name'] for link in value['Links']])

    def test_explicit_paths(self):
        self.assertEqual(b'bbb', self._run('cat-block', './fixtures/dir.car', 'b.txt'))
        self.assertEqual(b'bbb', self._run('cat-block', str(self.archive), 'b.txt'))

    def test_fixtures_option(self):
        other = self.root / 'other'
        other.mkdir()
        write_car(other / 'copy.car', [self.dag_root], self.builder.blocks)

        self.assertEqual(b'bbb', self._run('--fixtures', str(other), 'cat-block', 'copy.car', 'b.txt'))

    def test_unsupported_codec(self):
        self.assertIn('invalid encoding: foo', self._run_failing('format', 'dir.car', 'foo'))

    def test_missing_link(self):
        self.assertIn("missing segment 'nope'", self._run_failing('cid', 'dir.car', 'sub/nope'))

    def test_cid_below_leaf(self):
        self.assertIn('is not a directory', self._run_failing('cid', 'dir.car', 'a.txt/x'))

    def test_missing_archive(self):
        self.assertIn('cannot open archive', self._run_failing('roots', 'missing.car'))

    def test_inspect_index_not_configured(self):
        self.assertIn('index.path is not set', self._run_failing('inspect-index'))

    def test_block_index(self):
        (self.root / '.dagnav' / 'settings.toml').write_text('[index]\npath = ".dagnav/index"\n')

        first = self._run('ls', 'dir.car')
        second = self._run('ls', 'dir.car')
        records = self._run('inspect-index').decode().splitlines()

        self.assertEqual(first, second)
        self.assertTrue((self.root / '.dagnav' / 'index').is_dir())
        self.assertEqual(len(self.builder.blocks), sum(1 for line in records if line.startswith('block ')))
        self.assertTrue(any(line.startswith('archive-property ') for line in records))


if __name__ == '__main__':
    unittest.main()
