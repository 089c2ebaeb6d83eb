"""
Pipeline Worker — Bootstrap Resolver Tests
"""

import os
import shutil
import sys
import tempfile
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from tests.fakes import VALID_BOOTSTRAP, write_bootstrap
from worker.bootstrap import REQUIRED_KEYS, load_identity, parse_properties
from worker.errors import ConfigFieldMissingError, ConfigMissingError, ConfigUnreadableError
from worker.runtime_info import RuntimeInfo


class TestParseProperties(unittest.TestCase):

    def test_separators(self):
        props = parse_properties("a=1\nb: 2\nc 3\nd = 4\n")
        self.assertEqual(props, {"a": "1", "b": "2", "c": "3", "d": "4"})

    def test_comments_and_blank_lines_skipped(self):
        props = parse_properties("# comment\n! also comment\n\n   \nkey=value\n")
        self.assertEqual(props, {"key": "value"})

    def test_continuation_lines(self):
        props = parse_properties("path=/opt/\\\n    sdc/\\\n    etc\n")
        self.assertEqual(props["path"], "/opt/sdc/etc")

    def test_escapes(self):
        props = parse_properties("tab=a\\tb\nuni=caf\\u00e9\nkey\\=with\\=eq=v\n")
        self.assertEqual(props["tab"], "a\tb")
        self.assertEqual(props["uni"], "café")
        self.assertEqual(props["key=with=eq"], "v")

    def test_later_key_wins(self):
        props = parse_properties("a=1\na=2\n")
        self.assertEqual(props["a"], "2")

    def test_only_cr_and_lf_end_lines(self):
        props = parse_properties("a=x y\vz\x1cw\r\nb=2\rc=3\n")
        self.assertEqual(props, {"a": "x y\vz\x1cw", "b": "2", "c": "3"})

    def test_form_feed_separates_key(self):
        props = parse_properties("\fsdc.id\fw1\n")
        self.assertEqual(props, {"sdc.id": "w1"})

    def test_empty_value(self):
        props = parse_properties("a=\n")
        self.assertEqual(props["a"], "")


class TestLoadIdentity(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="pw_bootstrap_")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_valid_file(self):
        write_bootstrap(self.tmp)
        bootstrap = load_identity(self.tmp)
        self.assertEqual(bootstrap.process_id, "w1")
        self.assertEqual(bootstrap.pipeline.owner, "u1")
        self.assertEqual(bootstrap.pipeline.name, "p1")
        self.assertEqual(bootstrap.pipeline.revision, "1")
        self.assertEqual(bootstrap.source.name, "sdc.properties")

    def test_values_are_trimmed(self):
        write_bootstrap(self.tmp, raw=(
            "sdc.id =  w1  \n"
            "cluster.pipeline.name=p1   \n"
            "cluster.pipeline.user=u1\n"
            "cluster.pipeline.rev=1\n"
        ))
        bootstrap = load_identity(self.tmp)
        self.assertEqual(bootstrap.process_id, "w1")
        self.assertEqual(bootstrap.pipeline.name, "p1")

    def test_undecodable_file(self):
        path = os.path.join(self.tmp, "sdc.properties")
        with open(path, "wb") as f:
            f.write(b"sdc.id=w\xff1\n")
        with self.assertRaises(ConfigUnreadableError) as ctx:
            load_identity(self.tmp)
        self.assertEqual(ctx.exception.path, path)
        self.assertIn(path, str(ctx.exception))

    def test_missing_file(self):
        with self.assertRaises(ConfigMissingError) as ctx:
            load_identity(self.tmp)
        self.assertIn("sdc property file doesn't exist", str(ctx.exception))
        self.assertTrue(os.path.isabs(ctx.exception.path))
        self.assertTrue(ctx.exception.path.endswith("sdc.properties"))

    def test_each_required_key_missing(self):
        for key in REQUIRED_KEYS:
            with self.subTest(key=key):
                props = {k: v for k, v in VALID_BOOTSTRAP.items() if k != key}
                write_bootstrap(self.tmp, props)
                with self.assertRaises(ConfigFieldMissingError) as ctx:
                    load_identity(self.tmp)
                self.assertEqual(ctx.exception.field_name, key)

    def test_blank_value_counts_as_missing(self):
        props = dict(VALID_BOOTSTRAP, **{"cluster.pipeline.rev": "   "})
        write_bootstrap(self.tmp, props)
        with self.assertRaises(ConfigFieldMissingError) as ctx:
            load_identity(self.tmp)
        self.assertEqual(ctx.exception.field_name, "cluster.pipeline.rev")

    def test_records_master_id(self):
        write_bootstrap(self.tmp)
        info = RuntimeInfo(config_dir=self.tmp)
        load_identity(self.tmp, info)
        self.assertEqual(info.master_id, "w1")

    def test_master_id_not_set_on_failure(self):
        props = {k: v for k, v in VALID_BOOTSTRAP.items() if k != "cluster.pipeline.user"}
        write_bootstrap(self.tmp, props)
        info = RuntimeInfo(config_dir=self.tmp)
        with self.assertRaises(ConfigFieldMissingError):
            load_identity(self.tmp, info)
        self.assertIsNone(info.master_id)

    def test_extra_keys_ignored(self):
        props = dict(VALID_BOOTSTRAP, **{"http.port": "18630"})
        write_bootstrap(self.tmp, props)
        self.assertEqual(load_identity(self.tmp).pipeline.name, "p1")


if __name__ == "__main__":
    unittest.main()
