import json
import tempfile
import unittest
from pathlib import Path

from scan_kit.metadata import (
    box_format_from_metadata,
    class_names_from_metadata,
    load_class_names,
    parse_names_string,
    read_package_metadata,
    resolve_label,
)


class TestResolveLabel(unittest.TestCase):
    def test_in_range(self) -> None:
        self.assertEqual(resolve_label(1, ("person", "bicycle", "car")), "bicycle")

    def test_out_of_range(self) -> None:
        self.assertEqual(resolve_label(5, ("person", "bicycle", "car")), "class_5")

    def test_no_table(self) -> None:
        self.assertEqual(resolve_label(3, None), "class_3")

    def test_no_class_index(self) -> None:
        self.assertEqual(resolve_label(None, ("person",)), "Object")


class TestClassNames(unittest.TestCase):
    def _tmpdir(self) -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        return Path(tmpdir.name)

    def test_parse_names_string(self) -> None:
        names = parse_names_string("{0: 'person', 1: 'bicycle', 2: 'traffic light'}")
        self.assertEqual(names, ("person", "bicycle", "traffic light"))
        self.assertEqual(parse_names_string("{}"), ())

    def test_metadata_variants(self) -> None:
        self.assertEqual(class_names_from_metadata({"names": "{0: 'a', 1: 'b'}"}), ("a", "b"))
        self.assertEqual(class_names_from_metadata({"names": ["a", "b"]}), ("a", "b"))
        self.assertEqual(class_names_from_metadata({"names": {"1": "b", "0": "a"}}), ("a", "b"))
        self.assertIsNone(class_names_from_metadata({"names": "{}"}))
        self.assertIsNone(class_names_from_metadata({}))
        self.assertIsNone(class_names_from_metadata(None))

    def test_box_format_from_metadata(self) -> None:
        self.assertEqual(box_format_from_metadata({"box_format": " xyxy "}), "xyxy")
        self.assertIsNone(box_format_from_metadata({"box_format": ""}))
        self.assertIsNone(box_format_from_metadata({}))

    def test_package_metadata_json(self) -> None:
        pkg = self._tmpdir() / "yolo11n.mlpackage"
        data = pkg / "Data" / "com.apple.CoreML"
        data.mkdir(parents=True)
        (data / "Metadata.json").write_text(
            json.dumps({"MLModelCreatorDefinedKey": {"names": "{0: 'person', 1: 'bicycle'}", "stride": "32"}}),
            encoding="utf-8",
        )
        meta = read_package_metadata(pkg)
        self.assertEqual(meta["stride"], "32")
        self.assertEqual(load_class_names(pkg), ("person", "bicycle"))
        self.assertEqual(load_class_names(data / "Metadata.json"), ("person", "bicycle"))

    def test_missing_or_broken_package_metadata(self) -> None:
        pkg = self._tmpdir() / "x.mlpackage"
        self.assertEqual(read_package_metadata(pkg), {})
        data = pkg / "Data" / "com.apple.CoreML"
        data.mkdir(parents=True)
        (data / "Metadata.json").write_text("{not json", encoding="utf-8")
        with self.assertLogs("scan_kit.metadata", level="WARNING"):
            self.assertEqual(read_package_metadata(pkg), {})

    def test_names_yaml(self) -> None:
        path = self._tmpdir() / "metadata.yaml"
        path.write_text(
            "description: test\nnames:\n  0: person\n  1: 'bicycle'\n  3: car\nstride: 32\n",
            encoding="utf-8",
        )
        self.assertEqual(load_class_names(path), ("person", "bicycle", "class_2", "car"))


if __name__ == "__main__":
    unittest.main()
