import json
import tempfile
import unittest
from pathlib import Path

from scan_kit.backends.base import ModelHandle
from scan_kit.backends.coreml_backend import CoreMLBackend, InputDescription, read_compiled_description


def _compiled_dir(root: Path, payload) -> Path:
    model_dir = root / "yolo11n.mlmodelc"
    model_dir.mkdir()
    (model_dir / "metadata.json").write_text(json.dumps(payload), encoding="utf-8")
    return model_dir


class TestCompiledDescription(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)

    def test_reads_input_schema_and_metadata(self) -> None:
        model_dir = _compiled_dir(
            self.root,
            [
                {
                    "inputSchema": [
                        {"name": "input_1", "type": "Image", "width": "416", "height": "320"},
                        {"name": "iouThreshold", "type": "Double"},
                        {"name": "confidenceThreshold", "type": "Double"},
                    ],
                    "userDefinedMetadata": {"names": "{0: 'person'}", "box_format": "xyxy"},
                }
            ],
        )
        inputs, metadata = read_compiled_description(model_dir)
        self.assertEqual(
            inputs,
            [
                InputDescription("input_1", True, (416, 320)),
                InputDescription("iouThreshold"),
                InputDescription("confidenceThreshold"),
            ],
        )
        self.assertEqual(metadata["box_format"], "xyxy")

    def test_missing_or_broken_file(self) -> None:
        empty = self.root / "empty.mlmodelc"
        empty.mkdir()
        self.assertEqual(read_compiled_description(empty), ([], {}))

        broken = self.root / "broken.mlmodelc"
        broken.mkdir()
        (broken / "metadata.json").write_text("{not json", encoding="utf-8")
        with self.assertLogs("scan_kit.backends.coreml_backend", level="WARNING"):
            self.assertEqual(read_compiled_description(broken), ([], {}))

    def test_compiled_inputs_enable_extra_inputs(self) -> None:
        model_dir = _compiled_dir(
            self.root,
            [
                {
                    "inputSchema": [
                        {"name": "input_1", "type": "Image", "width": 416, "height": 320},
                        {"name": "confidenceThreshold", "type": "Double"},
                    ]
                }
            ],
        )
        # Skip __init__ so no CoreML runtime is needed.
        handle = CoreMLBackend.__new__(CoreMLBackend)
        ModelHandle.__init__(handle, model_dir)
        handle._use_inputs(read_compiled_description(model_dir)[0])

        self.assertEqual(handle.input_name, "input_1")
        self.assertEqual(handle.input_size, (416, 320))
        self.assertTrue(handle.accepts("confidenceThreshold"))
        self.assertFalse(handle.accepts("iouThreshold"))


if __name__ == "__main__":
    unittest.main()
