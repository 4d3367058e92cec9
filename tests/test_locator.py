import tempfile
import unittest
from pathlib import Path

from scan_kit.backends.base import ModelHandle
from scan_kit.errors import ModelLoadError, ModelUnavailable
from scan_kit.locator import LocatorConfig, ModelLocator, list_model_files


class TestModelLocator(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)

    def _touch(self, rel: str, directory: bool = False) -> Path:
        path = self.root / rel
        if directory:
            path.mkdir(parents=True)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"")
        return path

    def _locator(self, loader=None, **kwargs) -> ModelLocator:
        return ModelLocator(LocatorConfig(search_roots=(self.root,), **kwargs), loader=loader or ModelHandle)

    def test_candidate_order(self) -> None:
        self._touch("other.onnx")
        self._touch("yolo11n.onnx")
        self._touch("extra.mlmodel")
        self._touch("yolo11n.mlpackage/Data/com.apple.CoreML/model.mlmodel")
        self._touch("yolo11n.mlpackage/Data/com.apple.CoreML/model.mlmodelc", directory=True)
        self._touch("yolov11n.mlmodelc", directory=True)

        candidates = list(self._locator().candidates())
        names = [c.path.relative_to(self.root).as_posix() for c in candidates]
        self.assertEqual(
            names,
            [
                "yolov11n.mlmodelc",
                "yolo11n.mlpackage/Data/com.apple.CoreML/model.mlmodelc",
                "yolo11n.mlpackage/Data/com.apple.CoreML/model.mlmodel",
                "extra.mlmodel",
                "yolo11n.onnx",
                "other.onnx",
            ],
        )
        self.assertEqual(candidates[1].package, self.root / "yolo11n.mlpackage")
        self.assertIsNone(candidates[0].package)

    def test_onnx_can_be_disabled(self) -> None:
        self._touch("yolo11n.onnx")
        self.assertEqual(list(self._locator(allow_onnx=False).candidates()), [])

    def test_first_loadable_candidate_wins(self) -> None:
        self._touch("yolov11n.mlmodelc", directory=True)
        self._touch("yolo11n.mlmodelc", directory=True)
        attempts = []

        def loader(path: Path) -> ModelHandle:
            attempts.append(path.name)
            if path.name == "yolov11n.mlmodelc":
                raise ModelLoadError("corrupt")
            return ModelHandle(path)

        handle, candidate = self._locator(loader).load()
        self.assertEqual(attempts, ["yolov11n.mlmodelc", "yolo11n.mlmodelc"])
        self.assertEqual(handle.path.name, "yolo11n.mlmodelc")
        self.assertEqual(candidate.path, handle.path)

    def test_missing_runtime_skips_candidate(self) -> None:
        self._touch("yolo11n.mlmodelc", directory=True)
        self._touch("yolo11n.onnx")

        def loader(path: Path) -> ModelHandle:
            if path.suffix == ".mlmodelc":
                raise ImportError("coremltools is required")
            return ModelHandle(path)

        handle, _ = self._locator(loader).load()
        self.assertEqual(handle.path.suffix, ".onnx")

    def test_nothing_loadable(self) -> None:
        with self.assertRaises(ModelUnavailable):
            self._locator().load()

    def test_list_model_files(self) -> None:
        self._touch("nested/a.mlmodel")
        self._touch("b.onnx")
        self._touch("notes.txt")
        found = [p.relative_to(self.root).as_posix() for p in list_model_files([self.root])]
        self.assertEqual(found, ["b.onnx", "nested/a.mlmodel"])


if __name__ == "__main__":
    unittest.main()
