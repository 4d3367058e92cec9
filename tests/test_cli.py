import contextlib
import io
import json
import logging
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from scan_kit import cli


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        patcher = mock.patch.object(cli, "setup_logging")
        patcher.start()
        self.addCleanup(patcher.stop)

    def run_main(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = cli.main(argv)
        return code, out.getvalue(), err.getvalue()

    def test_models_lists_load_order(self) -> None:
        (self.root / "yolo11n.mlmodelc").mkdir()
        (self.root / "extra.onnx").write_bytes(b"")
        code, out, _ = self.run_main(["models", "--models-dir", str(self.root)])
        self.assertEqual(code, 0)
        order = out.split("Load order:")[1]
        self.assertLess(order.index("yolo11n.mlmodelc"), order.index("extra.onnx"))

    def test_resolve_config_overrides(self) -> None:
        args = cli.build_parser().parse_args(
            ["detect", "img.jpg", "--models-dir", "a", "--models-dir", "b", "--box-format", "xyxy", "--no-fallback"]
        )
        cfg = cli.resolve_config(args)
        self.assertEqual(cfg.locator.search_roots, (Path("a"), Path("b")))
        self.assertEqual(cfg.decoder.box_format, "xyxy")
        self.assertFalse(cfg.fallback.enabled)

    def test_missing_config(self) -> None:
        code, _, err = self.run_main(["models", "--config", str(self.root / "nope.json")])
        self.assertEqual(code, 2)
        self.assertIn("not found", err)

    def test_invalid_config(self) -> None:
        path = self.root / "detector.json"
        path.write_text(json.dumps({"decoder": {"box_format": "polar"}}), encoding="utf-8")
        code, _, err = self.run_main(["models", "--config", str(path)])
        self.assertEqual(code, 2)
        self.assertIn("box_format", err)

    def test_unreadable_image(self) -> None:
        code, _, err = self.run_main(["detect", str(self.root / "missing.jpg"), "--models-dir", str(self.root)])
        self.assertEqual(code, 2)
        self.assertIn("Could not read image", err)


class TestJsonLineFormatter(unittest.TestCase):
    def test_quotes_and_tracebacks_stay_valid_json(self) -> None:
        try:
            raise ValueError('bad "path"')
        except ValueError:
            record = logging.LogRecord(
                "scan_kit.service", logging.ERROR, __file__, 1, 'Could not read "%s"', ("C:\\img.png",), sys.exc_info()
            )
        line = cli.JsonLineFormatter().format(record)

        self.assertNotIn("\n", line)
        payload = json.loads(line)
        self.assertEqual(payload["level"], "ERROR")
        self.assertEqual(payload["logger"], "scan_kit.service")
        self.assertTrue(payload["message"].startswith('Could not read "C:\\img.png"'))
        self.assertIn('ValueError: bad "path"', payload["message"])


if __name__ == "__main__":
    unittest.main()
