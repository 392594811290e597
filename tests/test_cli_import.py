"""Regression tests for importing the data layer without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class CLIImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._saved = {
            name: module
            for name, module in sys.modules.items()
            if name == "plots" or name.startswith("plots.")
        }

    def tearDown(self) -> None:
        self._clear_plots_modules()
        sys.modules.update(self._saved)

    @staticmethod
    def _clear_plots_modules() -> None:
        for name in [m for m in list(sys.modules.keys()) if m == "plots" or m.startswith("plots.")]:
            sys.modules.pop(name, None)

    def test_import_database_without_fastapi(self) -> None:
        """Scripts that only touch the store must not pull in the HTTP gateway."""

        self._clear_plots_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None
        try:
            database_module = importlib.import_module("plots.database")
            self.assertTrue(hasattr(database_module, "Database"))

            package = sys.modules.get("plots")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "Database"))
            self.assertNotIn("plots.api", sys.modules)
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
