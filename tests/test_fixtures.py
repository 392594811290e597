from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from plots.errors import ValidationError
from plots.fixtures import load_fixture_file
from plots.models import PlotStatus

ROOT = Path(__file__).resolve().parents[1]


def test_bundled_fixture_file_is_valid() -> None:
    drafts = load_fixture_file(ROOT / "fixtures" / "sample_plots.yaml")

    assert [draft.plot_number for draft in drafts] == ["P006", "P007", "P008"]
    assert drafts[1].status is PlotStatus.RESERVED
    assert drafts[1].price == Decimal("69500.5")
    assert drafts[2].status is PlotStatus.AVAILABLE
    assert drafts[2].description is None


def test_fixture_requires_plots_list(tmp_path: Path) -> None:
    path = tmp_path / "plots.yaml"
    path.write_text("items: []\n", encoding="utf-8")

    with pytest.raises(ValidationError, match="plots"):
        load_fixture_file(path)


def test_fixture_entries_use_creation_rules(tmp_path: Path) -> None:
    path = tmp_path / "plots.yaml"
    path.write_text(
        "plots:\n"
        "  - plotNumber: F001\n"
        "    location: Orchard Lane\n"
        "    size: 800 sq ft\n"
        "    price: 1000\n"
        "  - plotNumber: F002\n"
        "    location: Orchard Lane\n"
        "    size: 800 sq ft\n"
        "    price: -3\n",
        encoding="utf-8",
    )

    with pytest.raises(ValidationError) as excinfo:
        load_fixture_file(path)

    assert "#2" in excinfo.value.message
    assert any("price" in detail for detail in excinfo.value.details)
