from __future__ import annotations

from collections.abc import Iterable

import pytest

PROLOG = '<?xml version="1.0" encoding="UTF-8"?>'


def record_xml(rtype: str, value: str = "1", **attrs: str) -> str:
    extra = "".join(f' {k}="{v}"' for k, v in attrs.items())
    return (
        f'<Record type="{rtype}" sourceName="Watch" unit="count" '
        f'startDate="2024-01-01 08:00:00 +0000" value="{value}"{extra}>'
        f'<MetadataEntry key="HKWasUserEntered" value="0"/>'
        f"</Record>"
    )


def make_export(records: Iterable[str], *, header: str = "<ExportDate value=\"2024-01-02\"/>") -> bytes:
    """Build a small export document around the given record elements."""
    body = "\n ".join(records)
    doc = f'{PROLOG}\n<HealthData locale="en_US">\n {header}\n {body}\n</HealthData>\n'
    return doc.encode("utf-8")


@pytest.fixture
def step_records() -> list[str]:
    return [record_xml("HKQuantityTypeIdentifierStepCount", str(i)) for i in range(1, 6)]


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep
