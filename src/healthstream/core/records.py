# records.py
# SPDX-License-Identifier: MIT
"""Turn wrapped record documents into plain dicts."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from typing import Any

from .log import get_logger

__all__ = ["parse_record", "record_type", "type_filter"]

log = get_logger(__name__)

RECORD_TAG = "Record"
METADATA_TAG = "MetadataEntry"


def _put_coalescing(m: dict[str, Any], k: str, v: str) -> None:
    """Accumulate duplicate metadata keys as lists, preserving order."""
    if k in m:
        if isinstance(m[k], list):
            m[k].append(v)
        else:
            m[k] = [m[k], v]
    else:
        m[k] = v


def parse_record(document: str) -> dict[str, Any] | None:
    """Parse one wrapped ``<Record>`` document into a flat dict.

    Record attributes become top-level keys (``type``, ``value``,
    ``startDate`` ...). ``MetadataEntry`` children are collected under
    ``metadata`` as ``key -> value``; repeated keys become lists.

    Args:
        document (str): Prolog + root wrapper around a single record.

    Returns:
        Optional[Dict[str, Any]]: The record, or None when the text is not
        well-formed XML or holds no record element.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        log.debug("Unparsable record fragment: %s", exc)
        return None

    elem = root if root.tag == RECORD_TAG else root.find(RECORD_TAG)
    if elem is None:
        return None

    out: dict[str, Any] = dict(elem.attrib)
    metadata: dict[str, Any] = {}
    for entry in elem.iter(METADATA_TAG):
        key = entry.attrib.get("key")
        if key:
            _put_coalescing(metadata, key, entry.attrib.get("value", ""))
    if metadata:
        out["metadata"] = metadata
    return out


def record_type(record: Mapping[str, Any]) -> str | None:
    value = record.get("type")
    return str(value) if value is not None else None


def type_filter(types: Iterable[str] | None):
    """Return a predicate keeping records whose ``type`` is in ``types``.

    An empty or missing ``types`` keeps everything.
    """
    wanted = frozenset(t for t in (types or ()) if t)
    if not wanted:
        return lambda record: True
    return lambda record: record_type(record) in wanted
