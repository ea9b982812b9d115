"""
variance_batch.continuation -- Continuation token for stateless resumption.

Responsibility:
    The interactive driver keeps no server-side state between rounds.
    Everything a round needs (selection, next window index, cumulative
    counts and summaries) travels in request parameters.  This module
    parses those parameters into a typed ContinuationToken and renders
    the next round's parameters back out.

Invariants enforced:
    - Parsing is all-or-nothing: any malformed or stale field raises
      ParseError; a token is never partially populated or reset to empty.
    - A ``token_version`` other than the configured one is rejected.
      An absent version is accepted (first submission from the page).
    - A ``variant`` that does not match the endpoint is rejected.

Wire formats:
    ``selected_variances`` is canonically a JSON array of tagged objects
    (``{"kind": "rate_correction", ...}``).  The older comma-joined,
    pipe-delimited tuple format is still accepted on input and
    normalized; output is always JSON.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from variance_batch.domain.types import (
    ITEM_TYPES,
    BatchProgress,
    BatchVariant,
    ErrorRecord,
    SelectionItem,
)
from variance_kernel.exceptions import ParseError


def encode_selection(items: tuple[SelectionItem, ...] | list[SelectionItem]) -> str:
    """Canonical JSON encoding of a selection."""
    return json.dumps([item.to_wire() for item in items], separators=(",", ":"))


def decode_selection(raw: str | None, variant: BatchVariant) -> tuple[SelectionItem, ...]:
    """
    Decode ``selected_variances`` in either wire format.

    Raises:
        ParseError: on malformed JSON, wrong item kind, or bad tuples.
    """
    if raw is None or not raw.strip():
        return ()
    item_type = ITEM_TYPES[variant]
    text = raw.strip()

    if not text.startswith("["):
        return tuple(item_type.from_legacy(part) for part in text.split(","))

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError("selected_variances", f"invalid JSON: {exc.msg}") from None
    if not isinstance(data, list):
        raise ParseError("selected_variances", "expected a JSON array")

    items: list[SelectionItem] = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ParseError("selected_variances", "entries must be objects")
        kind = entry.get("kind")
        if kind != variant.value:
            raise ParseError(
                "selected_variances",
                f"expected kind {variant.value!r}, got {kind!r}",
            )
        items.append(item_type.from_wire(entry))
    return tuple(items)


def _parse_count(params: Mapping[str, Any], name: str) -> int:
    raw = params.get(name)
    if raw is None or str(raw).strip() == "":
        return 0
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ParseError(name, f"not an integer: {raw!r}") from None
    if value < 0:
        raise ParseError(name, f"must be non-negative, got {value}")
    return value


def _parse_json_list(params: Mapping[str, Any], name: str) -> list[Any]:
    raw = params.get(name)
    if raw is None or str(raw).strip() == "":
        return []
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        raise ParseError(name, "invalid JSON") from None
    if not isinstance(data, list):
        raise ParseError(name, "expected a JSON array")
    return data


@dataclass(frozen=True)
class ContinuationToken:
    """Selection plus cumulative progress, as carried between rounds."""

    version: int
    variant: BatchVariant
    selection: tuple[SelectionItem, ...]
    progress: BatchProgress

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        variant: BatchVariant,
        expected_version: int,
    ) -> ContinuationToken:
        """
        Parse a round's inbound parameters.

        Raises:
            ParseError: if any field is malformed, the version is stale,
                or the variant does not match.
        """
        raw_version = params.get("token_version")
        if raw_version is not None and str(raw_version).strip() != "":
            version = _parse_count(params, "token_version")
            if version != expected_version:
                raise ParseError(
                    "token_version",
                    f"stale token version {version}, expected {expected_version}",
                )

        raw_variant = params.get("variant")
        if raw_variant and raw_variant != variant.value:
            raise ParseError(
                "variant", f"expected {variant.value!r}, got {raw_variant!r}"
            )

        selection = decode_selection(params.get("selected_variances"), variant)

        errors = tuple(
            ErrorRecord.from_dict(entry)
            for entry in _parse_json_list(params, "previous_errors")
        )
        updated = _parse_json_list(params, "previous_updated")
        if not all(isinstance(entry, dict) for entry in updated):
            raise ParseError("previous_updated", "entries must be objects")

        progress = BatchProgress(
            batch_index=_parse_count(params, "batch_index"),
            success_count=_parse_count(params, "success_count"),
            error_count=_parse_count(params, "error_count"),
            errors=errors,
            updated=tuple(updated),
        )
        return cls(
            version=expected_version,
            variant=variant,
            selection=selection,
            progress=progress,
        )

    def to_params(self) -> dict[str, str]:
        """Parameters for the next round (``processing=true``)."""
        return {
            "selected_variances": encode_selection(self.selection),
            "batch_index": str(self.progress.batch_index),
            "success_count": str(self.progress.success_count),
            "error_count": str(self.progress.error_count),
            "previous_errors": json.dumps(
                [err.to_dict() for err in self.progress.errors]
            ),
            "previous_updated": json.dumps(list(self.progress.updated)),
            "processing": "true",
            "token_version": str(self.version),
            "variant": self.variant.value,
        }


def terminal_params(progress: BatchProgress) -> dict[str, str]:
    """Parameters for the summary page once every window is processed."""
    params = {
        "updateSuccess": "true",
        "successCount": str(progress.success_count),
        "errorCount": str(progress.error_count),
        "updatedRecords": json.dumps(list(progress.updated)),
    }
    if progress.error_count > 0:
        params["errors"] = json.dumps([err.to_dict() for err in progress.errors])
    return params
