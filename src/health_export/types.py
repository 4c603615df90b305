"""Shared type aliases for export documents and write jobs."""

from __future__ import annotations

from pathlib import Path
from typing import TypeAlias

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)
JSONObject: TypeAlias = dict[str, JSONValue]

# (result key, destination, rendered document text)
ExportJob: TypeAlias = tuple[str, Path, str]
# Result key -> whether the write succeeded
WriteResults: TypeAlias = dict[str, bool]
