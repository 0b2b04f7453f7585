"""
RFC 6902 JSON Patch generation and application.

Both helpers delegate to the ``jsonpatch`` library and work on plain
JSON-compatible values (dicts, lists, strings, numbers, booleans and None),
which is what the admission path encodes objects to.
"""

import copy
from typing import Any, Literal, NotRequired, TypedDict

import jsonpatch
from jsonpointer import JsonPointerException

JsonPatchOperation = TypedDict(
    "JsonPatchOperation",
    {
        "op": Literal["add", "remove", "replace", "move", "copy", "test"],
        "path": str,
        "value": NotRequired[Any],
        "from": NotRequired[str],
    },
)

JsonPatch = list[JsonPatchOperation]


class JsonPatchConflict(ValueError):
    """An operation cannot be applied to the document it targets."""


def make_patch(origin: Any, target: Any) -> JsonPatch:
    """
    Compute the JSON patch that transforms ``origin`` into ``target``.

    Args:
        origin: Source JSON document
        target: Desired JSON document

    Returns:
        Patch operations; empty when the documents are equal
    """
    # values in the generated operations reference ``target``
    return copy.deepcopy(jsonpatch.make_patch(origin, target).patch)


def apply_patch(document: Any, patch: JsonPatch) -> Any:
    """
    Apply a JSON patch to a copy of ``document``.

    Args:
        document: JSON document to patch (left untouched)
        patch: Patch operations, applied in order

    Returns:
        The patched document

    Raises:
        JsonPatchConflict: If an operation is malformed or cannot be applied
    """
    try:
        return jsonpatch.apply_patch(document, patch, in_place=False)
    except (jsonpatch.JsonPatchException, JsonPointerException) as e:
        raise JsonPatchConflict(str(e)) from e
