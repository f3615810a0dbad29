"""
GLTF Format Utilities

Helper functions for reading pygltflib objects and plain glTF JSON dicts the
same way. Morph targets, attributes and extension payloads come back from
pygltflib as either dataclasses or dicts depending on how the file was built.
"""

from typing import Any, Iterator, Optional, Tuple


def get_field(obj: Any, field_name: str, default: Any = None) -> Any:
    """
    Get field from either dict or object format

    Args:
        obj: Dict or object to extract field from
        field_name: Name of field to extract
        default: Default value if field not found

    Returns:
        Field value or default
    """
    if obj is None:
        return default

    if isinstance(obj, dict):
        value = obj.get(field_name, default)
        return value if value is not None else default

    if hasattr(obj, field_name):
        value = getattr(obj, field_name)
        # pygltflib leaves unset optional fields as None
        return value if value is not None else default

    return default


def get_list_field(obj: Any, field_name: str, default: Optional[list] = None) -> list:
    """
    Get list field, handling both dict and object formats

    Args:
        obj: Dict or object to extract field from
        field_name: Name of list field to extract
        default: Default value if field not found

    Returns:
        List value or default (empty list if default is None)
    """
    if default is None:
        default = []

    value = get_field(obj, field_name, default)
    if not isinstance(value, list):
        return default
    return value


def get_extension(obj: Any, name: str) -> Optional[dict]:
    """Return an extension payload (e.g. KHR_texture_transform) or None."""
    extensions = get_field(obj, 'extensions', {})
    if not isinstance(extensions, dict):
        return None
    return extensions.get(name)


def iter_attribute_items(attributes: Any) -> Iterator[Tuple[str, int]]:
    """
    Yield (semantic, accessor_index) pairs of a primitive's attributes or a morph target

    Args:
        attributes: pygltflib Attributes object or dict

    Yields:
        (semantic, index) tuples for every populated attribute
    """
    if attributes is None:
        return
    items = attributes.items() if isinstance(attributes, dict) else vars(attributes).items()
    for semantic, index in items:
        if isinstance(index, int) and not isinstance(index, bool):
            yield semantic, index
