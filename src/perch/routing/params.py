"""Path parameter converters for segments like ``{id:int}``."""

# (regex_pattern, python_type) for each supported converter
CONVERTERS: dict[str, tuple[str, type]] = {
    "str": (r"[^/]+", str),
    "int": (r"\d+", int),
    "path": (r".+", str),
}


def convert_param(value: str, param_type: str) -> str | int:
    """Convert a captured path parameter to its converter's type.

    Raises ``KeyError`` if *param_type* is not a registered converter.
    """
    _, target_type = CONVERTERS[param_type]
    return target_type(value)
