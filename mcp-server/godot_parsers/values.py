"""
Godot Variant Values
Parses and formats the value grammar shared by .tscn and .tres files:
scalars, typed literals (Vector2, Color, ExtResource...), arrays and dictionaries.
"""

import math
import re
from dataclasses import dataclass, asdict
from typing import Any, Optional

# Marker key carrying the type name of a tagged value in JSON form
TYPE_KEY = "_type"


@dataclass(frozen=True)
class Vector2:
    x: float
    y: float


@dataclass(frozen=True)
class Vector3:
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class Color:
    r: float
    g: float
    b: float
    a: float = 1.0


@dataclass(frozen=True)
class ExtResource:
    id: str


@dataclass(frozen=True)
class SubResource:
    id: str


@dataclass(frozen=True)
class NodePath:
    path: str


class RawLiteral(str):
    """
    Unparsed value text such as Rect2(0, 0, 8, 8), PackedInt32Array(1, 2)
    or &"idle". Written back verbatim, while a plain str is always quoted.
    """

    def __repr__(self) -> str:
        return f'RawLiteral({str.__repr__(self)})'


TAGGED_CLASSES = (Vector2, Vector3, Color, ExtResource, SubResource, NodePath)
TAGGED_TYPES = {cls.__name__: cls for cls in TAGGED_CLASSES}
# JSON tag for RawLiteral: {"_type": "Literal", "text": "Rect2(0, 0, 8, 8)"}
LITERAL_TYPE = "Literal"

INT_PATTERN = re.compile(r'^[+-]?\d+$')
FLOAT_PATTERN = re.compile(r'^[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?$')
# Godot 4 writes negative infinity as inf_neg; -inf is accepted on input too
SPECIAL_FLOATS = {'inf': math.inf, 'inf_neg': -math.inf, '-inf': -math.inf, 'nan': math.nan}

# A continuation line never starts a new section
SECTION_PATTERN = re.compile(r'^\[(?:gd_scene|gd_resource|ext_resource|sub_resource|node|connection|editable|resource)[\s\]]')

_ESCAPE_PATTERN = re.compile(r'\\(["\\])')

_OPENERS = '[{('
_CLOSERS = ']})'


def parse_value(text: str) -> Any:
    """Parse the right-hand side of a property assignment."""
    text = text.strip()

    if text == 'null':
        return None
    if text == 'true':
        return True
    if text == 'false':
        return False

    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return unescape_string(text[1:-1])

    number = parse_number(text)
    if number is not None:
        return number

    if text.endswith(')'):
        literal = _parse_constructor(text)
        if literal is not None:
            return literal

    if text.startswith('['):
        return parse_array(text)
    if text.startswith('{'):
        return parse_dictionary(text)

    # Rect2(...), Transform3D(...), &"name" and friends stay opaque
    return RawLiteral(text)


def parse_number(text: str) -> Optional[int | float]:
    """Return an int or float for a numeric literal, None otherwise."""
    if INT_PATTERN.match(text):
        try:
            return int(text)
        except ValueError:  # beyond the int string-conversion limit
            return float(text)
    if FLOAT_PATTERN.match(text):
        return float(text)
    if text in SPECIAL_FLOATS:
        return SPECIAL_FLOATS[text]
    return None


def unescape_string(text: str) -> str:
    return _ESCAPE_PATTERN.sub(r'\1', text)


def escape_string(text: str) -> str:
    return text.replace('\\', '\\\\').replace('"', '\\"')


def _parse_constructor(text: str) -> Any:
    name, _, inner = text[:-1].partition('(')
    name = name.strip()

    if name in ('ExtResource', 'SubResource', 'NodePath'):
        return TAGGED_TYPES[name](inner.strip().replace('"', ''))

    if name not in ('Vector2', 'Vector3', 'Color'):
        return None

    args = [arg.strip() for arg in inner.split(',')]
    numbers = [parse_number(arg) for arg in args]
    if any(n is None for n in numbers):
        return None

    if name == 'Vector2' and len(numbers) == 2:
        return Vector2(*numbers)
    if name == 'Vector3' and len(numbers) == 3:
        return Vector3(*numbers)
    if name == 'Color' and len(numbers) in (3, 4):
        return Color(*numbers)
    return None


def split_top_level(text: str, separator: str = ',', maxsplit: int = -1) -> list[str]:
    """
    Split on separator characters that sit outside strings and brackets.
    Nesting is tracked across [], {} and (), so Vector2(1, 2) or [1, [2, 3]]
    stay whole.
    """
    parts = []
    current = []
    depth = 0
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            current.append(char)
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
        elif char == separator and depth == 0 and (maxsplit < 0 or len(parts) < maxsplit):
            parts.append(''.join(current))
            current = []
            continue
        current.append(char)

    parts.append(''.join(current))
    return parts


def is_balanced(text: str) -> bool:
    """True when every bracket and string opened in text is closed again."""
    depth = 0
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
    return depth <= 0 and not in_string


def join_continuation(first: str, lines: list[str], index: int) -> tuple[str, int]:
    """
    Extend a property value that is still open at end of line with the lines
    that follow it, starting at lines[index]. Returns the value text and the
    index of the first line not consumed.

    A value that is still open at end of input, or that would swallow a
    section header, is left as the single line it started on.
    """
    raw_lines = [first]
    position = index
    while not is_balanced('\n'.join(raw_lines)):
        if position >= len(lines):
            return first, index
        line = lines[position].rstrip('\r')
        if SECTION_PATTERN.match(line):
            return first, index
        raw_lines.append(line)
        position += 1
    return '\n'.join(raw_lines), position


def parse_array(text: str) -> list:
    text = text.strip()
    if not (text.startswith('[') and text.endswith(']')):
        return []
    inner = text[1:-1].strip()
    if not inner:
        return []
    return [parse_value(item) for item in split_top_level(inner) if item.strip()]


def parse_dictionary(text: str) -> dict:
    text = text.strip()
    if not (text.startswith('{') and text.endswith('}')):
        return {}
    inner = text[1:-1].strip()
    if not inner:
        return {}

    result = {}
    for pair in split_top_level(inner):
        if not pair.strip():
            continue
        key_value = split_top_level(pair, ':', maxsplit=1)
        if len(key_value) < 2:
            continue  # no colon, drop
        key = parse_value(key_value[0])
        value = parse_value(key_value[1])
        try:
            hash(key)
        except TypeError:
            key = str(key)
        result[key] = value
    return result


# ============ Formatting ============

def format_number(value: int | float) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return 'nan'
    if math.isinf(value):
        return 'inf' if value > 0 else 'inf_neg'
    return repr(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_value(value: Any) -> str:
    """Render a value as it appears on the right-hand side of a property line."""
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, RawLiteral):
        return str(value)
    if isinstance(value, str):
        return f'"{escape_string(value)}"'
    if isinstance(value, (list, tuple)):
        return '[' + ', '.join(format_value(v) for v in value) + ']'

    if isinstance(value, Vector2):
        return f'Vector2({format_number(value.x)}, {format_number(value.y)})'
    if isinstance(value, Vector3):
        return f'Vector3({format_number(value.x)}, {format_number(value.y)}, {format_number(value.z)})'
    if isinstance(value, Color):
        return (
            f'Color({format_number(value.r)}, {format_number(value.g)}, '
            f'{format_number(value.b)}, {format_number(value.a)})'
        )
    if isinstance(value, ExtResource):
        return f'ExtResource("{value.id}")'
    if isinstance(value, SubResource):
        return f'SubResource("{value.id}")'
    if isinstance(value, NodePath):
        return f'NodePath("{value.path}")'

    if isinstance(value, dict):
        if value.get(TYPE_KEY) == LITERAL_TYPE and isinstance(value.get('text'), str):
            return value['text']
        tagged = _tagged_from_dict(value)
        if tagged is not None:
            return format_value(tagged)
        pairs = [
            f'{format_value(k)}: {format_value(v)}'
            for k, v in value.items()
            if not (isinstance(k, str) and k.startswith(TYPE_KEY))
        ]
        return '{' + ', '.join(pairs) + '}'

    return str(value)


def _tagged_from_dict(obj: dict) -> Any:
    """Recognize dicts that stand for a typed literal, explicitly tagged or by shape."""
    type_name = obj.get(TYPE_KEY)
    if type_name in TAGGED_TYPES:
        cls = TAGGED_TYPES[type_name]
        fields = {k: v for k, v in obj.items() if k in cls.__dataclass_fields__}
        try:
            return cls(**fields)
        except TypeError:
            return None

    keys = set(obj)
    if keys == {'x', 'y'} and _is_number(obj['x']) and _is_number(obj['y']):
        return Vector2(obj['x'], obj['y'])
    if keys == {'x', 'y', 'z'} and all(_is_number(obj[k]) for k in 'xyz'):
        return Vector3(obj['x'], obj['y'], obj['z'])
    if {'r', 'g', 'b'} <= keys and all(_is_number(obj[k]) for k in 'rgb'):
        alpha = obj.get('a')
        return Color(obj['r'], obj['g'], obj['b'], alpha if _is_number(alpha) else 1.0)
    return None


# ============ JSON interop ============

def to_json(value: Any) -> Any:
    """Convert a parsed value into plain JSON-compatible data."""
    if isinstance(value, TAGGED_CLASSES):
        return {TYPE_KEY: type(value).__name__, **asdict(value)}
    if isinstance(value, RawLiteral):
        return {TYPE_KEY: LITERAL_TYPE, 'text': str(value)}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, dict):
        return {
            k if isinstance(k, str) else format_value(k): to_json(v)
            for k, v in value.items()
        }
    if isinstance(value, float) and not math.isfinite(value):
        return format_number(value)
    return value


def from_json(value: Any) -> Any:
    """Rebuild tagged values from JSON data produced by to_json or a tool caller."""
    if isinstance(value, list):
        return [from_json(v) for v in value]
    if isinstance(value, dict):
        if value.get(TYPE_KEY) == LITERAL_TYPE and isinstance(value.get('text'), str):
            return RawLiteral(value['text'])
        if value.get(TYPE_KEY) in TAGGED_TYPES:
            tagged = _tagged_from_dict(value)
            if tagged is not None:
                return tagged
        return {k: from_json(v) for k, v in value.items()}
    return value
