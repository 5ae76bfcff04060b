"""
TRES Resource Parser
Line-oriented reader/writer for the [resource] section of Godot .tres files.
Shares the value grammar with the scene parser.
"""

import re
from typing import Any, Optional

from .values import parse_value, format_value, join_continuation

HEADER_PATTERN = re.compile(r'^\[gd_resource\s+(.+)\]$')
ATTRIBUTE_PATTERN = re.compile(r'(\w+)=(?:"([^"]*)"|([^\s\]]+))')


def parse_tres(content: str) -> dict[str, Any]:
    """
    Parse a .tres file into a flat dict of its [resource] properties.
    The header attributes land under "_header"; other sections are ignored.
    """
    result: dict[str, Any] = {}
    section = ""
    lines = content.split('\n')
    index = 0

    while index < len(lines):
        line = lines[index].strip()
        index += 1

        header_match = HEADER_PATTERN.match(line)
        if header_match:
            result["_header"] = {
                match.group(1): match.group(2) if match.group(2) is not None else match.group(3)
                for match in ATTRIBUTE_PATTERN.finditer(header_match.group(1))
            }
            continue

        if line.startswith('['):
            section = 'resource' if line == '[resource]' else line
            continue

        if section and '=' in line:
            key, _, raw = line.partition('=')
            # sub_resource values are skipped whole, continuation lines included
            raw, index = join_continuation(raw, lines, index)
            if section == 'resource':
                result[key.strip()] = parse_value(raw)

    return result


def serialize_tres(
    resource_type: str,
    properties: Optional[dict] = None,
    script_path: Optional[str] = None,
    script_class: Optional[str] = None,
) -> str:
    """Write a single-resource .tres file, optionally backed by a script."""
    header = f'[gd_resource type="{resource_type}"'
    if script_class:
        header += f' script_class="{script_class}"'
    header += f' load_steps={2 if script_path else 1} format=3]'

    lines = [header, ""]
    if script_path:
        lines.append(f'[ext_resource type="Script" path="{script_path}" id="1_script"]')
        lines.append("")

    lines.append("[resource]")
    if script_path:
        lines.append('script = ExtResource("1_script")')
    for key, value in (properties or {}).items():
        lines.append(f'{key} = {format_value(value)}')

    return '\n'.join(lines) + '\n'
