"""
Godot Text Format Parsers
Read and write .tscn scenes and .tres resources - no Godot required.
"""

from .values import (
    Vector2,
    Vector3,
    Color,
    ExtResource,
    SubResource,
    NodePath,
    RawLiteral,
    parse_value,
    format_value,
    to_json,
    from_json,
)
from .tscn_parser import (
    TscnParser,
    TscnScene,
    TscnHeader,
    TscnExtResource,
    TscnSubResource,
    TscnNode,
    TscnConnection,
    node_from_dict,
    scene_from_dict,
)
from .scene_edit import (
    node_path,
    find_node,
    add_node,
    remove_node,
    modify_node,
    get_scene_tree,
    update_load_steps,
)
from .tres_parser import parse_tres, serialize_tres

__all__ = [
    'Vector2',
    'Vector3',
    'Color',
    'ExtResource',
    'SubResource',
    'NodePath',
    'RawLiteral',
    'parse_value',
    'format_value',
    'to_json',
    'from_json',
    'TscnParser',
    'TscnScene',
    'TscnHeader',
    'TscnExtResource',
    'TscnSubResource',
    'TscnNode',
    'TscnConnection',
    'node_from_dict',
    'scene_from_dict',
    'node_path',
    'find_node',
    'add_node',
    'remove_node',
    'modify_node',
    'get_scene_tree',
    'update_load_steps',
    'parse_tres',
    'serialize_tres',
]
