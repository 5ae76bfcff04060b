"""
TSCN Scene Parser
Parses Godot .tscn/.tres text files into structured data and serializes them back.
Works completely offline - no Godot required.
"""

import logging
import re
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Any

from .values import parse_value, parse_array, format_value, join_continuation, to_json, from_json

logger = logging.getLogger(__name__)

SCENE = "gd_scene"
RESOURCE = "gd_resource"


@dataclass
class TscnHeader:
    type: str = SCENE
    format: int = 3
    load_steps: Optional[int] = None
    uid: Optional[str] = None
    resource_type: Optional[str] = None  # type="..." on a gd_resource header
    script_class: Optional[str] = None


@dataclass
class TscnExtResource:
    type: str
    path: str
    id: str
    uid: Optional[str] = None


@dataclass
class TscnSubResource:
    type: str
    id: str
    properties: dict = field(default_factory=dict)


@dataclass
class TscnNode:
    name: str
    type: Optional[str] = None
    parent: Optional[str] = None
    instance: Optional[str] = None  # For instanced scenes, kept as ExtResource("...") text
    instance_placeholder: Optional[str] = None
    owner: Optional[str] = None
    index: Optional[int] = None
    groups: Optional[list[str]] = None
    properties: dict = field(default_factory=dict)


@dataclass
class TscnConnection:
    signal: str
    from_node: str
    to_node: str
    method: str
    flags: Optional[int] = None
    binds: Optional[list] = None


@dataclass
class TscnScene:
    header: TscnHeader = field(default_factory=TscnHeader)
    ext_resources: list[TscnExtResource] = field(default_factory=list)
    sub_resources: list[TscnSubResource] = field(default_factory=list)
    nodes: list[TscnNode] = field(default_factory=list)
    connections: list[TscnConnection] = field(default_factory=list)
    resource: Optional[dict] = None  # [resource] block of a .tres file
    path: str = ""


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class TscnParser:
    """Parse and serialize Godot .tscn scene files."""

    # key="value", key=[array] or key=bare, in that priority
    ATTRIBUTE_PATTERN = re.compile(
        r'(\w+)=(?:"([^"]*)"|(\[[^\]]*\])|([^\s\]]+))'
    )

    def parse_file(self, path: str | Path) -> TscnScene:
        """Parse a .tscn file and return structured data."""
        path = Path(path)
        content = path.read_text(encoding='utf-8')
        return self.parse_content(content, str(path))

    def parse_content(self, content: str, path: str = "") -> TscnScene:
        """Parse TSCN content string. Unrecognized lines are skipped."""
        scene = TscnScene(path=path)
        lines = content.split('\n')
        index = 0

        while index < len(lines):
            line = lines[index].strip()

            if line.startswith('[gd_scene') or line.startswith('[gd_resource'):
                scene.header = self.parse_header(line)
                index += 1
            elif line.startswith('[ext_resource'):
                scene.ext_resources.append(self.parse_ext_resource(line))
                index += 1
            elif line.startswith('[sub_resource'):
                attrs = self.parse_attributes(line)
                properties, index = self._parse_properties(lines, index + 1)
                scene.sub_resources.append(TscnSubResource(
                    type=attrs.get('type', ''),
                    id=attrs.get('id', ''),
                    properties=properties
                ))
            elif line.startswith('[node'):
                node = self.parse_node_header(line)
                node.properties, index = self._parse_properties(lines, index + 1)
                scene.nodes.append(node)
            elif line.startswith('[connection'):
                scene.connections.append(self.parse_connection(line))
                index += 1
            elif line == '[resource]':
                scene.resource, index = self._parse_properties(lines, index + 1)
            else:
                if line.startswith('['):
                    logger.debug("Skipping unrecognized tag on line %d: %s", index + 1, line)
                index += 1

        return scene

    def parse_attributes(self, line: str) -> dict[str, str]:
        """Parse key=value pairs of a bracketed header line."""
        attrs = {}
        for match in self.ATTRIBUTE_PATTERN.finditer(line):
            quoted, array, bare = match.group(2), match.group(3), match.group(4)
            if quoted is not None:
                attrs[match.group(1)] = quoted
            elif array is not None:
                attrs[match.group(1)] = array
            else:
                attrs[match.group(1)] = bare
        return attrs

    def parse_header(self, line: str) -> TscnHeader:
        attrs = self.parse_attributes(line)
        is_scene = line.startswith('[gd_scene')
        return TscnHeader(
            type=SCENE if is_scene else RESOURCE,
            format=_to_int(attrs.get('format')) or 3,
            load_steps=_to_int(attrs.get('load_steps')),
            uid=attrs.get('uid'),
            resource_type=None if is_scene else attrs.get('type'),
            script_class=attrs.get('script_class')
        )

    def parse_ext_resource(self, line: str) -> TscnExtResource:
        attrs = self.parse_attributes(line)
        return TscnExtResource(
            type=attrs.get('type', ''),
            path=attrs.get('path', ''),
            id=attrs.get('id', ''),
            uid=attrs.get('uid')
        )

    def parse_node_header(self, line: str) -> TscnNode:
        attrs = self.parse_attributes(line)
        groups = attrs.get('groups')
        return TscnNode(
            name=attrs.get('name', ''),
            type=attrs.get('type'),
            parent=attrs.get('parent'),
            instance=attrs.get('instance'),
            instance_placeholder=attrs.get('instance_placeholder'),
            owner=attrs.get('owner'),
            index=_to_int(attrs.get('index')),
            groups=parse_array(groups or '') or None
        )

    def parse_connection(self, line: str) -> TscnConnection:
        attrs = self.parse_attributes(line)
        binds = attrs.get('binds')
        return TscnConnection(
            signal=attrs.get('signal', ''),
            from_node=attrs.get('from', ''),
            to_node=attrs.get('to', ''),
            method=attrs.get('method', ''),
            flags=_to_int(attrs.get('flags')),
            binds=parse_array(binds or '') or None
        )

    def _parse_properties(self, lines: list[str], start: int) -> tuple[dict, int]:
        """
        Parse `key = value` lines until a blank line or the next [tag].
        Returns the properties and the index of the first unconsumed line.
        """
        properties = {}
        index = start

        while index < len(lines):
            line = lines[index].strip()
            if not line or line.startswith('['):
                break
            index += 1

            key, sep, raw = line.partition('=')
            if not sep:
                continue

            # Continuation of a multi-line dictionary, array or string
            raw, index = join_continuation(raw, lines, index)
            properties[key.strip()] = parse_value(raw)

        return properties, index

    # ============ Serialization ============

    def serialize(self, scene: TscnScene) -> str:
        """Render a scene back to TSCN text. load_steps is written as given."""
        lines = [self.serialize_header(scene.header), ""]

        for ext in scene.ext_resources:
            lines.append(self.serialize_ext_resource(ext))
        if scene.ext_resources:
            lines.append("")

        for sub in scene.sub_resources:
            lines.append(f'[sub_resource type="{sub.type}" id="{sub.id}"]')
            lines.extend(self._serialize_properties(sub.properties))
            lines.append("")

        for node in scene.nodes:
            lines.append(self.serialize_node_header(node))
            lines.extend(self._serialize_properties(node.properties))
            lines.append("")

        for connection in scene.connections:
            lines.append(self.serialize_connection(connection))

        if scene.resource is not None:
            if scene.connections:
                lines.append("")
            lines.append("[resource]")
            lines.extend(self._serialize_properties(scene.resource))

        return '\n'.join(lines).strip() + '\n'

    def write_file(self, scene: TscnScene, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.serialize(scene), encoding='utf-8')

    def serialize_header(self, header: TscnHeader) -> str:
        parts = [f'[{header.type}']
        if header.type == RESOURCE and header.resource_type:
            parts.append(f'type="{header.resource_type}"')
        if header.script_class:
            parts.append(f'script_class="{header.script_class}"')
        if header.load_steps:
            parts.append(f'load_steps={header.load_steps}')
        parts.append(f'format={header.format}')
        if header.uid:
            parts.append(f'uid="{header.uid}"')
        return ' '.join(parts) + ']'

    def serialize_ext_resource(self, ext: TscnExtResource) -> str:
        result = f'[ext_resource type="{ext.type}" path="{ext.path}"'
        if ext.uid:
            result += f' uid="{ext.uid}"'
        return result + f' id="{ext.id}"]'

    def serialize_node_header(self, node: TscnNode) -> str:
        header = f'[node name="{node.name}"'
        if node.type:
            header += f' type="{node.type}"'
        if node.parent is not None:
            header += f' parent="{node.parent}"'
        if node.instance:
            header += f' instance={node.instance}'
        if node.instance_placeholder:
            header += f' instance_placeholder="{node.instance_placeholder}"'
        if node.owner:
            header += f' owner="{node.owner}"'
        if node.index is not None:
            header += f' index={node.index}'
        if node.groups:
            header += f' groups={format_value(node.groups)}'
        return header + ']'

    def serialize_connection(self, connection: TscnConnection) -> str:
        result = (
            f'[connection signal="{connection.signal}" from="{connection.from_node}" '
            f'to="{connection.to_node}" method="{connection.method}"'
        )
        if connection.flags is not None:
            result += f' flags={connection.flags}'
        if connection.binds:
            result += f' binds={format_value(connection.binds)}'
        return result + ']'

    def _serialize_properties(self, properties: dict) -> list[str]:
        return [f'{key} = {format_value(value)}' for key, value in properties.items()]

    # ============ JSON views ============

    def to_dict(self, scene: TscnScene) -> dict:
        """Convert TscnScene to dictionary for JSON serialization."""
        header = scene.header
        result = {
            "path": scene.path,
            "header": {
                "type": header.type,
                "format": header.format,
                "load_steps": header.load_steps,
                "uid": header.uid,
                "resource_type": header.resource_type,
                "script_class": header.script_class
            },
            "external_resources": [
                {"type": r.type, "path": r.path, "id": r.id, "uid": r.uid}
                for r in scene.ext_resources
            ],
            "sub_resources": [
                {"type": r.type, "id": r.id, "properties": to_json(r.properties)}
                for r in scene.sub_resources
            ],
            "nodes": self._nodes_to_list(scene.nodes),
            "connections": [
                {
                    "signal": c.signal,
                    "from": c.from_node,
                    "to": c.to_node,
                    "method": c.method,
                    "flags": c.flags,
                    "binds": to_json(c.binds)
                }
                for c in scene.connections
            ],
            "node_count": len(scene.nodes)
        }
        if scene.resource is not None:
            result["resource"] = to_json(scene.resource)
        return result

    def _nodes_to_list(self, nodes: list[TscnNode]) -> list[dict]:
        """Convert nodes to list of dicts."""
        result = []
        for node in nodes:
            node_dict = {
                "name": node.name,
                "type": node.type,
                "parent": node.parent,
                "groups": node.groups,
                "properties": to_json(node.properties)
            }
            for key in ("instance", "instance_placeholder", "owner", "index"):
                if getattr(node, key) is not None:
                    node_dict[key] = getattr(node, key)
            result.append(node_dict)
        return result


def node_from_dict(data: dict[str, Any]) -> TscnNode:
    """Build a node from tool input, turning tagged JSON values into typed ones."""
    return TscnNode(
        name=data["name"],
        type=data.get("type"),
        parent=data.get("parent"),
        instance=data.get("instance"),
        instance_placeholder=data.get("instance_placeholder"),
        owner=data.get("owner"),
        index=data.get("index"),
        groups=data.get("groups") or None,
        properties=from_json(data.get("properties") or {})
    )


def scene_from_dict(data: dict[str, Any]) -> TscnScene:
    """Build a TscnScene from the JSON shape produced by TscnParser.to_dict."""
    header = data.get("header") or {}
    ext_resources = [
        TscnExtResource(type=r["type"], path=r["path"], id=r["id"], uid=r.get("uid"))
        for r in data.get("external_resources") or []
    ]
    sub_resources = [
        TscnSubResource(type=r["type"], id=r["id"], properties=from_json(r.get("properties") or {}))
        for r in data.get("sub_resources") or []
    ]
    scene = TscnScene(
        header=TscnHeader(
            type=header.get("type") or SCENE,
            format=header.get("format") or 3,
            load_steps=len(ext_resources) + len(sub_resources) + 1,
            uid=header.get("uid"),
            resource_type=header.get("resource_type"),
            script_class=header.get("script_class")
        ),
        ext_resources=ext_resources,
        sub_resources=sub_resources,
        nodes=[node_from_dict(n) for n in data.get("nodes") or []],
        connections=[
            TscnConnection(
                signal=c["signal"],
                from_node=c["from"],
                to_node=c["to"],
                method=c["method"],
                flags=c.get("flags"),
                binds=from_json(c.get("binds")) or None
            )
            for c in data.get("connections") or []
        ]
    )
    if data.get("resource") is not None:
        scene.resource = from_json(data["resource"])
    return scene
