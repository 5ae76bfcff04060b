"""
Godot Scene MCP Server
Read, write and edit Godot .tscn scenes and .tres resources over MCP.
Works completely offline - no Godot required.
"""

import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from godot_parsers import (
    TscnParser,
    TscnScene,
    node_from_dict,
    scene_from_dict,
    node_path,
    add_node,
    remove_node,
    modify_node,
    get_scene_tree,
    to_json,
    from_json,
    parse_tres,
    serialize_tres,
)

# ============ Configuration ============

PROJECT_PATH_ENV = "GODOT_PROJECT_PATH"
LOG_LEVEL_ENV = "GODOT_MCP_LOG_LEVEL"
RES_PREFIX = "res://"

logger = logging.getLogger(__name__)

server = Server("godot-scene-mcp")
parser = TscnParser()

# Active project path (set via tool or environment)
_active_project: Optional[str] = os.environ.get(PROJECT_PATH_ENV)


def resolve_path(input_path: str) -> Path:
    """Map res:// and project-relative paths onto the filesystem."""
    if input_path.startswith(RES_PREFIX):
        input_path = input_path[len(RES_PREFIX):]
    path = Path(input_path)
    if path.is_absolute():
        return path
    return Path(_active_project or ".") / path


def find_files(directory: Path, extension: str) -> list[Path]:
    """Find files by extension, skipping hidden directories like .godot."""
    if not directory.is_dir():
        return []
    results = []
    for path in sorted(directory.rglob(f"*{extension}")):
        rel_parts = path.relative_to(directory).parts
        if any(part.startswith(".") for part in rel_parts[:-1]):
            continue
        results.append(path)
    return results


def _project_relative(path: Path) -> str:
    base = Path(_active_project or ".")
    try:
        return path.relative_to(base).as_posix()
    except ValueError:
        return path.as_posix()


def _read_scene(scene_path: str) -> tuple[Path, TscnScene]:
    full_path = resolve_path(scene_path)
    return full_path, parser.parse_file(full_path)


def _tree_to_json(tree: dict) -> dict:
    return {
        name: {
            "type": entry["type"],
            "groups": entry["groups"],
            "properties": to_json(entry["properties"]),
            "children": _tree_to_json(entry["children"])
        }
        for name, entry in tree.items()
    }


# ============ Tool Definitions ============

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        # === Project ===
        Tool(
            name="godot_set_project",
            description="Set the active Godot project path. Relative and res:// paths resolve against it.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_path": {
                        "type": "string",
                        "description": "Absolute path to the Godot project folder (containing project.godot)"
                    }
                },
                "required": ["project_path"]
            }
        ),

        # === Scenes ===
        Tool(
            name="godot_read_scene",
            description="Read and parse a Godot scene file (.tscn). Returns nodes, resources, connections and the node tree.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Scene path (e.g., 'res://scenes/player.tscn')"}
                },
                "required": ["path"]
            }
        ),
        Tool(
            name="godot_write_scene",
            description="Create or overwrite a scene file from structured JSON (same shape godot_read_scene returns).",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "scene": {
                        "type": "object",
                        "description": "header, external_resources, sub_resources, nodes, connections. "
                                       "Typed values use {\"_type\": \"Vector2\", \"x\": 1, \"y\": 2}; "
                                       "other literals use {\"_type\": \"Literal\", \"text\": \"Rect2(0, 0, 8, 8)\"}."
                    }
                },
                "required": ["path", "scene"]
            }
        ),
        Tool(
            name="godot_add_node",
            description="Add a node to an existing scene file",
            inputSchema={
                "type": "object",
                "properties": {
                    "scene_path": {"type": "string"},
                    "node": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "type": {"type": "string", "description": "Node class (e.g., 'Sprite2D')"},
                            "parent": {"type": "string", "description": "Parent path, '.' for children of the root, omit for the root"},
                            "groups": {"type": "array", "items": {"type": "string"}},
                            "properties": {"type": "object"}
                        },
                        "required": ["name"]
                    }
                },
                "required": ["scene_path", "node"]
            }
        ),
        Tool(
            name="godot_remove_node",
            description="Remove a node, its children and the signal connections that involve them",
            inputSchema={
                "type": "object",
                "properties": {
                    "scene_path": {"type": "string"},
                    "node_path": {"type": "string", "description": "e.g. 'Player' or 'Player/Sprite'"}
                },
                "required": ["scene_path", "node_path"]
            }
        ),
        Tool(
            name="godot_modify_node",
            description="Rename a node, change its type or groups, or merge new property values into it",
            inputSchema={
                "type": "object",
                "properties": {
                    "scene_path": {"type": "string"},
                    "node_path": {"type": "string"},
                    "updates": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "type": {"type": "string"},
                            "groups": {"type": "array", "items": {"type": "string"}},
                            "properties": {"type": "object"}
                        }
                    }
                },
                "required": ["scene_path", "node_path", "updates"]
            }
        ),
        Tool(
            name="godot_list_scene_nodes",
            description="List all nodes in a scene file with their types, paths and hierarchy",
            inputSchema={
                "type": "object",
                "properties": {
                    "scene_path": {"type": "string"}
                },
                "required": ["scene_path"]
            }
        ),
        Tool(
            name="godot_validate_scene",
            description="Check a scene for a missing root, missing resource files, broken parents and dangling connections",
            inputSchema={
                "type": "object",
                "properties": {
                    "scene_path": {"type": "string"}
                },
                "required": ["scene_path"]
            }
        ),
        Tool(
            name="godot_list_scenes",
            description="List all .tscn files in the project",
            inputSchema={
                "type": "object",
                "properties": {
                    "directory": {"type": "string", "description": "Subdirectory to search (e.g., 'scenes')"}
                }
            }
        ),

        # === Resources ===
        Tool(
            name="godot_read_resource",
            description="Read a Godot resource file (.tres) and return its properties",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string"}
                },
                "required": ["path"]
            }
        ),
        Tool(
            name="godot_write_resource",
            description="Create or overwrite a .tres resource file",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "resource_type": {"type": "string", "description": "e.g. 'Resource'"},
                    "script_path": {"type": "string", "description": "Script backing a custom resource"},
                    "script_class": {"type": "string"},
                    "properties": {"type": "object"}
                },
                "required": ["path", "resource_type", "properties"]
            }
        ),
        Tool(
            name="godot_list_resources",
            description="List all .tres files in the project, optionally filtered by resource type",
            inputSchema={
                "type": "object",
                "properties": {
                    "directory": {"type": "string"},
                    "resource_type": {"type": "string"}
                }
            }
        ),
    ]


# ============ Tool Handlers ============

def read_scene(arguments: dict) -> dict:
    _, scene = _read_scene(arguments["path"])
    return {
        "path": arguments["path"],
        "scene": parser.to_dict(scene),
        "tree": _tree_to_json(get_scene_tree(scene))
    }


def write_scene(arguments: dict) -> dict:
    scene = scene_from_dict(arguments["scene"])
    parser.write_file(scene, resolve_path(arguments["path"]))
    return {"success": True, "path": arguments["path"], "node_count": len(scene.nodes)}


def add_scene_node(arguments: dict) -> dict:
    full_path, scene = _read_scene(arguments["scene_path"])
    node = node_from_dict(arguments["node"])
    add_node(scene, node)
    parser.write_file(scene, full_path)
    return {"success": True, "added_node": node_path(node), "total_nodes": len(scene.nodes)}


def remove_scene_node(arguments: dict) -> dict:
    full_path, scene = _read_scene(arguments["scene_path"])
    removed = remove_node(scene, arguments["node_path"])
    if not removed:
        return {"error": f"Node not found: {arguments['node_path']}"}
    parser.write_file(scene, full_path)
    return {"success": True, "removed_path": arguments["node_path"], "removed_nodes": removed}


def modify_scene_node(arguments: dict) -> dict:
    full_path, scene = _read_scene(arguments["scene_path"])
    updates = arguments.get("updates") or {}
    properties = updates.get("properties")
    found = modify_node(
        scene,
        arguments["node_path"],
        name=updates.get("name"),
        type=updates.get("type"),
        groups=updates.get("groups"),
        properties=from_json(properties) if properties is not None else None
    )
    if not found:
        return {"error": f"Node not found: {arguments['node_path']}"}
    parser.write_file(scene, full_path)
    return {"success": True, "modified_path": arguments["node_path"], "updates": updates}


def list_scene_nodes(arguments: dict) -> dict:
    _, scene = _read_scene(arguments["scene_path"])
    nodes = [
        {
            "name": node.name,
            "type": node.type,
            "parent": node.parent,
            "path": node_path(node),
            "groups": node.groups,
            "property_count": len(node.properties)
        }
        for node in scene.nodes
    ]
    return {
        "scene_path": arguments["scene_path"],
        "node_count": len(nodes),
        "nodes": nodes,
        "tree": _tree_to_json(get_scene_tree(scene))
    }


def validate_scene(arguments: dict) -> dict:
    _, scene = _read_scene(arguments["scene_path"])
    issues = []

    if not any(node.parent is None for node in scene.nodes):
        issues.append({"severity": "error", "message": "Scene has no root node"})

    for ext in scene.ext_resources:
        if not resolve_path(ext.path).exists():
            issues.append({
                "severity": "warning",
                "message": f"External resource not found: {ext.path}",
                "location": f'ext_resource id="{ext.id}"'
            })

    known_paths = {node_path(node) for node in scene.nodes}
    for node in scene.nodes:
        if node.parent and node.parent != "." and node.parent not in known_paths:
            issues.append({
                "severity": "error",
                "message": f"Node '{node.name}' references non-existent parent: {node.parent}",
                "location": f'node name="{node.name}"'
            })

    # "." in a connection stands for the root node
    connectable = {node_path(n) for n in scene.nodes if n.parent is not None}
    if any(n.parent is None for n in scene.nodes):
        connectable.add(".")
    for conn in scene.connections:
        for end, value in (("from", conn.from_node), ("to", conn.to_node)):
            if value not in connectable:
                issues.append({
                    "severity": "warning",
                    "message": f"Signal connection references non-existent '{end}' node: {value}",
                    "location": f'connection signal="{conn.signal}"'
                })

    errors = sum(1 for issue in issues if issue["severity"] == "error")
    return {
        "valid": errors == 0,
        "scene_path": arguments["scene_path"],
        "issues": issues,
        "summary": {
            "nodes": len(scene.nodes),
            "external_resources": len(scene.ext_resources),
            "sub_resources": len(scene.sub_resources),
            "connections": len(scene.connections),
            "errors": errors,
            "warnings": len(issues) - errors
        }
    }


def list_scenes(arguments: dict) -> dict:
    directory = arguments.get("directory")
    search_path = resolve_path(directory) if directory else Path(_active_project or ".")
    scenes = [_project_relative(p) for p in find_files(search_path, ".tscn")]
    return {
        "project_path": _active_project,
        "directory": directory or ".",
        "scenes": [{"path": p, "res_path": f"{RES_PREFIX}{p}"} for p in scenes],
        "count": len(scenes)
    }


def read_resource(arguments: dict) -> dict:
    content = resolve_path(arguments["path"]).read_text(encoding="utf-8")
    return {
        "path": arguments["path"],
        "content": content,
        "parsed": to_json(parse_tres(content))
    }


def write_resource(arguments: dict) -> dict:
    full_path = resolve_path(arguments["path"])
    content = serialize_tres(
        arguments["resource_type"],
        from_json(arguments.get("properties") or {}),
        script_path=arguments.get("script_path"),
        script_class=arguments.get("script_class")
    )
    full_path.parent.mkdir(parents=True, exist_ok=True)
    full_path.write_text(content, encoding="utf-8")
    return {"success": True, "path": arguments["path"], "resource_type": arguments["resource_type"]}


def list_resources(arguments: dict) -> dict:
    directory = arguments.get("directory")
    wanted_type = arguments.get("resource_type")
    search_path = resolve_path(directory) if directory else Path(_active_project or ".")

    resources = []
    for path in find_files(search_path, ".tres"):
        try:
            header = parse_tres(path.read_text(encoding="utf-8")).get("_header", {})
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable resource %s: %s", path, e)
            continue
        resource_type = header.get("type", "Unknown")
        if wanted_type and resource_type != wanted_type:
            continue
        rel_path = _project_relative(path)
        resources.append({"path": rel_path, "res_path": f"{RES_PREFIX}{rel_path}", "type": resource_type})

    return {
        "project_path": _active_project,
        "directory": directory or ".",
        "resources": resources,
        "count": len(resources)
    }


TOOL_HANDLERS = {
    "godot_read_scene": read_scene,
    "godot_write_scene": write_scene,
    "godot_add_node": add_scene_node,
    "godot_remove_node": remove_scene_node,
    "godot_modify_node": modify_scene_node,
    "godot_list_scene_nodes": list_scene_nodes,
    "godot_validate_scene": validate_scene,
    "godot_list_scenes": list_scenes,
    "godot_read_resource": read_resource,
    "godot_write_resource": write_resource,
    "godot_list_resources": list_resources,
}


def handle_tool(name: str, arguments: dict[str, Any]) -> dict:
    """Run a tool and return its JSON-ready result; failures become {"error": ...}."""
    global _active_project

    if name == "godot_set_project":
        path = arguments["project_path"]
        if os.path.exists(os.path.join(path, "project.godot")):
            _active_project = path
            return {"success": True, "project": path}
        return {"error": f"No project.godot found in {path}"}

    handler = TOOL_HANDLERS.get(name)
    if not handler:
        return {"error": f"Unknown tool: {name}"}

    try:
        return handler(arguments)
    except Exception as e:
        logger.exception("Tool %s failed", name)
        return {"error": str(e)}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    result = handle_tool(name, arguments or {})
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


# ============ Main ============

def configure_logging() -> None:
    # stdout carries the MCP protocol, so logs go to stderr
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get(LOG_LEVEL_ENV, "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logging.getLogger("mcp").setLevel(logging.ERROR)


async def main():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run():
    configure_logging()
    asyncio.run(main())


if __name__ == "__main__":
    run()
