"""
Scene Editing
Add, remove and modify nodes of a parsed TscnScene, and build a tree view.
Operates on in-memory scenes only; nothing here raises on a missing node.
"""

import logging
from typing import Optional

from .tscn_parser import TscnScene, TscnNode

logger = logging.getLogger(__name__)


def node_path(node: TscnNode) -> str:
    """Path of a node relative to the scene root, as used by connections."""
    if not node.parent or node.parent == ".":
        return node.name
    return f"{node.parent}/{node.name}"


def update_load_steps(scene: TscnScene) -> None:
    scene.header.load_steps = len(scene.ext_resources) + len(scene.sub_resources) + 1


def find_root(scene: TscnScene) -> Optional[TscnNode]:
    for node in scene.nodes:
        if node.parent is None:
            return node
    return None


def find_node(scene: TscnScene, path: str) -> Optional[TscnNode]:
    for node in scene.nodes:
        if node_path(node) == path:
            return node
    return None


def add_node(scene: TscnScene, node: TscnNode) -> None:
    if node.properties is None:
        node.properties = {}
    scene.nodes.append(node)
    update_load_steps(scene)


def _is_under(path: Optional[str], ancestor: str) -> bool:
    return path is not None and (path == ancestor or path.startswith(ancestor + "/"))


def remove_node(scene: TscnScene, path: str) -> list[str]:
    """
    Remove a node and all its descendants, plus connections touching them.
    Returns the paths of the removed nodes.
    """
    root = find_root(scene)
    if path == "." or (root is not None and path == root.name):
        # Removing the root takes the whole tree with it
        doomed = {node_path(n) for n in scene.nodes} | {".", path}
    else:
        doomed = {path}
        for node in scene.nodes:
            current = node_path(node)
            if current.startswith(path + "/") or _is_under(node.parent, path):
                doomed.add(current)

    removed = [node_path(n) for n in scene.nodes if node_path(n) in doomed]
    scene.nodes = [n for n in scene.nodes if node_path(n) not in doomed]
    scene.connections = [
        c for c in scene.connections
        if c.from_node not in doomed and c.to_node not in doomed
    ]
    update_load_steps(scene)

    if not removed:
        logger.debug("No node at path %s", path)
    return removed


def modify_node(
    scene: TscnScene,
    path: str,
    *,
    name: Optional[str] = None,
    type: Optional[str] = None,
    groups: Optional[list[str]] = None,
    properties: Optional[dict] = None,
) -> bool:
    """
    Apply updates to the node at path. Properties are merged into the existing
    ones. Returns False, leaving the scene untouched, when no node matches.
    """
    node = find_node(scene, path)
    if node is None:
        return False

    if name is not None and name != node.name:
        old_path = node_path(node)
        node.name = name
        if node.parent is not None:
            _move_subtree(scene, old_path, node_path(node))
    if type is not None:
        node.type = type
    if groups is not None:
        node.groups = groups
    if properties is not None:
        node.properties = {**node.properties, **properties}
    return True


def _move_subtree(scene: TscnScene, old_path: str, new_path: str) -> None:
    """Rewrite parent paths and connection endpoints after a rename."""
    def rebase(value: str) -> str:
        return new_path + value[len(old_path):]

    for node in scene.nodes:
        if _is_under(node.parent, old_path):
            node.parent = rebase(node.parent)
    for connection in scene.connections:
        if _is_under(connection.from_node, old_path):
            connection.from_node = rebase(connection.from_node)
        if _is_under(connection.to_node, old_path):
            connection.to_node = rebase(connection.to_node)


def get_scene_tree(scene: TscnScene) -> dict:
    """
    Nested view of the scene keyed by node name. Each entry holds type,
    groups, properties and children; ancestors missing from the scene show
    up as entries with type None.
    """
    tree: dict = {}
    root = find_root(scene)

    for node in scene.nodes:
        segments: list[str] = []
        if node.parent is not None:
            if root is not None:
                segments.append(root.name)
            if node.parent != ".":
                segments.extend(s for s in node.parent.split("/") if s)

        current = tree
        for segment in segments:
            entry = current.setdefault(segment, _tree_entry())
            current = entry["children"]

        entry = current.setdefault(node.name, _tree_entry())
        entry["type"] = node.type
        entry["groups"] = node.groups or []
        entry["properties"] = node.properties

    return tree


def _tree_entry() -> dict:
    return {"type": None, "groups": [], "properties": {}, "children": {}}
