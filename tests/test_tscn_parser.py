import pytest

from godot_parsers import (
    Color,
    ExtResource,
    NodePath,
    SubResource,
    TscnConnection,
    TscnExtResource,
    TscnHeader,
    TscnNode,
    TscnParser,
    TscnScene,
    TscnSubResource,
    Vector2,
    Vector3,
    scene_from_dict,
)


_PLAYER_SCENE = """[gd_scene load_steps=3 format=3 uid="uid://player123"]

[ext_resource type="Script" path="res://player.gd" id="1_script"]
[ext_resource type="Texture2D" path="res://icon.png" uid="uid://abc123" id="2_texture"]

[sub_resource type="RectangleShape2D" id="RectangleShape2D_1"]
size = Vector2(32, 48)

[node name="Player" type="CharacterBody2D" groups=["players", "damageable"]]
position = Vector2(100, 200)
rotation = 1.5708
script = ExtResource("1_script")
metadata/_edit_group_ = true

[node name="CollisionShape2D" type="CollisionShape2D" parent="."]
shape = SubResource("RectangleShape2D_1")

[node name="Sprite" type="Sprite2D" parent="."]
texture = ExtResource("2_texture")
modulate = Color(0.2, 0.6, 1, 0.8)
region_rect = Rect2(0, 0, 16, 16)

[connection signal="body_entered" from="." to="." method="_on_body_entered"]
[connection signal="hit" from="Sprite" to="." method="_on_hit" flags=3 binds=[1, "extra"]]
"""


@pytest.fixture
def parser():
    return TscnParser()


def test_parse_header(parser):
    scene = parser.parse_content(_PLAYER_SCENE)
    assert scene.header == TscnHeader(type="gd_scene", format=3, load_steps=3, uid="uid://player123")


def test_parse_external_resources(parser):
    scene = parser.parse_content(_PLAYER_SCENE)
    assert scene.ext_resources == [
        TscnExtResource(type="Script", path="res://player.gd", id="1_script"),
        TscnExtResource(type="Texture2D", path="res://icon.png", id="2_texture", uid="uid://abc123"),
    ]


def test_parse_sub_resources(parser):
    scene = parser.parse_content(_PLAYER_SCENE)
    assert scene.sub_resources == [
        TscnSubResource(type="RectangleShape2D", id="RectangleShape2D_1", properties={"size": Vector2(32, 48)}),
    ]


def test_parse_nodes(parser):
    scene = parser.parse_content(_PLAYER_SCENE)
    assert [node.name for node in scene.nodes] == ["Player", "CollisionShape2D", "Sprite"]

    player = scene.nodes[0]
    assert player.parent is None
    assert player.groups == ["players", "damageable"]
    assert player.properties == {
        "position": Vector2(100, 200),
        "rotation": 1.5708,
        "script": ExtResource("1_script"),
        "metadata/_edit_group_": True,
    }

    sprite = scene.nodes[2]
    assert sprite.parent == "."
    assert sprite.properties["texture"] == ExtResource("2_texture")
    assert sprite.properties["modulate"] == Color(0.2, 0.6, 1, 0.8)
    assert sprite.properties["region_rect"] == "Rect2(0, 0, 16, 16)"


def test_parse_connections(parser):
    scene = parser.parse_content(_PLAYER_SCENE)
    assert scene.connections == [
        TscnConnection(signal="body_entered", from_node=".", to_node=".", method="_on_body_entered"),
        TscnConnection(signal="hit", from_node="Sprite", to_node=".", method="_on_hit", flags=3, binds=[1, "extra"]),
    ]


def test_parse_node_header_attributes(parser):
    content = """[gd_scene format=3]

[node name="Level" type="Node2D"]

[node name="Enemy" parent="." instance=ExtResource("2_enemy") owner="Level" index=3]
"""
    enemy = parser.parse_content(content).nodes[1]
    assert enemy.instance == 'ExtResource("2_enemy")'
    assert enemy.owner == "Level"
    assert enemy.index == 3
    assert enemy.type is None


def test_empty_scene(parser):
    scene = parser.parse_content("[gd_scene format=3]\n")
    assert scene.header == TscnHeader(type="gd_scene", format=3)
    assert scene.nodes == []
    assert scene.ext_resources == []
    assert scene.sub_resources == []
    assert scene.connections == []


def test_gd_resource_header(parser):
    scene = parser.parse_content('[gd_resource type="Resource" format=3]\n')
    assert scene.header.type == "gd_resource"
    assert scene.header.resource_type == "Resource"


def test_negative_numbers(parser):
    content = """[gd_scene format=3]

[node name="Test" type="Node2D"]
position = Vector2(-100, -200)
offset = -50
"""
    properties = parser.parse_content(content).nodes[0].properties
    assert properties["position"] == Vector2(-100, -200)
    assert properties["offset"] == -50
    assert isinstance(properties["offset"], int)


def test_escaped_strings(parser):
    content = """[gd_scene format=3]

[node name="Test" type="Label"]
text = "Hello \\"World\\""
"""
    assert parser.parse_content(content).nodes[0].properties["text"] == 'Hello "World"'


def test_unknown_lines_are_skipped(parser):
    content = """; a comment
[gd_scene format=3]

[node name="Main" type="Node"]

[editable path="Main/Child"]
stray text without equals

[some_future_tag foo=1]
[node name="Other" type="Node" parent="."]
"""
    scene = parser.parse_content(content)
    assert [node.name for node in scene.nodes] == ["Main", "Other"]


def test_block_ends_at_blank_line(parser):
    content = """[gd_scene format=3]

[node name="Main" type="Node"]
a = 1

b = 2
"""
    assert parser.parse_content(content).nodes[0].properties == {"a": 1}


def test_multiline_values(parser):
    content = """[gd_scene format=3]

[node name="Anim" type="Node"]
data = {
"times": PackedFloat32Array(0, 1),
"values": [Vector3(0, 0, 0), Vector3(1, 1, 1)]
}
text = "first line

third line"
speed = 5
"""
    properties = parser.parse_content(content).nodes[0].properties
    assert properties["data"] == {
        "times": "PackedFloat32Array(0, 1)",
        "values": [Vector3(0, 0, 0), Vector3(1, 1, 1)],
    }
    assert properties["text"] == "first line\n\nthird line"
    assert properties["speed"] == 5


def test_unterminated_string_does_not_swallow_later_nodes(parser):
    content = """[gd_scene format=3]

[node name="A" type="Label"]
text = "oops

[node name="B" type="Node" parent="."]

[node name="C" type="Node" parent="."]
"""
    scene = parser.parse_content(content)
    assert [n.name for n in scene.nodes] == ["A", "B", "C"]
    assert scene.nodes[0].properties == {"text": '"oops'}


def test_unclosed_array_stops_at_next_section(parser):
    content = """[gd_scene format=3]

[node name="A" type="Node"]
items = [1,
[node name="B" type="Node" parent="."]
]
"""
    scene = parser.parse_content(content)
    assert [n.name for n in scene.nodes] == ["A", "B"]
    assert scene.nodes[1].parent == "."
    assert scene.nodes[1].properties == {}


def test_empty_groups_and_binds_round_trip(parser):
    content = """[gd_scene format=3]

[node name="Root" type="Node" groups=[]]

[connection signal="s" from="." to="." method="m" binds=[]]
"""
    scene = parser.parse_content(content)
    assert scene.nodes[0].groups is None
    assert scene.connections[0].binds is None
    assert parser.parse_content(parser.serialize(scene)) == scene

    rebuilt = scene_from_dict(parser.to_dict(scene))
    assert rebuilt.nodes == scene.nodes
    assert rebuilt.connections == scene.connections


def test_parse_resource_block(parser):
    content = """[gd_resource type="Resource" script_class="Stats" load_steps=2 format=3]

[ext_resource type="Script" path="res://stats.gd" id="1_script"]

[resource]
script = ExtResource("1_script")
health = 100
"""
    scene = parser.parse_content(content)
    assert scene.header.script_class == "Stats"
    assert scene.resource == {"script": ExtResource("1_script"), "health": 100}
    assert parser.serialize(scene) == content


def test_serialize_layout(parser):
    scene = TscnScene(
        header=TscnHeader(load_steps=2),
        ext_resources=[TscnExtResource(type="Script", path="res://player.gd", id="1_script")],
        nodes=[
            TscnNode(name="Main", type="Node2D", properties={"script": ExtResource("1_script")}),
            TscnNode(name="Sprite", type="Sprite2D", parent=".", properties={"position": Vector2(10, 20)}),
        ],
        connections=[TscnConnection(signal="ready", from_node=".", to_node=".", method="_on_ready")],
    )
    assert parser.serialize(scene) == """[gd_scene load_steps=2 format=3]

[ext_resource type="Script" path="res://player.gd" id="1_script"]

[node name="Main" type="Node2D"]
script = ExtResource("1_script")

[node name="Sprite" type="Sprite2D" parent="."]
position = Vector2(10, 20)

[connection signal="ready" from="." to="." method="_on_ready"]
"""


def test_serialize_node_header_field_order(parser):
    node = TscnNode(
        name="Enemy",
        type="CharacterBody2D",
        parent="Level",
        instance='ExtResource("2_enemy")',
        instance_placeholder="res://enemy.tscn",
        owner="Level",
        index=0,
        groups=["enemies", "damageable"],
    )
    assert parser.serialize_node_header(node) == (
        '[node name="Enemy" type="CharacterBody2D" parent="Level" instance=ExtResource("2_enemy") '
        'instance_placeholder="res://enemy.tscn" owner="Level" index=0 groups=["enemies", "damageable"]]'
    )


def test_serialize_omits_empty_optional_fields(parser):
    assert parser.serialize_node_header(TscnNode(name="Root", groups=[])) == '[node name="Root"]'
    assert parser.serialize_header(TscnHeader()) == "[gd_scene format=3]"


def test_round_trip_is_structurally_equal(parser):
    parsed = parser.parse_content(_PLAYER_SCENE)
    reparsed = parser.parse_content(parser.serialize(parsed))
    assert reparsed == parsed


def test_serialize_is_idempotent_for_typed_values(parser):
    scene = TscnScene(
        header=TscnHeader(load_steps=2, uid="uid://idem"),
        ext_resources=[TscnExtResource(type="Texture2D", path="res://a.png", id="1_a", uid="uid://a")],
        sub_resources=[TscnSubResource(type="CircleShape2D", id="c1", properties={"radius": 12.5})],
        nodes=[
            TscnNode(name="Root", type="Node3D", groups=["level"], properties={
                "position": Vector3(1.5, -2, 0),
                "tint": Color(1, 1, 1),
                "label": 'C:\\path "quoted"',
                "target": NodePath("Child"),
                "shape": SubResource("c1"),
                "items": [1, 2.5, None, False, [Vector2(0, 1)]],
                "lookup": {"a": ExtResource("1_a"), "b": {"nested": True}},
            }),
        ],
        connections=[TscnConnection(signal="s", from_node=".", to_node=".", method="m", flags=1, binds=["x"])],
    )
    first = parser.serialize(scene)
    assert parser.serialize(parser.parse_content(first)) == first


def test_file_round_trip(parser, tmp_path):
    path = tmp_path / "scenes" / "player.tscn"
    scene = parser.parse_content(_PLAYER_SCENE)
    parser.write_file(scene, path)
    loaded = parser.parse_file(path)
    assert loaded.nodes == scene.nodes
    assert loaded.path == str(path)


def test_to_dict_and_back(parser):
    scene = parser.parse_content(_PLAYER_SCENE)
    data = parser.to_dict(scene)

    assert data["node_count"] == 3
    assert data["nodes"][0]["properties"]["position"] == {"_type": "Vector2", "x": 100, "y": 200}
    assert data["connections"][1]["from"] == "Sprite"

    rebuilt = scene_from_dict(data)
    assert rebuilt.nodes == scene.nodes
    assert rebuilt.sub_resources == scene.sub_resources
    assert rebuilt.connections == scene.connections
    assert rebuilt.header.load_steps == 4
