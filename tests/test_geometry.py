"""
Tests for transform baking, surface areas and primitive merging
"""

import numpy as np
import pytest

from atlasgen.document.model import Accessor, Document, Material, Node, Primitive
from atlasgen.exceptions import MissingAttributeError, SceneGraphError
from atlasgen.geometry.baker import (
    bake_document,
    bake_primitive,
    iter_instances,
    iter_node_transforms,
    material_areas,
    triangle_area,
)
from atlasgen.geometry.matrix_utils import (
    compose_trs,
    from_gltf_matrix,
    local_matrix,
    normal_matrix,
    to_gltf_matrix,
    transform_points,
)
from atlasgen.geometry.merger import merge_by_material, merge_primitives

from conftest import quad_primitive


def _triangle(material=None, normal=None):
    attributes = {'POSITION': Accessor(np.array([[1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype=np.float32), 'VEC3')}
    if normal is not None:
        attributes['NORMAL'] = Accessor(np.tile(np.array(normal, dtype=np.float32), (3, 1)), 'VEC3')
    return Primitive(attributes=attributes, material=material)


class TestMatrixUtils:
    """Test matrix conversions"""

    def test_gltf_matrix_is_column_major(self):
        values = [1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0, 5, 6, 7, 1]
        matrix = from_gltf_matrix(values)
        np.testing.assert_array_equal(matrix[:3, 3], [5, 6, 7])
        assert to_gltf_matrix(matrix) == [float(v) for v in values]

    def test_scale_point(self):
        node = Node(scale=[2, 1, 1])
        result = transform_points(np.array([[1, 0, 0]]), local_matrix(node))
        np.testing.assert_allclose(result, [[2, 0, 0]])

    def test_quaternion_rotation(self):
        # 90 degrees about +Z
        s = np.sqrt(0.5)
        matrix = compose_trs(rotation=[0, 0, s, s])
        np.testing.assert_allclose(transform_points(np.array([[1, 0, 0]]), matrix), [[0, 1, 0]], atol=1e-6)

    def test_trs_order(self):
        matrix = compose_trs(translation=[10, 0, 0], scale=[2, 2, 2])
        np.testing.assert_allclose(transform_points(np.array([[1, 1, 1]]), matrix), [[12, 2, 2]])

    def test_matrix_takes_precedence_over_trs(self):
        node = Node(matrix=[1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0, 3, 0, 0, 1], translation=[100, 0, 0])
        np.testing.assert_array_equal(local_matrix(node)[:3, 3], [3, 0, 0])

    def test_normal_matrix_non_uniform_scale(self):
        matrix = compose_trs(scale=[2, 1, 1])
        np.testing.assert_allclose(normal_matrix(matrix), np.diag([0.5, 1, 1]))

    def test_normal_matrix_singular_is_identity(self):
        matrix = compose_trs(scale=[0, 1, 1])
        np.testing.assert_array_equal(normal_matrix(matrix), np.eye(3))

    def test_homogeneous_divide(self):
        matrix = np.eye(4)
        matrix[3, 3] = 2.0
        np.testing.assert_allclose(transform_points(np.array([[2, 4, 6]]), matrix), [[1, 2, 3]])

    def test_zero_w_not_divided(self):
        matrix = np.eye(4)
        matrix[3, 3] = 0.0
        np.testing.assert_allclose(transform_points(np.array([[2, 4, 6]]), matrix), [[2, 4, 6]])


class TestBaker:
    """Test scene traversal and geometry baking"""

    def test_nested_transforms_accumulate(self):
        child = Node(name='child', translation=[0, 1, 0])
        parent = Node(name='parent', translation=[1, 0, 0], scale=[2, 2, 2], children=[child])
        worlds = {node.name: world for node, world in iter_node_transforms([parent])}
        np.testing.assert_allclose(worlds['child'][:3, 3], [1, 2, 0])

    def test_cycle_raises(self):
        a, b = Node(name='a'), Node(name='b')
        a.children.append(b)
        b.children.append(a)
        with pytest.raises(SceneGraphError):
            list(iter_node_transforms([a]))

    def test_shared_child_raises(self):
        shared = Node(name='shared')
        roots = [Node(name='left', children=[shared]), Node(name='right', children=[shared])]
        with pytest.raises(SceneGraphError):
            list(iter_node_transforms(roots))

    def test_roots_shared_between_scenes_visited_once(self):
        document = Document()
        node = document.create_node('root')
        document.create_scene('a').nodes.append(node)
        document.create_scene('b').nodes.append(node)
        assert [n.name for n, _ in iter_instances(document)] == ['root']

    def test_root_nodes_span_every_scene(self):
        document = Document()
        first, second, child = document.create_node('first'), document.create_node('second'), document.create_node('child')
        first.children.append(child)
        document.create_scene('a').nodes.extend([first, second])
        document.create_scene('b').nodes.append(first)
        assert [n.name for n in document.root_nodes()] == ['first', 'second']

        document.scenes.clear()
        assert [n.name for n in document.root_nodes()] == ['first', 'second']

    def test_bake_moves_positions(self):
        world = compose_trs(translation=[0, 0, 5])
        baked = bake_primitive(quad_primitive(), world)
        assert baked.get_attribute('POSITION').array[:, 2].tolist() == [5, 5, 5, 5]

    def test_bake_keeps_source_untouched(self):
        primitive = quad_primitive()
        bake_primitive(primitive, compose_trs(translation=[0, 0, 5]))
        assert primitive.get_attribute('POSITION').array[:, 2].max() == 0

    def test_bake_normals_use_inverse_transpose(self):
        primitive = _triangle(normal=[1, 1, 0])
        baked = bake_primitive(primitive, compose_trs(scale=[2, 1, 1]))
        expected = np.array([0.5, 1, 0]) / np.linalg.norm([0.5, 1, 0])
        np.testing.assert_allclose(baked.get_attribute('NORMAL').array[0], expected, atol=1e-6)

    def test_tangent_w_preserved(self):
        primitive = quad_primitive()
        primitive.set_attribute('TANGENT', Accessor(np.tile([1, 0, 0, -1], (4, 1)).astype(np.float32), 'VEC4'))
        baked = bake_primitive(primitive, compose_trs(rotation=[0, 0, np.sqrt(0.5), np.sqrt(0.5)]))
        tangent = baked.get_attribute('TANGENT').array
        np.testing.assert_allclose(tangent[:, 3], -1)
        np.testing.assert_allclose(tangent[0, :3], [0, 1, 0], atol=1e-6)

    def test_missing_position_raises(self):
        with pytest.raises(MissingAttributeError):
            bake_primitive(Primitive(attributes={}), np.eye(4))

    def test_bake_document_emits_each_instance(self):
        document = Document()
        mesh = document.create_mesh('quad')
        mesh.primitives.append(quad_primitive())
        scene = document.create_scene()
        for x in (0, 10):
            node = document.create_node(f'n{x}', mesh)
            node.translation = [x, 0, 0]
            scene.nodes.append(node)

        baked = bake_document(document)
        assert len(baked) == 2
        assert baked[1].get_attribute('POSITION').array[:, 0].min() == 10


class TestSurfaceArea:
    """Test world-space area accumulation"""

    def test_triangle_area(self):
        positions = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]])
        assert triangle_area(positions) == pytest.approx(0.5)

    def test_out_of_range_indices_ignored(self):
        positions = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]])
        assert triangle_area(positions, np.array([0, 1, 2, 0, 1, 9])) == pytest.approx(0.5)

    def test_material_areas_include_node_scale(self, make_document):
        document = make_document([{'name': 'A'}, {'name': 'B', 'size': 2.0}])
        document.nodes[0].scale = [3, 1, 1]
        areas = {m.name: area for m, area in material_areas(document).items()}
        assert areas['A'] == pytest.approx(3.0)
        assert areas['B'] == pytest.approx(4.0)


class TestMerger:
    """Test merging baked primitives"""

    def test_counts_and_index_offsets(self):
        material = Material(name='m')
        merged = merge_primitives([quad_primitive(material), quad_primitive(material)], material)
        assert merged.vertex_count == 8
        assert merged.indices.array.tolist() == [0, 1, 2, 0, 2, 3, 4, 5, 6, 4, 6, 7]
        assert merged.indices.array.dtype == np.uint16
        assert merged.material is material

    def test_non_indexed_primitive_gets_sequential_indices(self):
        merged = merge_primitives([_triangle(), quad_primitive()])
        assert merged.indices.array[:3].tolist() == [0, 1, 2]
        assert merged.indices.array[3:].tolist() == [3, 4, 5, 3, 5, 6]

    def test_large_merge_uses_uint32(self):
        count = 40000
        big = Primitive(attributes={'POSITION': Accessor(np.zeros((count, 3), dtype=np.float32), 'VEC3')})
        merged = merge_primitives([big, big])
        assert merged.indices.array.dtype == np.uint32
        assert int(merged.indices.array.max()) == 2 * count - 1

    def test_attribute_missing_on_one_primitive_dropped(self):
        merged = merge_primitives([quad_primitive(), _triangle()])
        assert set(merged.list_semantics()) == {'POSITION'}

    def test_skinning_dropped(self):
        primitive = quad_primitive()
        primitive.set_attribute('JOINTS_0', Accessor(np.zeros((4, 4), dtype=np.uint8), 'VEC4'))
        merged = merge_primitives([primitive])
        assert 'JOINTS_0' not in merged.attributes

    def test_merge_by_material_groups_in_order(self):
        a, b = Material(name='a'), Material(name='b')
        lines = quad_primitive(a)
        lines.mode = 1
        result = merge_by_material([quad_primitive(b), quad_primitive(a), lines, quad_primitive(b)])
        assert [p.material.name for p in result] == ['b', 'a', 'a']
        assert result[0].vertex_count == 8
        assert result[2] is lines
