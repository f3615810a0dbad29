"""
In-memory scene document.

A deliberately small glTF-shaped object graph: scenes hold root nodes, nodes
hold children and an optional mesh, meshes hold primitives, primitives hold
vertex attributes (Accessors backed by numpy arrays) and a material, and
materials reference textures through TextureInfo slots.

All objects compare by identity so they can be used as dict keys and set
members while they are being mutated.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

ELEMENT_SIZES = {
    'SCALAR': 1,
    'VEC2': 2,
    'VEC3': 3,
    'VEC4': 4,
    'MAT2': 4,
    'MAT3': 9,
    'MAT4': 16,
}

TEXTURE_SLOTS = (
    'base_color_texture',
    'metallic_roughness_texture',
    'normal_texture',
    'occlusion_texture',
    'emissive_texture',
)


@dataclass(eq=False)
class Accessor:
    """
    Typed vertex or index data.

    ``array`` has shape (count,) for SCALAR and (count, n) for vector types.
    """
    array: np.ndarray
    type: str = 'VEC3'
    name: str = ''
    normalized: bool = False

    @property
    def count(self) -> int:
        return int(self.array.shape[0])

    @property
    def element_size(self) -> int:
        return ELEMENT_SIZES[self.type]

    def clone(self) -> 'Accessor':
        return Accessor(self.array.copy(), self.type, self.name, self.normalized)


@dataclass(eq=False)
class Texture:
    name: str = ''
    image: Optional[bytes] = None
    mime_type: str = 'image/png'
    sampler: Optional[Dict[str, int]] = None


@dataclass
class TextureTransform:
    """KHR_texture_transform parameters."""
    offset: Tuple[float, float] = (0.0, 0.0)
    scale: Tuple[float, float] = (1.0, 1.0)
    rotation: float = 0.0
    tex_coord: Optional[int] = None


@dataclass(eq=False)
class TextureInfo:
    texture: Texture
    tex_coord: int = 0
    transform: Optional[TextureTransform] = None
    scale: float = 1.0       # normalTexture.scale
    strength: float = 1.0    # occlusionTexture.strength


@dataclass(eq=False)
class Material:
    name: str = ''
    base_color_texture: Optional[TextureInfo] = None
    metallic_roughness_texture: Optional[TextureInfo] = None
    normal_texture: Optional[TextureInfo] = None
    occlusion_texture: Optional[TextureInfo] = None
    emissive_texture: Optional[TextureInfo] = None
    base_color_factor: List[float] = field(default_factory=lambda: [1.0, 1.0, 1.0, 1.0])
    metallic_factor: float = 1.0
    roughness_factor: float = 1.0
    emissive_factor: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    alpha_mode: str = 'OPAQUE'
    alpha_cutoff: Optional[float] = None
    double_sided: bool = False

    def texture_infos(self) -> List[TextureInfo]:
        """Return every populated texture slot."""
        infos = []
        for slot in TEXTURE_SLOTS:
            info = getattr(self, slot)
            if info is not None:
                infos.append(info)
        return infos

    def textures(self) -> List[Texture]:
        return [info.texture for info in self.texture_infos()]


@dataclass(eq=False)
class Primitive:
    attributes: Dict[str, Accessor] = field(default_factory=dict)
    indices: Optional[Accessor] = None
    material: Optional[Material] = None
    mode: int = 4
    targets: List[Dict[str, Accessor]] = field(default_factory=list)

    def get_attribute(self, semantic: str) -> Optional[Accessor]:
        return self.attributes.get(semantic)

    def set_attribute(self, semantic: str, accessor: Optional[Accessor]) -> None:
        """Set an attribute, or remove it when accessor is None."""
        if accessor is None:
            self.attributes.pop(semantic, None)
        else:
            self.attributes[semantic] = accessor

    def list_semantics(self) -> List[str]:
        return list(self.attributes)

    @property
    def vertex_count(self) -> int:
        position = self.attributes.get('POSITION')
        return position.count if position is not None else 0


@dataclass(eq=False)
class Mesh:
    name: str = ''
    primitives: List[Primitive] = field(default_factory=list)


@dataclass(eq=False)
class Node:
    """
    Scene graph node.

    Local transform is either ``matrix`` (16 floats, column-major as in glTF) or
    the TRS triple; rotation is a quaternion in glTF order [x, y, z, w].
    """
    name: str = ''
    mesh: Optional[Mesh] = None
    children: List['Node'] = field(default_factory=list)
    matrix: Optional[List[float]] = None
    translation: Optional[List[float]] = None
    rotation: Optional[List[float]] = None
    scale: Optional[List[float]] = None

    @property
    def has_transform(self) -> bool:
        return any(v is not None for v in (self.matrix, self.translation, self.rotation, self.scale))


@dataclass(eq=False)
class Scene:
    name: str = ''
    nodes: List[Node] = field(default_factory=list)


class Document:
    """Container for every object of one scene file."""

    def __init__(self):
        self.scenes: List[Scene] = []
        self.nodes: List[Node] = []
        self.meshes: List[Mesh] = []
        self.materials: List[Material] = []
        self.textures: List[Texture] = []

    # Creation

    def create_scene(self, name: str = '') -> Scene:
        scene = Scene(name=name)
        self.scenes.append(scene)
        return scene

    def create_node(self, name: str = '', mesh: Optional[Mesh] = None) -> Node:
        node = Node(name=name, mesh=mesh)
        self.nodes.append(node)
        return node

    def create_mesh(self, name: str = '') -> Mesh:
        mesh = Mesh(name=name)
        self.meshes.append(mesh)
        return mesh

    def create_material(self, name: str = '') -> Material:
        material = Material(name=name)
        self.materials.append(material)
        return material

    def create_texture(self, name: str = '', image: Optional[bytes] = None, mime_type: str = 'image/png') -> Texture:
        texture = Texture(name=name, image=image, mime_type=mime_type)
        self.textures.append(texture)
        return texture

    # Disposal. Each removes the object and every reference to it.

    def dispose_texture(self, texture: Texture) -> None:
        if texture in self.textures:
            self.textures.remove(texture)
        for material in self.materials:
            for slot in TEXTURE_SLOTS:
                info = getattr(material, slot)
                if info is not None and info.texture is texture:
                    setattr(material, slot, None)

    def dispose_material(self, material: Material) -> None:
        if material in self.materials:
            self.materials.remove(material)
        for primitive in self.iter_primitives():
            if primitive.material is material:
                primitive.material = None

    def dispose_mesh(self, mesh: Mesh) -> None:
        if mesh in self.meshes:
            self.meshes.remove(mesh)
        for node in self.nodes:
            if node.mesh is mesh:
                node.mesh = None

    def dispose_node(self, node: Node) -> None:
        if node in self.nodes:
            self.nodes.remove(node)
        for other in self.nodes:
            if node in other.children:
                other.children.remove(node)
        for scene in self.scenes:
            if node in scene.nodes:
                scene.nodes.remove(node)

    def dispose_scene(self, scene: Scene) -> None:
        if scene in self.scenes:
            self.scenes.remove(scene)

    # Queries

    def iter_primitives(self) -> Iterator[Primitive]:
        for mesh in self.meshes:
            yield from mesh.primitives

    def root_nodes(self) -> List[Node]:
        """Roots of every scene in order, each listed once, or parentless nodes when there are no scenes."""
        if self.scenes:
            roots = []
            for scene in self.scenes:
                roots.extend(n for n in scene.nodes if n not in roots)
            return roots
        children = {id(c) for n in self.nodes for c in n.children}
        return [n for n in self.nodes if id(n) not in children]

    def merge(self, other: 'Document') -> 'Document':
        """Move every object of ``other`` into this document."""
        self.scenes.extend(other.scenes)
        self.nodes.extend(other.nodes)
        self.meshes.extend(other.meshes)
        self.materials.extend(other.materials)
        self.textures.extend(other.textures)
        other.scenes, other.nodes, other.meshes, other.materials, other.textures = [], [], [], [], []
        return self
