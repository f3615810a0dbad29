"""
glTF/GLB reader and writer built on pygltflib.

Reading turns a glTF file into an in-memory Document: every accessor becomes a
numpy array (byte strides, sparse substitution and normalized integers are
resolved up front), every image is pulled into memory as encoded bytes.

Writing does the reverse and consolidates all geometry and images into a single
binary buffer, one bufferView per accessor/image. GLB output stores that buffer
as the binary chunk; .gltf output embeds it as a data URI.

Skins, animations and cameras are not carried through.
"""

import base64
import logging
import mimetypes
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

import numpy as np
import pygltflib

from atlasgen.document.format_utils import (
    get_extension,
    get_field,
    get_list_field,
    iter_attribute_items,
)
from atlasgen.document.model import (
    ELEMENT_SIZES,
    Accessor,
    Document,
    Material,
    Mesh,
    Node,
    Primitive,
    Scene,
    Texture,
    TextureInfo,
    TextureTransform,
)

logger = logging.getLogger(__name__)

COMPONENT_DTYPES = {
    pygltflib.BYTE: np.dtype('<i1'),
    pygltflib.UNSIGNED_BYTE: np.dtype('<u1'),
    pygltflib.SHORT: np.dtype('<i2'),
    pygltflib.UNSIGNED_SHORT: np.dtype('<u2'),
    pygltflib.UNSIGNED_INT: np.dtype('<u4'),
    pygltflib.FLOAT: np.dtype('<f4'),
}

TEXTURE_TRANSFORM = 'KHR_texture_transform'
TEXTURE_WEBP = 'EXT_texture_webp'
IMAGE_SOURCE_EXTENSIONS = (TEXTURE_WEBP, 'KHR_texture_basisu', 'MSFT_texture_dds')


def read_gltf(path: str) -> Document:
    """
    Load a .glb or .gltf file into a Document.

    Args:
        path: Path to the file

    Returns:
        Document holding the file's scenes, nodes, meshes, materials and textures

    Raises:
        FileNotFoundError: If the file does not exist
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Input file not found: {path}")

    gltf = pygltflib.GLTF2.load(path)
    document = _GLTFReader(gltf, Path(path).parent).read()
    logger.info(
        f"Read {path}: {len(document.meshes)} mesh(es), "
        f"{len(document.materials)} material(s), {len(document.textures)} texture(s)"
    )
    return document


def write_gltf(document: Document, path: str) -> None:
    """
    Save a Document as .glb (binary) or .gltf (JSON with embedded buffer).

    Args:
        document: Document to save
        path: Output path; the extension selects the container
    """
    ext = os.path.splitext(path)[1].lower()
    if ext not in ('.glb', '.gltf'):
        raise ValueError(f"Unsupported output format: {ext}. Supported: .glb, .gltf")

    gltf = _GLTFWriter(document, embed_buffer=(ext == '.gltf')).build()
    if ext == '.glb':
        gltf.save_binary(path)
    else:
        gltf.save_json(path)
    logger.info(f"Wrote {path}")


def merge_documents(target: Document, other: Document) -> Document:
    """Append every scene and object of ``other`` to ``target``."""
    return target.merge(other)


#########################
# READING
#########################

def _dequantize(array: np.ndarray) -> np.ndarray:
    """Convert normalized integer data to floats in [0, 1] or [-1, 1]."""
    info = np.iinfo(array.dtype)
    result = array.astype(np.float32) / float(info.max)
    if info.min < 0:
        result = np.maximum(result, -1.0)
    return result


class _GLTFReader:

    def __init__(self, gltf: pygltflib.GLTF2, base_dir: Path):
        self.gltf = gltf
        self.base_dir = base_dir
        self._buffers: Dict[int, bytes] = {}
        self._accessors: Dict[int, Accessor] = {}

    def read(self) -> Document:
        gltf = self.gltf
        for collection in ('skins', 'animations', 'cameras'):
            if get_list_field(gltf, collection):
                logger.warning(f"Ignoring {collection} in input; they are not carried through")

        document = Document()
        document.textures = [self._read_texture(i, t) for i, t in enumerate(gltf.textures or [])]
        document.materials = [self._read_material(m, document.textures) for m in gltf.materials or []]
        document.meshes = [self._read_mesh(m, document.materials) for m in gltf.meshes or []]

        nodes = []
        for gnode in gltf.nodes or []:
            mesh_index = get_field(gnode, 'mesh')
            nodes.append(Node(
                name=get_field(gnode, 'name', ''),
                mesh=document.meshes[mesh_index] if mesh_index is not None else None,
                matrix=_float_list(get_field(gnode, 'matrix')),
                translation=_float_list(get_field(gnode, 'translation')),
                rotation=_float_list(get_field(gnode, 'rotation')),
                scale=_float_list(get_field(gnode, 'scale')),
            ))
        for gnode, node in zip(gltf.nodes or [], nodes):
            node.children = [nodes[i] for i in get_list_field(gnode, 'children')]
        document.nodes = nodes

        scenes = [
            Scene(name=get_field(s, 'name', ''), nodes=[nodes[i] for i in get_list_field(s, 'nodes')])
            for s in gltf.scenes or []
        ]
        # Default scene first
        default_index = get_field(gltf, 'scene')
        if default_index is not None and 0 < default_index < len(scenes):
            scenes.insert(0, scenes.pop(default_index))
        document.scenes = scenes
        return document

    # Raw data

    def _buffer_data(self, index: int) -> bytes:
        if index in self._buffers:
            return self._buffers[index]

        uri = get_field(self.gltf.buffers[index], 'uri')
        if uri is None:
            data = self.gltf.binary_blob() or b''
        elif uri.startswith('data:'):
            data = base64.b64decode(uri.split(',', 1)[1])
        else:
            data = (self.base_dir / unquote(uri)).read_bytes()

        self._buffers[index] = data
        return data

    def _view_slice(self, view_index: int) -> bytes:
        view = self.gltf.bufferViews[view_index]
        data = self._buffer_data(view.buffer)
        start = get_field(view, 'byteOffset', 0)
        return data[start:start + view.byteLength]

    def _read_view_array(
        self,
        view_index: int,
        byte_offset: int,
        dtype: np.dtype,
        count: int,
        width: int,
    ) -> np.ndarray:
        view = self.gltf.bufferViews[view_index]
        data = self._buffer_data(view.buffer)
        offset = get_field(view, 'byteOffset', 0) + (byte_offset or 0)
        stride = get_field(view, 'byteStride') or dtype.itemsize * width
        if count == 0:
            return np.zeros((0, width), dtype=dtype)
        strided = np.ndarray(
            shape=(count, width),
            dtype=dtype,
            buffer=data,
            offset=offset,
            strides=(stride, dtype.itemsize),
        )
        return strided.copy()

    def _read_accessor(self, index: int) -> Accessor:
        if index in self._accessors:
            return self._accessors[index]

        gacc = self.gltf.accessors[index]
        dtype = COMPONENT_DTYPES[gacc.componentType]
        width = ELEMENT_SIZES[gacc.type]
        count = gacc.count

        view_index = get_field(gacc, 'bufferView')
        if view_index is None:
            array = np.zeros((count, width), dtype=dtype)
        else:
            array = self._read_view_array(view_index, get_field(gacc, 'byteOffset', 0), dtype, count, width)

        sparse = get_field(gacc, 'sparse')
        if sparse is not None and get_field(sparse, 'count', 0) > 0:
            sparse_count = get_field(sparse, 'count')
            sparse_indices = get_field(sparse, 'indices')
            sparse_values = get_field(sparse, 'values')
            positions = self._read_view_array(
                get_field(sparse_indices, 'bufferView'),
                get_field(sparse_indices, 'byteOffset', 0),
                COMPONENT_DTYPES[get_field(sparse_indices, 'componentType')],
                sparse_count,
                1,
            ).reshape(sparse_count)
            values = self._read_view_array(
                get_field(sparse_values, 'bufferView'),
                get_field(sparse_values, 'byteOffset', 0),
                dtype,
                sparse_count,
                width,
            )
            array[positions.astype(np.int64)] = values

        if get_field(gacc, 'normalized', False):
            array = _dequantize(array)

        if gacc.type == 'SCALAR':
            array = array.reshape(count)

        accessor = Accessor(array=array, type=gacc.type, name=get_field(gacc, 'name', ''))
        self._accessors[index] = accessor
        return accessor

    # Objects

    def _read_texture(self, index: int, gtex) -> Texture:
        source = get_field(gtex, 'source')
        if source is None:
            for ext_name in IMAGE_SOURCE_EXTENSIONS:
                ext = get_extension(gtex, ext_name)
                if ext and ext.get('source') is not None:
                    source = ext['source']
                    break

        texture = Texture(name=get_field(gtex, 'name', ''))
        if source is not None:
            gimage = self.gltf.images[source]
            texture.image, texture.mime_type = self._read_image(gimage)
            if not texture.name:
                texture.name = get_field(gimage, 'name', '') or _uri_stem(get_field(gimage, 'uri'))
        else:
            logger.warning(f"Texture {index} has no image source")

        sampler_index = get_field(gtex, 'sampler')
        if sampler_index is not None:
            gsampler = self.gltf.samplers[sampler_index]
            texture.sampler = {
                key: get_field(gsampler, key)
                for key in ('magFilter', 'minFilter', 'wrapS', 'wrapT')
                if get_field(gsampler, key) is not None
            }
        return texture

    def _read_image(self, gimage) -> Tuple[bytes, str]:
        mime = get_field(gimage, 'mimeType')
        view_index = get_field(gimage, 'bufferView')
        if view_index is not None:
            return self._view_slice(view_index), mime or 'image/png'

        uri = get_field(gimage, 'uri', '')
        if uri.startswith('data:'):
            header, payload = uri.split(',', 1)
            mime = mime or header[5:].split(';')[0]
            return base64.b64decode(payload), mime or 'image/png'

        path = self.base_dir / unquote(uri)
        guessed = mimetypes.guess_type(str(path))[0]
        return path.read_bytes(), mime or guessed or 'image/png'

    def _read_texture_info(self, ginfo, textures: List[Texture]) -> Optional[TextureInfo]:
        if ginfo is None:
            return None
        index = get_field(ginfo, 'index')
        if index is None or not 0 <= index < len(textures):
            return None

        info = TextureInfo(
            texture=textures[index],
            tex_coord=get_field(ginfo, 'texCoord', 0),
            scale=float(get_field(ginfo, 'scale', 1.0)),
            strength=float(get_field(ginfo, 'strength', 1.0)),
        )
        transform = get_extension(ginfo, TEXTURE_TRANSFORM)
        if transform:
            info.transform = TextureTransform(
                offset=tuple(transform.get('offset', (0.0, 0.0))),
                scale=tuple(transform.get('scale', (1.0, 1.0))),
                rotation=float(transform.get('rotation', 0.0)),
                tex_coord=transform.get('texCoord'),
            )
        return info

    def _read_material(self, gmat, textures: List[Texture]) -> Material:
        pbr = get_field(gmat, 'pbrMetallicRoughness')
        return Material(
            name=get_field(gmat, 'name', ''),
            base_color_texture=self._read_texture_info(get_field(pbr, 'baseColorTexture'), textures),
            metallic_roughness_texture=self._read_texture_info(get_field(pbr, 'metallicRoughnessTexture'), textures),
            normal_texture=self._read_texture_info(get_field(gmat, 'normalTexture'), textures),
            occlusion_texture=self._read_texture_info(get_field(gmat, 'occlusionTexture'), textures),
            emissive_texture=self._read_texture_info(get_field(gmat, 'emissiveTexture'), textures),
            base_color_factor=list(get_field(pbr, 'baseColorFactor', [1.0, 1.0, 1.0, 1.0])),
            metallic_factor=float(get_field(pbr, 'metallicFactor', 1.0)),
            roughness_factor=float(get_field(pbr, 'roughnessFactor', 1.0)),
            emissive_factor=list(get_field(gmat, 'emissiveFactor', [0.0, 0.0, 0.0])),
            alpha_mode=get_field(gmat, 'alphaMode', 'OPAQUE'),
            alpha_cutoff=get_field(gmat, 'alphaCutoff'),
            double_sided=bool(get_field(gmat, 'doubleSided', False)),
        )

    def _read_mesh(self, gmesh, materials: List[Material]) -> Mesh:
        mesh = Mesh(name=get_field(gmesh, 'name', ''))
        for gprim in get_list_field(gmesh, 'primitives'):
            primitive = Primitive(mode=get_field(gprim, 'mode', 4))
            for semantic, index in iter_attribute_items(get_field(gprim, 'attributes')):
                primitive.attributes[semantic] = self._read_accessor(index)
            indices = get_field(gprim, 'indices')
            if indices is not None:
                primitive.indices = self._read_accessor(indices)
            material = get_field(gprim, 'material')
            if material is not None:
                primitive.material = materials[material]
            for target in get_list_field(gprim, 'targets'):
                primitive.targets.append({
                    semantic: self._read_accessor(index)
                    for semantic, index in iter_attribute_items(target)
                })
            mesh.primitives.append(primitive)
        return mesh


def _float_list(values) -> Optional[List[float]]:
    if values is None:
        return None
    return [float(v) for v in values]


def _uri_stem(uri: Optional[str]) -> str:
    if not uri or uri.startswith('data:'):
        return ''
    return Path(unquote(uri)).stem


#########################
# WRITING
#########################

def _component_type(dtype: np.dtype) -> int:
    for component, candidate in COMPONENT_DTYPES.items():
        if candidate.kind == dtype.kind and candidate.itemsize == dtype.itemsize:
            return component
    raise ValueError(f"No glTF component type for dtype {dtype}")


def _index_array(array: np.ndarray) -> np.ndarray:
    if array.dtype in (np.uint16, np.uint32):
        return array
    if array.size and int(array.max()) > 65535:
        return array.astype(np.uint32)
    return array.astype(np.uint16)


def _attribute_array(array: np.ndarray) -> np.ndarray:
    if array.dtype.kind == 'f' or array.dtype.itemsize > 2:
        return array.astype(np.float32)
    return array


class _GLTFWriter:

    def __init__(self, document: Document, embed_buffer: bool = False):
        self.document = document
        self.embed_buffer = embed_buffer
        self.gltf = pygltflib.GLTF2()
        self.gltf.asset = pygltflib.Asset(version='2.0', generator='atlasgen')
        self.blob = bytearray()
        self.extensions_used = set()
        self.extensions_required = set()
        self._accessor_index: Dict[int, int] = {}
        self._texture_index: Dict[int, int] = {}
        self._sampler_index: Dict[tuple, int] = {}
        self._material_index: Dict[int, int] = {}
        self._mesh_index: Dict[int, int] = {}
        self._node_index: Dict[int, int] = {}

    def build(self) -> pygltflib.GLTF2:
        doc = self.document
        for texture in doc.textures:
            self._add_texture(texture)
        for material in doc.materials:
            self._add_material(material)
        for mesh in doc.meshes:
            self._add_mesh(mesh)

        for node in doc.nodes:
            self._node_index[id(node)] = len(self.gltf.nodes)
            self.gltf.nodes.append(pygltflib.Node(name=node.name or None))
        for node in doc.nodes:
            gnode = self.gltf.nodes[self._node_index[id(node)]]
            if node.mesh is not None:
                gnode.mesh = self._add_mesh(node.mesh)
            gnode.children = [self._node_index[id(c)] for c in node.children if id(c) in self._node_index]
            gnode.matrix = node.matrix
            gnode.translation = node.translation
            gnode.rotation = node.rotation
            gnode.scale = node.scale

        for scene in doc.scenes:
            self.gltf.scenes.append(pygltflib.Scene(
                name=scene.name or None,
                nodes=[self._node_index[id(n)] for n in scene.nodes if id(n) in self._node_index],
            ))
        if self.gltf.scenes:
            self.gltf.scene = 0

        if self.blob:
            buffer = pygltflib.Buffer(byteLength=len(self.blob))
            if self.embed_buffer:
                buffer.uri = 'data:application/octet-stream;base64,' + base64.b64encode(bytes(self.blob)).decode('ascii')
            else:
                self.gltf.set_binary_blob(bytes(self.blob))
            self.gltf.buffers = [buffer]

        self.gltf.extensionsUsed = sorted(self.extensions_used)
        self.gltf.extensionsRequired = sorted(self.extensions_required)
        return self.gltf

    def _add_view(self, data: bytes, target: Optional[int] = None) -> int:
        # 4-byte alignment satisfies every component type
        while len(self.blob) % 4:
            self.blob.append(0)
        view = pygltflib.BufferView(buffer=0, byteOffset=len(self.blob), byteLength=len(data), target=target)
        self.blob.extend(data)
        self.gltf.bufferViews.append(view)
        return len(self.gltf.bufferViews) - 1

    def _add_accessor(self, accessor: Accessor, indices: bool = False, bounds: bool = False) -> int:
        key = id(accessor)
        if key in self._accessor_index:
            return self._accessor_index[key]

        array = _index_array(accessor.array) if indices else _attribute_array(accessor.array)
        array = np.ascontiguousarray(array, dtype=array.dtype.newbyteorder('<'))
        target = pygltflib.ELEMENT_ARRAY_BUFFER if indices else pygltflib.ARRAY_BUFFER
        view = self._add_view(array.tobytes(), target)

        gacc = pygltflib.Accessor(
            bufferView=view,
            byteOffset=0,
            componentType=_component_type(array.dtype),
            count=accessor.count,
            type=accessor.type,
            normalized=True if (accessor.normalized and array.dtype.kind in 'iu' and not indices) else None,
        )
        if bounds and accessor.count:
            matrix = array.reshape(accessor.count, -1)
            gacc.min = [float(v) for v in matrix.min(axis=0)]
            gacc.max = [float(v) for v in matrix.max(axis=0)]

        self.gltf.accessors.append(gacc)
        index = len(self.gltf.accessors) - 1
        self._accessor_index[key] = index
        return index

    def _add_sampler(self, sampler: Optional[Dict[str, int]]) -> Optional[int]:
        if not sampler:
            return None
        key = tuple(sorted(sampler.items()))
        if key not in self._sampler_index:
            self.gltf.samplers.append(pygltflib.Sampler(**sampler))
            self._sampler_index[key] = len(self.gltf.samplers) - 1
        return self._sampler_index[key]

    def _add_texture(self, texture: Texture) -> int:
        key = id(texture)
        if key in self._texture_index:
            return self._texture_index[key]

        gtex = pygltflib.Texture(name=texture.name or None, sampler=self._add_sampler(texture.sampler))
        if texture.image is not None:
            view = self._add_view(texture.image)
            self.gltf.images.append(pygltflib.Image(
                bufferView=view,
                mimeType=texture.mime_type,
                name=texture.name or None,
            ))
            image_index = len(self.gltf.images) - 1
            if texture.mime_type == 'image/webp':
                gtex.extensions = {TEXTURE_WEBP: {'source': image_index}}
                self.extensions_used.add(TEXTURE_WEBP)
                self.extensions_required.add(TEXTURE_WEBP)
            else:
                gtex.source = image_index

        self.gltf.textures.append(gtex)
        index = len(self.gltf.textures) - 1
        self._texture_index[key] = index
        return index

    def _texture_info(self, info: Optional[TextureInfo], kind=pygltflib.TextureInfo):
        if info is None:
            return None
        ginfo = kind(index=self._add_texture(info.texture), texCoord=info.tex_coord)
        if kind is pygltflib.NormalMaterialTexture:
            ginfo.scale = info.scale
        elif kind is pygltflib.OcclusionTextureInfo:
            ginfo.strength = info.strength
        if info.transform is not None:
            t = info.transform
            payload = {
                'offset': list(t.offset),
                'scale': list(t.scale),
                'rotation': t.rotation,
            }
            if t.tex_coord is not None:
                payload['texCoord'] = t.tex_coord
            ginfo.extensions = {TEXTURE_TRANSFORM: payload}
            self.extensions_used.add(TEXTURE_TRANSFORM)
        return ginfo

    def _add_material(self, material: Material) -> int:
        key = id(material)
        if key in self._material_index:
            return self._material_index[key]

        pbr = pygltflib.PbrMetallicRoughness(
            baseColorFactor=list(material.base_color_factor),
            metallicFactor=material.metallic_factor,
            roughnessFactor=material.roughness_factor,
            baseColorTexture=self._texture_info(material.base_color_texture),
            metallicRoughnessTexture=self._texture_info(material.metallic_roughness_texture),
        )
        gmat = pygltflib.Material(
            name=material.name or None,
            pbrMetallicRoughness=pbr,
            normalTexture=self._texture_info(material.normal_texture, pygltflib.NormalMaterialTexture),
            occlusionTexture=self._texture_info(material.occlusion_texture, pygltflib.OcclusionTextureInfo),
            emissiveTexture=self._texture_info(material.emissive_texture),
            emissiveFactor=list(material.emissive_factor),
            alphaMode=material.alpha_mode,
            alphaCutoff=material.alpha_cutoff if material.alpha_mode == 'MASK' else None,
            doubleSided=material.double_sided,
        )
        self.gltf.materials.append(gmat)
        index = len(self.gltf.materials) - 1
        self._material_index[key] = index
        return index

    def _attributes(self, attributes: Dict[str, Accessor], bounds: bool) -> pygltflib.Attributes:
        gattrs = pygltflib.Attributes()
        for semantic, accessor in attributes.items():
            setattr(gattrs, semantic, self._add_accessor(accessor, bounds=bounds and semantic == 'POSITION'))
        return gattrs

    def _add_mesh(self, mesh: Mesh) -> int:
        key = id(mesh)
        if key in self._mesh_index:
            return self._mesh_index[key]

        gmesh = pygltflib.Mesh(name=mesh.name or None)
        for primitive in mesh.primitives:
            gprim = pygltflib.Primitive(
                attributes=self._attributes(primitive.attributes, bounds=True),
                mode=primitive.mode,
            )
            if primitive.indices is not None:
                gprim.indices = self._add_accessor(primitive.indices, indices=True)
            if primitive.material is not None:
                gprim.material = self._add_material(primitive.material)
            if primitive.targets:
                gprim.targets = [self._attributes(t, bounds=True) for t in primitive.targets]
            gmesh.primitives.append(gprim)

        self.gltf.meshes.append(gmesh)
        index = len(self.gltf.meshes) - 1
        self._mesh_index[key] = index
        return index
