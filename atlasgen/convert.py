"""
File-level processing

Loads one glTF/GLB file (or every file of a folder, merged), atlases and
collapses it, and saves the result.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from atlasgen.document.gltf_io import merge_documents, read_gltf, write_gltf
from atlasgen.document.model import Document
from atlasgen.geometry.collapse import collapse_to_single_mesh_and_material
from atlasgen.schema.layout import LayoutRecord, dump_layout
from atlasgen.schema.options import AtlasOptions
from atlasgen.texturing.pipeline import AtlasResult, process_atlas

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.glb', '.gltf')


@dataclass
class ProcessResult:
    """
    A processed document ready to be saved.

    Attributes:
        document: The (possibly collapsed) document
        atlas: Atlas run result; empty when atlasing was skipped
        source_files: Files the document was loaded from
    """
    document: Document
    atlas: AtlasResult = field(default_factory=AtlasResult)
    source_files: List[str] = field(default_factory=list)

    @property
    def layout(self) -> List[LayoutRecord]:
        return self.atlas.layout

    def save(self, path: str) -> None:
        """
        Save the document; the extension picks .glb or .gltf.

        Examples:
            >>> result = process_file("chair.glb")
            >>> result.save("chair.atlas.glb")
        """
        _detect_format(path)
        write_gltf(self.document, path)

    def dump_layout(self, path: str) -> None:
        """Write the layout records as JSON (input for `atlasgen verify`)."""
        dump_layout(self.layout, path)
        logger.info(f"Wrote layout to {path}")


def _detect_format(path: str) -> str:
    """Detect format from file extension"""
    ext = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported file format: {ext}. Supported: .glb, .gltf")
    return ext[1:]


def list_folder(folder: str) -> List[str]:
    """All .glb/.gltf files of a folder, sorted by name."""
    if not os.path.isdir(folder):
        raise FileNotFoundError(f"Input folder not found: {folder}")
    files = sorted(
        os.path.join(folder, name)
        for name in os.listdir(folder)
        if os.path.splitext(name)[1].lower() in SUPPORTED_EXTENSIONS
    )
    if not files:
        raise ValueError(f"No .glb/.gltf files found in folder {folder}")
    return files


def load(input_path: str, folder: bool = False) -> ProcessResult:
    """
    Load a file, or every file of a folder merged into one document.

    Raises:
        FileNotFoundError: If the input does not exist
        ValueError: If the format is unsupported or the folder holds no models
    """
    if folder:
        files = list_folder(input_path)
        logger.info(f"Merging {len(files)} file(s) from {input_path}")
        document = read_gltf(files[0])
        for path in files[1:]:
            merge_documents(document, read_gltf(path))
    else:
        if not os.path.exists(input_path):
            raise FileNotFoundError(f"Input file not found: {input_path}")
        _detect_format(input_path)
        files = [input_path]
        document = read_gltf(input_path)

    return ProcessResult(document=document, source_files=files)


def default_output_path(input_path: str, folder: bool = False) -> str:
    """<name>.atlas.glb next to the input, or merged.atlas.glb inside a folder."""
    if folder:
        return os.path.join(input_path, 'merged.atlas.glb')
    base = os.path.splitext(os.path.basename(input_path))[0]
    return os.path.join(os.path.dirname(input_path), f"{base}.atlas.glb")


def process_file(
    input_path: str,
    options: Optional[AtlasOptions] = None,
    folder: bool = False,
    skip_atlas: bool = False,
) -> ProcessResult:
    """
    Load, atlas and collapse a model.

    Args:
        input_path: .glb/.gltf file, or a folder when folder=True
        options: Atlas options (defaults apply when omitted)
        folder: Treat input_path as a folder of models to merge
        skip_atlas: Only load; leave textures, UVs and geometry untouched

    Returns:
        ProcessResult to save

    Examples:
        >>> process_file("scene.glb").save("scene.atlas.glb")
        >>> process_file("models/", folder=True, options=AtlasOptions(max_bins=2))
    """
    result = load(input_path, folder=folder)
    document = result.document
    logger.info(f"Detected {len(document.materials)} material(s), {len(document.textures)} texture(s)")

    if skip_atlas:
        logger.info("Skipping atlas/UV changes")
        return result

    result.atlas = process_atlas(document, options or AtlasOptions())
    collapse_to_single_mesh_and_material(document, result.atlas)
    return result
