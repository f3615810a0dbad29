"""
atlasgen Advanced Example

This example runs the atlas and collapse steps separately, inspects the
per-channel layout, and verifies the result before saving.
"""

from atlasgen import AtlasOptions, collapse_to_single_mesh_and_material, process_atlas, read_gltf, write_gltf
from atlasgen.schema.layout import dump_layout
from atlasgen.verify import verify_document

options = AtlasOptions(
    channels=["baseColor", "normal", "orm"],
    max_size=2048,
    max_bins=2,
    formats={"basecolor": "jpeg", "normal": "png", "orm": "png"},
    quality=90,
)

document = read_gltf("models/room.glb")
print(f"Loaded {len(document.materials)} materials, {len(document.textures)} textures")

# Pack textures and remap UVs
result = process_atlas(document, options)
print(f"\n--- Layout (canonical channel: {result.canonical.value if result.canonical else 'none'}) ---")
for record in result.layout:
    for atlas in record.atlases:
        print(f"{record.channel} bin {atlas.index}: {atlas.width}x{atlas.height}, {len(atlas.rects)} rects")

# Bake and merge geometry
mesh = collapse_to_single_mesh_and_material(document, result)
print(f"\nMerged into {len(mesh.primitives)} primitive(s)")

report = verify_document(document, result.layout)
if report.ok:
    print("✅ Verification passed")
else:
    for error in report.errors:
        print(f"✗ {error}")

write_gltf(document, "output/room.atlas.glb")
dump_layout(result.layout, "output/room.layout.json")
print("\n✅ Saved output/room.atlas.glb and output/room.layout.json")
