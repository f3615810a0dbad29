"""
atlasgen Quick Start Example

This example atlases a model's textures and collapses it into a single draw call.
"""

from atlasgen import process_file

print("Atlasing chair.glb...")
process_file("models/chair.glb").save("output/chair.atlas.glb")
print("✅ Saved to output/chair.atlas.glb")

print("\nAtlasing every model in props/ into one file...")
process_file("models/props", folder=True).save("output/props.atlas.glb")
print("✅ Saved to output/props.atlas.glb")

print("\nDone! Check the output/ directory for your models.")
