"""メッシュ生成ユーティリティ."""

from nlsolid.mesh.box_mesh import BoxMesh, make_box_mesh

__all__ = [
    "BoxMesh",
    "make_box_mesh",
]
