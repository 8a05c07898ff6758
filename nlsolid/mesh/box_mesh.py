"""直方体領域の HEX8 構造格子メッシュ."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class BoxMesh:
    """直方体メッシュ.

    Attributes:
        nodes: (n_nodes, 3) 節点座標
        conn: (n_elems, 8) 接続配列（HEX8 節点順序）
        shape: (nx, ny, nz) 各方向の要素数
    """

    nodes: np.ndarray
    conn: np.ndarray
    shape: tuple[int, int, int]

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_elems(self) -> int:
        return len(self.conn)

    @property
    def ndof(self) -> int:
        return 3 * self.n_nodes

    def nodes_on_plane(self, axis: int, value: float, tol: float = 1e-10) -> np.ndarray:
        """座標 x_axis = value の平面上の節点番号."""
        if axis not in (0, 1, 2):
            raise ValueError(f"axis は 0, 1, 2: {axis}")
        return np.where(np.abs(self.nodes[:, axis] - value) < tol)[0]

    def dofs(self, node_ids: np.ndarray, components: tuple[int, ...] = (0, 1, 2)) -> np.ndarray:
        """節点番号と変位成分から全体 DOF 番号を返す."""
        node_ids = np.asarray(node_ids, dtype=int)
        comps = np.asarray(components, dtype=int)
        return (node_ids[:, None] * 3 + comps[None, :]).ravel()


def make_box_mesh(
    Lx: float,
    Ly: float,
    Lz: float,
    nx: int,
    ny: int,
    nz: int,
    *,
    shear_xy: float = 0.0,
) -> BoxMesh:
    """[0,Lx]×[0,Ly]×[0,Lz] の均一 HEX8 メッシュを生成する.

    Args:
        Lx, Ly, Lz: 各方向の長さ
        nx, ny, nz: 各方向の要素数
        shear_xy: x 座標に y·shear_xy を加える（平行六面体メッシュ）

    Returns:
        BoxMesh
    """
    if min(nx, ny, nz) < 1:
        raise ValueError(f"要素数は1以上: nx={nx}, ny={ny}, nz={nz}")
    if min(Lx, Ly, Lz) <= 0.0:
        raise ValueError(f"寸法は正値: Lx={Lx}, Ly={Ly}, Lz={Lz}")

    x = np.linspace(0.0, Lx, nx + 1)
    y = np.linspace(0.0, Ly, ny + 1)
    z = np.linspace(0.0, Lz, nz + 1)
    zz, yy, xx = np.meshgrid(z, y, x, indexing="ij")
    nodes = np.column_stack([xx.ravel() + shear_xy * yy.ravel(), yy.ravel(), zz.ravel()])

    def nid(i: int, j: int, k: int) -> int:
        return (k * (ny + 1) + j) * (nx + 1) + i

    conn = np.empty((nx * ny * nz, 8), dtype=int)
    e = 0
    for k in range(nz):
        for j in range(ny):
            for i in range(nx):
                conn[e] = [
                    nid(i, j, k),
                    nid(i + 1, j, k),
                    nid(i + 1, j + 1, k),
                    nid(i, j + 1, k),
                    nid(i, j, k + 1),
                    nid(i + 1, j, k + 1),
                    nid(i + 1, j + 1, k + 1),
                    nid(i, j + 1, k + 1),
                ]
                e += 1
    return BoxMesh(nodes=nodes, conn=conn, shape=(nx, ny, nz))
