"""Structured meridian-plane meshes and element-loop helpers.

Meshes live in the half-plane x = (r, z), r >= 0, and are built from a map
of the unit square (xi0, xi1) onto the domain.  Boundaries are recorded as
lists of (bulk element, face index) pairs so that face elements can be
attached afterwards:

    mesh = build_annular_mesh(AnnularMeshConfig(r_inner=1.0, r_outer=2.0))
    monitors = build_face_elements(mesh, "outer", PowerMonitorElement)
    power = sum_power(monitors)
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import numpy as np

from fourier_helmholtz.elements import (
    DEFAULT_NNODE_1D,
    FourierDecomposedHelmholtzElement,
    HelmholtzParameters,
    Node,
)

logger = logging.getLogger(__name__)

BoundaryFaces = List[Tuple[FourierDecomposedHelmholtzElement, int]]


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------
@dataclass
class MeridianMesh:
    """Nodes, bulk elements and named boundaries of a meridian mesh.

    Attributes
    ----------
    nodes : list of Node
    elements : list of FourierDecomposedHelmholtzElement
    boundaries : dict
        Boundary name -> list of (bulk element, face index).
    """

    nodes: List[Node]
    elements: List[FourierDecomposedHelmholtzElement]
    boundaries: Dict[str, BoundaryFaces] = field(default_factory=dict)

    @property
    def n_node(self) -> int:
        return len(self.nodes)

    @property
    def n_element(self) -> int:
        return len(self.elements)

    def boundary_nodes(self, name: str) -> List[Node]:
        """Distinct nodes on a named boundary."""
        seen = {}
        for elem, face_index in self.boundaries[name]:
            indices, _, _ = elem.face_node_indices(face_index)
            for i in indices:
                seen[id(elem.nodes[i])] = elem.nodes[i]
        return list(seen.values())


@dataclass
class AnnularMeshConfig:
    """Annular region r_inner <= rho <= r_outer, 0 <= theta <= pi.

    Attributes
    ----------
    r_inner : float
        Inner radius.
    r_outer : float
        Outer radius (truncation boundary).
    n_radial : int
        Elements across the annulus.
    n_angular : int
        Elements along the zenith angle.
    nnode_1d : int
        Nodes per element direction.
    """

    r_inner: float = 1.0
    r_outer: float = 2.0
    n_radial: int = 4
    n_angular: int = 16
    nnode_1d: int = 3

    def validate(self) -> None:
        if not 0.0 < self.r_inner < self.r_outer:
            raise ValueError(
                f"Need 0 < r_inner < r_outer, got r_inner={self.r_inner}, r_outer={self.r_outer}"
            )
        if self.n_radial < 1 or self.n_angular < 1:
            raise ValueError(
                f"Element counts must be >= 1, got n_radial={self.n_radial}, n_angular={self.n_angular}"
            )


# ---------------------------------------------------------------------------
# Mesh construction
# ---------------------------------------------------------------------------
def _build_structured_mesh(
    mapping: Callable[[float, float], Tuple[float, float]],
    n_elem_0: int,
    n_elem_1: int,
    nnode_1d: int,
    boundary_names: Dict[int, str],
    params: Optional[HelmholtzParameters] = None,
) -> MeridianMesh:
    """Mesh of the image of the unit square under ``mapping``.

    ``boundary_names`` maps face indices (-1: xi0=0, +1: xi0=1, -2: xi1=0,
    +2: xi1=1) to boundary names.
    """
    p = nnode_1d - 1
    n0 = n_elem_0 * p + 1
    n1 = n_elem_1 * p + 1

    node_grid: List[List[Node]] = []
    nodes: List[Node] = []
    for j in range(n1):
        row = []
        for i in range(n0):
            node = Node(mapping(i / (n0 - 1), j / (n1 - 1)))
            row.append(node)
            nodes.append(node)
        node_grid.append(row)

    elements: List[FourierDecomposedHelmholtzElement] = []
    boundaries: Dict[str, BoundaryFaces] = {name: [] for name in boundary_names.values()}
    for e1 in range(n_elem_1):
        for e0 in range(n_elem_0):
            elem_nodes = [
                node_grid[e1 * p + j][e0 * p + i]
                for j in range(nnode_1d) for i in range(nnode_1d)
            ]
            elem = FourierDecomposedHelmholtzElement(elem_nodes, nnode_1d, params)
            elements.append(elem)

            on_face = {-1: e0 == 0, 1: e0 == n_elem_0 - 1, -2: e1 == 0, 2: e1 == n_elem_1 - 1}
            for face_index, name in boundary_names.items():
                if on_face[face_index]:
                    boundaries[name].append((elem, face_index))

    return MeridianMesh(nodes=nodes, elements=elements, boundaries=boundaries)


def build_rectangular_mesh(
    r_min: float,
    r_max: float,
    z_min: float,
    z_max: float,
    n_r: int,
    n_z: int,
    nnode_1d: int = DEFAULT_NNODE_1D,
    params: Optional[HelmholtzParameters] = None,
) -> MeridianMesh:
    """Rectangle [r_min, r_max] x [z_min, z_max] with boundaries
    ``r_min``, ``r_max``, ``z_min``, ``z_max``.
    """
    if r_min < 0.0 or r_max <= r_min or z_max <= z_min:
        raise ValueError(
            f"Invalid rectangle r=[{r_min}, {r_max}], z=[{z_min}, {z_max}]"
        )

    def mapping(xi0: float, xi1: float) -> Tuple[float, float]:
        return r_min + xi0 * (r_max - r_min), z_min + xi1 * (z_max - z_min)

    mesh = _build_structured_mesh(
        mapping, n_r, n_z, nnode_1d,
        {-1: "r_min", 1: "r_max", -2: "z_min", 2: "z_max"}, params,
    )
    logger.info(
        "Rectangular mesh: r=[%.3f, %.3f], z=[%.3f, %.3f], %d elements, %d nodes",
        r_min, r_max, z_min, z_max, mesh.n_element, mesh.n_node,
    )
    return mesh


def build_annular_mesh(
    config: AnnularMeshConfig,
    params: Optional[HelmholtzParameters] = None,
) -> MeridianMesh:
    """Meridian section of a spherical shell with boundaries ``inner``,
    ``outer``, ``axis_south`` (theta = pi) and ``axis_north`` (theta = 0).

    theta decreases along the second local coordinate so that every element
    has a positive mapping Jacobian.
    """
    config.validate()
    dr = config.r_outer - config.r_inner

    def mapping(xi0: float, xi1: float) -> Tuple[float, float]:
        rho = config.r_inner + xi0 * dr
        theta = np.pi * (1.0 - xi1)
        return rho * np.sin(theta), rho * np.cos(theta)

    mesh = _build_structured_mesh(
        mapping, config.n_radial, config.n_angular, config.nnode_1d,
        {-1: "inner", 1: "outer", -2: "axis_south", 2: "axis_north"}, params,
    )
    logger.info(
        "Annular mesh: rho=[%.3f, %.3f], %dx%d elements (nnode_1d=%d), %d nodes",
        config.r_inner, config.r_outer, config.n_radial, config.n_angular,
        config.nnode_1d, mesh.n_node,
    )
    return mesh


def build_face_elements(mesh: MeridianMesh, boundary: str, element_cls: Type) -> List:
    """Attach one ``element_cls`` face element to every face of a boundary."""
    if boundary not in mesh.boundaries:
        raise KeyError(f"Unknown boundary '{boundary}' (have {sorted(mesh.boundaries)})")
    faces = [element_cls(elem, face_index) for elem, face_index in mesh.boundaries[boundary]]
    logger.debug("Built %d %s on boundary '%s'", len(faces), element_cls.__name__, boundary)
    return faces


# ---------------------------------------------------------------------------
# Nodal data and equation numbering
# ---------------------------------------------------------------------------
def set_nodal_field(
    nodes: Iterable[Node],
    field_fct: Callable[[np.ndarray], complex],
    u_index: Tuple[int, int] = (0, 1),
) -> None:
    """Store U = field_fct(x) as (Re U, Im U) in the given value slots."""
    for node in nodes:
        u = complex(field_fct(node.x))
        node.set_value(u_index[0], u.real)
        node.set_value(u_index[1], u.imag)


def assign_eqn_numbers(nodes: Sequence[Node]) -> int:
    """Give every unpinned nodal value a global equation number.

    Returns
    -------
    n_dof : int
    """
    n_dof = 0
    for node in nodes:
        for i in range(node.n_value):
            if node.is_pinned(i):
                continue
            node.eqn_numbers[i] = n_dof
            n_dof += 1
    logger.debug("Assigned %d equation numbers to %d nodes", n_dof, len(nodes))
    return n_dof


def assemble_residuals(elements: Sequence, n_dof: int) -> np.ndarray:
    """Scatter the element residuals into a global vector of length ``n_dof``."""
    residuals = np.zeros(n_dof)
    for elem in elements:
        elem.assign_local_eqn_numbers()
        local = np.zeros(elem.ndof())
        elem.fill_in_contribution_to_residuals(local)
        np.add.at(residuals, elem.global_eqn_numbers, local)
    return residuals


def sum_power(monitors: Sequence, trace=None) -> float:
    """Total power over a set of PowerMonitorElement objects."""
    power = 0.0
    for monitor in monitors:
        power += monitor.global_power_contribution(trace)
    return power
