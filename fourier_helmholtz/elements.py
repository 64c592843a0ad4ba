"""Bulk finite elements for the Fourier-decomposed Helmholtz equation.

Geometry
--------
    Meridian half-plane x = (r, z), r >= 0.  A 3D field is represented as

        u(r, z, phi) = Re[ U(r, z) exp(i N phi) ]

    with N the Fourier wavenumber, so only the complex amplitude U(r, z)
    lives on the mesh.  Its real and imaginary parts are stored as two
    independent nodal values (the complex degree-of-freedom index pair).

Elements
--------
    Node                               shared nodal storage (position, values,
                                       signed equation numbers)
    QElement                           2D tensor-product Lagrange geometry
    FourierDecomposedHelmholtzElement  QElement + complex unknown read access

Face indices
------------
    +1 / -1 : face at s0 = +1 / -1
    +2 / -2 : face at s1 = +1 / -1

Only the read interface of the bulk element is implemented here; the interior
PDE residual is assembled elsewhere.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from fourier_helmholtz.errors import ConfigurationError
from fourier_helmholtz.quadrature import GaussLegendre

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
IS_PINNED: int = -1
IS_UNCLASSIFIED: int = -10
DEFAULT_NNODE_1D: int = 2
DEFAULT_K_SQUARED: float = 1.0
DEFAULT_FOURIER_WAVENUMBER: int = 0
SUPPORTED_NNODE_1D: Tuple[int, ...] = (2, 3)


# ---------------------------------------------------------------------------
# Lagrange shape functions
# ---------------------------------------------------------------------------
def _lagrange_1d(s: float, nnode_1d: int) -> Tuple[np.ndarray, np.ndarray]:
    """1D Lagrange polynomials on equally spaced nodes in [-1, 1]."""
    if nnode_1d == 2:
        psi = np.array([0.5 * (1.0 - s), 0.5 * (1.0 + s)])
        dpsi = np.array([-0.5, 0.5])
    elif nnode_1d == 3:
        psi = np.array([0.5 * s * (s - 1.0), 1.0 - s * s, 0.5 * s * (s + 1.0)])
        dpsi = np.array([s - 0.5, -2.0 * s, s + 0.5])
    else:
        raise ValueError(
            f"nnode_1d={nnode_1d} not supported (expected one of {SUPPORTED_NNODE_1D})"
        )
    return psi, dpsi


def lagrange_shape(s: Sequence[float], nnode_1d: int) -> Tuple[np.ndarray, np.ndarray]:
    """Tensor-product Lagrange shape functions and their local derivatives.

    Node numbering runs fastest in the first local coordinate.

    Parameters
    ----------
    s : array-like, shape (dim,)
        Local coordinate in [-1, 1]^dim.
    nnode_1d : int
        Nodes per direction (2 = linear, 3 = quadratic).

    Returns
    -------
    psi : np.ndarray, shape (nnode_1d^dim,)
    dpsi_ds : np.ndarray, shape (nnode_1d^dim, dim)
    """
    s = np.atleast_1d(np.asarray(s, dtype=float))
    dim = s.shape[0]

    psi, dp = _lagrange_1d(float(s[0]), nnode_1d)
    dpsi = dp[:, None]  # (n, 1)
    for d in range(1, dim):
        p_d, dp_d = _lagrange_1d(float(s[d]), nnode_1d)
        cols = [np.outer(p_d, dpsi[:, k]).ravel() for k in range(dpsi.shape[1])]
        cols.append(np.outer(dp_d, psi).ravel())
        psi = np.outer(p_d, psi).ravel()
        dpsi = np.column_stack(cols)
    return psi, dpsi


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------
class Node:
    """Nodal storage shared by every element that touches the node.

    Parameters
    ----------
    x : array-like, shape (ndim,)
        Eulerian position (r, z).
    n_value : int
        Number of scalar values stored at the node.
    """

    def __init__(self, x: Sequence[float], n_value: int = 2) -> None:
        self.x = np.array(x, dtype=float)
        self.values = np.zeros(n_value)
        self.eqn_numbers = np.full(n_value, IS_UNCLASSIFIED, dtype=int)
        self._pinned = np.zeros(n_value, dtype=bool)

    def __repr__(self) -> str:
        return f"Node(x={self.x.tolist()}, values={self.values.tolist()})"

    @property
    def ndim(self) -> int:
        return self.x.shape[0]

    @property
    def n_value(self) -> int:
        return self.values.shape[0]

    def value(self, i: int) -> float:
        return float(self.values[i])

    def set_value(self, i: int, value: float) -> None:
        self.values[i] = value

    def eqn_number(self, i: int) -> int:
        """Global equation number of value ``i``; negative if not a DOF."""
        return int(self.eqn_numbers[i])

    def pin(self, i: int) -> None:
        self._pinned[i] = True
        self.eqn_numbers[i] = IS_PINNED

    def unpin(self, i: int) -> None:
        self._pinned[i] = False
        self.eqn_numbers[i] = IS_UNCLASSIFIED

    def is_pinned(self, i: int) -> bool:
        return bool(self._pinned[i])


# ---------------------------------------------------------------------------
# Bulk geometry
# ---------------------------------------------------------------------------
class QElement:
    """Two-dimensional quadrilateral Lagrange element (geometry only).

    Parameters
    ----------
    nodes : sequence of Node, length nnode_1d^2
        Nodes in tensor-product order (s0 fastest).
    nnode_1d : int
        Nodes per direction.
    """

    DIM: int = 2

    def __init__(self, nodes: Sequence[Node], nnode_1d: int = DEFAULT_NNODE_1D) -> None:
        if nnode_1d not in SUPPORTED_NNODE_1D:
            raise ValueError(
                f"nnode_1d={nnode_1d} not supported (expected one of {SUPPORTED_NNODE_1D})"
            )
        if len(nodes) != nnode_1d ** self.DIM:
            raise ValueError(
                f"{type(self).__name__} needs {nnode_1d ** self.DIM} nodes, got {len(nodes)}"
            )
        self.nodes: List[Node] = list(nodes)
        self.nnode_1d = nnode_1d
        self.integral = GaussLegendre.build(nnode_1d, self.DIM)

    @property
    def nnode(self) -> int:
        return len(self.nodes)

    @property
    def dim(self) -> int:
        return self.DIM

    def as_fourier_helmholtz_equations(self) -> Optional["FourierDecomposedHelmholtzElement"]:
        """Capability query: plain geometry does not carry the Helmholtz unknown."""
        return None

    def nodal_positions(self) -> np.ndarray:
        """Nodal coordinates, shape (nnode, 2)."""
        return np.array([node.x for node in self.nodes])

    def nodal_value(self, l: int, i: int) -> float:
        return self.nodes[l].value(i)

    def shape(self, s: Sequence[float]) -> np.ndarray:
        psi, _ = lagrange_shape(s, self.nnode_1d)
        return psi

    def dshape_local(self, s: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
        return lagrange_shape(s, self.nnode_1d)

    def interpolated_x(self, s: Sequence[float]) -> np.ndarray:
        return self.shape(s) @ self.nodal_positions()  # (2,)

    def local_to_eulerian_jacobian(self, s: Sequence[float]) -> np.ndarray:
        """Jacobian matrix jac[i, j] = dx_j / ds_i, shape (dim, dim)."""
        _, dpsi_ds = self.dshape_local(s)
        return dpsi_ds.T @ self.nodal_positions()

    def inverse_jacobian(self, s: Sequence[float]) -> Tuple[np.ndarray, float]:
        """Inverse mapping Jacobian inv[j, i] = ds_i / dx_j and its determinant.

        A singular mapping yields a NaN inverse (logged), not an exception.
        """
        jac = self.local_to_eulerian_jacobian(s)
        det = float(np.linalg.det(jac))
        if det == 0.0 or not np.isfinite(det):
            logger.warning(
                "Singular local-to-Eulerian mapping in %s at s=%s (det=%.3e)",
                type(self).__name__, np.asarray(s).tolist(), det,
            )
            return np.full_like(jac, np.nan), det
        return np.linalg.inv(jac), det

    def dshape_eulerian(self, s: Sequence[float]) -> Tuple[np.ndarray, np.ndarray, float]:
        """Shape functions and their Eulerian derivatives at any local coordinate.

        Returns
        -------
        psi : np.ndarray, shape (nnode,)
        dpsi_dx : np.ndarray, shape (nnode, dim)
        det : float
            Determinant of the local-to-Eulerian Jacobian.
        """
        psi, dpsi_ds = self.dshape_local(s)
        inv, det = self.inverse_jacobian(s)
        # dpsi/ds_i = sum_j dx_j/ds_i dpsi/dx_j
        dpsi_dx = dpsi_ds @ inv.T  # (nnode, dim)
        return psi, dpsi_dx, det

    def J_eulerian(self, s: Sequence[float]) -> float:
        return float(np.linalg.det(self.local_to_eulerian_jacobian(s)))

    # -----------------------------------------------------------------------
    # Face construction
    # -----------------------------------------------------------------------
    def face_node_indices(self, face_index: int) -> Tuple[List[int], int, float]:
        """Bulk node numbers on a face plus the fixed local coordinate.

        Returns
        -------
        indices : list of int
            Bulk node numbers ordered along the remaining local coordinate.
        fixed_coord : int
            Local coordinate that is constant on the face.
        fixed_value : float
            Its value (+1 or -1).
        """
        n = self.nnode_1d
        if face_index in (1, -1):
            i0 = n - 1 if face_index == 1 else 0
            return [i0 + n * i1 for i1 in range(n)], 0, float(np.sign(face_index))
        if face_index in (2, -2):
            i1 = n - 1 if face_index == 2 else 0
            return [i0 + n * i1 for i0 in range(n)], 1, float(np.sign(face_index))
        raise ConfigurationError(
            f"Face index {face_index} does not exist (expected +/-1, +/-2)",
            self, f"{type(self).__name__}.face_node_indices",
        )

    def build_face_element(self, face_index: int, face_element) -> None:
        """Attach ``face_element`` to one of this element's faces.

        The face borrows the bulk nodes; the bulk element keeps no reference
        to the face.
        """
        indices, fixed_coord, fixed_value = self.face_node_indices(face_index)
        face_element.attach_to_bulk(
            bulk_element=self,
            face_index=face_index,
            nodes=[self.nodes[i] for i in indices],
            nnode_1d=self.nnode_1d,
            fixed_coord=fixed_coord,
            fixed_value=fixed_value,
        )
        logger.debug(
            "Built %s on face %+d of %s (%d nodes)",
            type(face_element).__name__, face_index, type(self).__name__, len(indices),
        )


# ---------------------------------------------------------------------------
# Fourier-decomposed Helmholtz bulk element
# ---------------------------------------------------------------------------
@dataclass
class HelmholtzParameters:
    """Physical parameters of the Fourier-decomposed Helmholtz problem.

    Attributes
    ----------
    k_squared : float
        Square of the wavenumber k^2.
    fourier_wavenumber : int
        Azimuthal mode number N.
    """

    k_squared: float = DEFAULT_K_SQUARED
    fourier_wavenumber: int = DEFAULT_FOURIER_WAVENUMBER

    def validate(self) -> None:
        if not np.isfinite(self.k_squared) or self.k_squared <= 0.0:
            raise ValueError(f"k_squared must be positive and finite, got {self.k_squared}")
        if int(self.fourier_wavenumber) != self.fourier_wavenumber:
            raise ValueError(
                f"fourier_wavenumber must be an integer, got {self.fourier_wavenumber}"
            )


class FourierDecomposedHelmholtzElement(QElement):
    """Bulk element carrying the complex Helmholtz unknown.

    Parameters
    ----------
    nodes : sequence of Node
    nnode_1d : int
    params : HelmholtzParameters, optional
    u_index : tuple of int
        Nodal value slots of (Re U, Im U).
    """

    def __init__(
        self,
        nodes: Sequence[Node],
        nnode_1d: int = DEFAULT_NNODE_1D,
        params: Optional[HelmholtzParameters] = None,
        u_index: Tuple[int, int] = (0, 1),
    ) -> None:
        super().__init__(nodes, nnode_1d)
        self.params = params if params is not None else HelmholtzParameters()
        self.params.validate()
        self._u_index = (int(u_index[0]), int(u_index[1]))

        n_needed = max(self._u_index) + 1
        for node in self.nodes:
            if node.n_value < n_needed:
                raise ValueError(
                    f"Node stores {node.n_value} values, need {n_needed} for u_index {self._u_index}"
                )

    def as_fourier_helmholtz_equations(self) -> "FourierDecomposedHelmholtzElement":
        return self

    def u_index_fourier_decomposed_helmholtz(self) -> Tuple[int, int]:
        """Nodal value slots of the real and imaginary part of U."""
        return self._u_index

    def nodal_u(self) -> np.ndarray:
        """Complex nodal values, shape (nnode,)."""
        ur, ui = self._u_index
        return np.array([node.values[ur] + 1j * node.values[ui] for node in self.nodes])

    def interpolated_u(self, s: Sequence[float]) -> complex:
        return complex(self.nodal_u() @ self.shape(s))

    def interpolated_dudx(self, s: Sequence[float]) -> np.ndarray:
        """Complex gradient (dU/dr, dU/dz) at local coordinate ``s``."""
        _, dpsi_dx, _ = self.dshape_eulerian(s)
        return self.nodal_u() @ dpsi_dx  # (2,)
