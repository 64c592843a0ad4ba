"""Face elements: lower-dimensional elements attached to a bulk element face.

A face element borrows the bulk element's nodes on one face and keeps only a
weak reference to the bulk element itself; node storage and the bulk element
belong to the mesh.  The face carries its own Gauss-Legendre rule and Lagrange
shape functions in (bulk dim - 1) local coordinates, and bridges to the bulk
element through

    local_coordinate_in_bulk(s)   face local coordinate -> bulk local coordinate
    outer_unit_normal(s)          outward unit normal of the bulk element

Lifecycle
---------
    Unbound -> Bound, once, in the constructor.  Constructing without a bulk
    element and face index, or copying a bound element, is a configuration
    error.
"""

import logging
import weakref
from typing import List, Optional, Sequence, Tuple

import numpy as np

from fourier_helmholtz.elements import Node, lagrange_shape
from fourier_helmholtz.errors import ConfigurationError
from fourier_helmholtz.quadrature import GaussLegendre

logger = logging.getLogger(__name__)


class FaceElement:
    """Base class for Fourier-decomposed Helmholtz face elements.

    Parameters
    ----------
    bulk_element : FourierDecomposedHelmholtzElement
        Element to whose face this element attaches.  Must answer the
        ``as_fourier_helmholtz_equations()`` capability query.
    face_index : int
        Face of the bulk element (+/-1, +/-2).

    Raises
    ------
    ConfigurationError
        If called without arguments, or if the bulk element does not provide
        the complex degree-of-freedom index pair.
    """

    def __init__(self, bulk_element=None, face_index: Optional[int] = None) -> None:
        cls_name = type(self).__name__
        if bulk_element is None or face_index is None:
            raise ConfigurationError(
                f"Don't call empty constructor for {cls_name}",
                self, f"{cls_name}.__init__",
            )

        self.nodes: List[Node] = []
        self.nnode_1d = 0
        self.face_index = face_index
        self._bulk_ref = None
        self._fixed_coord = 0
        self._fixed_value = 0.0
        self._local_eqn: Optional[np.ndarray] = None
        self._global_eqn = np.zeros(0, dtype=int)
        self._numbered_from: Optional[tuple] = None

        # Capability query before anything is attached
        self._u_index = self._read_u_index(bulk_element)

        build = getattr(bulk_element, "build_face_element", None)
        if build is None:
            raise ConfigurationError(
                "Bulk element cannot build face elements",
                bulk_element, f"{cls_name}.__init__",
            )
        build(face_index, self)
        self.integral = GaussLegendre.build(self.nnode_1d, self.dim)

    def _read_u_index(self, bulk_element) -> Tuple[int, int]:
        query = getattr(bulk_element, "as_fourier_helmholtz_equations", None)
        eqns = query() if query is not None else None
        if eqns is None:
            raise ConfigurationError(
                "Bulk element must provide FourierDecomposedHelmholtzEquations "
                f"(got {type(bulk_element).__name__})",
                self, f"{type(self).__name__}.__init__",
            )
        real, imag = eqns.u_index_fourier_decomposed_helmholtz()
        return int(real), int(imag)

    def __copy__(self):
        raise ConfigurationError(
            "Face elements cannot be copied", self, f"{type(self).__name__}.__copy__",
        )

    def __deepcopy__(self, memo):
        raise ConfigurationError(
            "Face elements cannot be copied", self, f"{type(self).__name__}.__deepcopy__",
        )

    def attach_to_bulk(
        self,
        bulk_element,
        face_index: int,
        nodes: Sequence[Node],
        nnode_1d: int,
        fixed_coord: int,
        fixed_value: float,
    ) -> None:
        """Called by the bulk element's ``build_face_element``; binds once."""
        if self._bulk_ref is not None:
            raise ConfigurationError(
                "Face element is already attached to a bulk element",
                self, f"{type(self).__name__}.attach_to_bulk",
            )
        self._bulk_ref = weakref.ref(bulk_element)
        self.face_index = face_index
        self.nodes = list(nodes)
        self.nnode_1d = nnode_1d
        self._fixed_coord = fixed_coord
        self._fixed_value = fixed_value

    # -----------------------------------------------------------------------
    # Bulk bridge
    # -----------------------------------------------------------------------
    @property
    def bulk_element(self):
        """The bulk element; a configuration error if it no longer exists."""
        bulk = self._bulk_ref() if self._bulk_ref is not None else None
        if bulk is None:
            raise ConfigurationError(
                "Bulk element is not attached (it was destroyed with its mesh?)",
                self, f"{type(self).__name__}.bulk_element",
            )
        return bulk

    def u_index_fourier_decomposed_helmholtz(self) -> Tuple[int, int]:
        """Nodal value slots of (Re U, Im U), fixed at construction."""
        return self._u_index

    @property
    def nnode(self) -> int:
        return len(self.nodes)

    @property
    def dim(self) -> int:
        """Local (face) dimension: one less than the bulk dimension."""
        return self.bulk_element.dim - 1

    def set_integration_scheme(self, rule: GaussLegendre) -> None:
        if rule.dim != self.dim:
            raise ValueError(f"Integration rule has dim {rule.dim}, face has dim {self.dim}")
        self.integral = rule

    def local_coordinate_in_bulk(self, s: Sequence[float]) -> np.ndarray:
        """Bulk local coordinate of face local coordinate ``s``."""
        s = np.atleast_1d(np.asarray(s, dtype=float))
        return np.insert(s, self._fixed_coord, self._fixed_value)

    def outer_unit_normal(self, s: Sequence[float]) -> np.ndarray:
        """Outward unit normal of the bulk element at face coordinate ``s``.

        A vanishing normal direction (degenerate face) gives NaN components.
        """
        direction = self._outer_normal_direction(s)
        length = float(np.linalg.norm(direction))
        if length == 0.0 or not np.isfinite(length):
            logger.warning(
                "Degenerate outer normal on %s (face %+d) at s=%s",
                type(self).__name__, self.face_index, np.asarray(s).tolist(),
            )
            return np.full_like(direction, np.nan)
        return direction / length

    def _outer_normal_direction(self, s: Sequence[float]) -> np.ndarray:
        # grad(s_fixed) is normal to the face; its sign says which side is out
        inv, _ = self.bulk_element.inverse_jacobian(self.local_coordinate_in_bulk(s))
        return self._fixed_value * inv[:, self._fixed_coord]

    # -----------------------------------------------------------------------
    # Face geometry
    # -----------------------------------------------------------------------
    def nodal_positions(self) -> np.ndarray:
        """Nodal coordinates, shape (nnode, ndim)."""
        return np.array([node.x for node in self.nodes])

    def nodal_value(self, l: int, i: int) -> float:
        return self.nodes[l].value(i)

    def shape(self, s: Sequence[float]) -> np.ndarray:
        psi, _ = lagrange_shape(s, self.nnode_1d)
        return psi

    def dshape_local(self, s: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
        return lagrange_shape(s, self.nnode_1d)

    def J_eulerian(self, s: Sequence[float]) -> float:
        """Jacobian of the face local-to-Eulerian map, sqrt(det(a a^T))."""
        _, dpsi_ds = self.dshape_local(s)
        a = dpsi_ds.T @ self.nodal_positions()  # (dim, ndim) covariant base vectors
        return float(np.sqrt(np.linalg.det(a @ a.T)))

    def shape_and_test(self, s: Sequence[float]) -> Tuple[np.ndarray, np.ndarray, float]:
        """Shape and (Galerkin) test functions plus the face Jacobian."""
        psi = self.shape(s)
        return psi, psi.copy(), self.J_eulerian(s)

    def interpolated_x(self, s: Sequence[float]) -> np.ndarray:
        return self.shape(s) @ self.nodal_positions()

    # -----------------------------------------------------------------------
    # Local equation numbering
    # -----------------------------------------------------------------------
    def _global_numbering(self) -> tuple:
        return tuple(tuple(node.eqn_numbers) for node in self.nodes)

    def _local_table(self) -> np.ndarray:
        # Rebuilt whenever a nodal value is pinned, unpinned or renumbered
        if self._numbered_from != self._global_numbering():
            self.assign_local_eqn_numbers()
        return self._local_eqn

    def assign_local_eqn_numbers(self) -> None:
        """Number the element's unconstrained nodal values 0..ndof-1."""
        n_value = max(node.n_value for node in self.nodes)
        local = np.full((self.nnode, n_value), -1, dtype=int)
        lookup = {}
        global_eqns: List[int] = []
        for l, node in enumerate(self.nodes):
            for i in range(node.n_value):
                g = node.eqn_number(i)
                if g < 0:
                    continue
                if g not in lookup:
                    lookup[g] = len(global_eqns)
                    global_eqns.append(g)
                local[l, i] = lookup[g]
        self._local_eqn = local
        self._global_eqn = np.array(global_eqns, dtype=int)
        self._numbered_from = self._global_numbering()

    def nodal_local_eqn(self, l: int, i: int) -> int:
        """Local equation number of value ``i`` at node ``l``; negative if pinned."""
        return int(self._local_table()[l, i])

    def ndof(self) -> int:
        self._local_table()
        return len(self._global_eqn)

    def eqn_number(self, ieqn_local: int) -> int:
        """Global equation number of local equation ``ieqn_local``."""
        self._local_table()
        return int(self._global_eqn[ieqn_local])

    @property
    def global_eqn_numbers(self) -> np.ndarray:
        self._local_table()
        return self._global_eqn
