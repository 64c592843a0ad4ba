"""Radiated power through an artificial (truncation) boundary.

Time-averaged power through the surface of revolution generated by a face
element:

    P = sum_q  pi * x_q[0] * ( Re(U_q) Im(dU/dn_q) - Im(U_q) Re(dU/dn_q) ) * W_q

    U_q      interpolated from the face element's own nodal values
    dU/dn_q  grad U . n, with grad U from the BULK element's shape-function
             derivatives at the bulk local coordinate of the face knot
    W_q      w_q * J(s_q) of the face

The face knots are not integration points of the bulk element, so the bulk
derivatives are evaluated at the re-embedded coordinate
local_coordinate_in_bulk(s_q).

NOTE: the formula assumes the constitutive parameters are constant along the
boundary.  Where they vary, the result is an approximation.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

import h5py
import numpy as np

from fourier_helmholtz.face_elements import FaceElement

logger = logging.getLogger(__name__)

TRACE_COLUMNS: Tuple[str, ...] = ("x0", "x1", "theta", "integrand")


# ---------------------------------------------------------------------------
# Diagnostic trace
# ---------------------------------------------------------------------------
@dataclass
class PowerDensityTrace:
    """Collects the power density at every face knot.

    One zone per element call.  Any object exposing ``begin_zone()`` and
    ``record(x, theta, integrand)`` can be passed to the monitor instead.

    Attributes
    ----------
    zones : list of list of tuple
        Rows of (x0, x1, theta, integrand) per zone.
    """

    zones: List[List[Tuple[float, float, float, float]]] = field(default_factory=list)

    def begin_zone(self) -> None:
        self.zones.append([])

    def record(self, x: np.ndarray, theta: float, integrand: float) -> None:
        if not self.zones:
            self.begin_zone()
        self.zones[-1].append((float(x[0]), float(x[1]), float(theta), float(integrand)))

    @property
    def n_zones(self) -> int:
        return len(self.zones)

    @property
    def n_points(self) -> int:
        return sum(len(z) for z in self.zones)

    def as_array(self) -> np.ndarray:
        """All rows stacked, shape (P, 4)."""
        rows = [row for zone in self.zones for row in zone]
        return np.array(rows, dtype=float).reshape(-1, len(TRACE_COLUMNS))

    def write_hdf5(self, path: Union[str, Path]) -> None:
        """Write one (P_z, 4) dataset per zone."""
        path = Path(path)
        with h5py.File(path, "w") as f:
            f.attrs["columns"] = ",".join(TRACE_COLUMNS)
            f.attrs["n_zones"] = self.n_zones
            for i, zone in enumerate(self.zones):
                f.create_dataset(
                    f"zone_{i:05d}",
                    data=np.array(zone, dtype=float).reshape(-1, len(TRACE_COLUMNS)),
                )
        logger.info("Power density trace: %d zones, %d points -> %s",
                    self.n_zones, self.n_points, path)


# ---------------------------------------------------------------------------
# Monitor element
# ---------------------------------------------------------------------------
class PowerMonitorElement(FaceElement):
    """Post-processing face element computing the radiated power.

    Parameters
    ----------
    bulk_element : FourierDecomposedHelmholtzElement
    face_index : int
    """

    def global_power_contribution(self, trace=None) -> float:
        """Element contribution to the time-averaged radiated power.

        Parameters
        ----------
        trace : PowerDensityTrace, optional
            Receives (x, theta = atan2(x0, x1), integrand) at every knot.
            Has no effect on the returned value.

        Returns
        -------
        power : float
            Non-finite if the geometry is degenerate (logged as a warning).
        """
        bulk = self.bulk_element
        bulk_u_real, bulk_u_imag = (
            bulk.as_fourier_helmholtz_equations().u_index_fourier_decomposed_helmholtz()
        )
        u_real, u_imag = self.u_index_fourier_decomposed_helmholtz()

        u_bulk = np.array([
            bulk.nodal_value(l, bulk_u_real) + 1j * bulk.nodal_value(l, bulk_u_imag)
            for l in range(bulk.nnode)
        ])  # (n_bulk,)
        u_face = np.array([
            self.nodal_value(l, u_real) + 1j * self.nodal_value(l, u_imag)
            for l in range(self.nnode)
        ])  # (n,)

        if trace is not None:
            trace.begin_zone()

        power = 0.0
        for ipt in range(self.integral.nweight):
            s = self.integral.knot(ipt)
            unit_normal = self.outer_unit_normal(s)  # (dim_bulk,)
            W = self.integral.weight(ipt) * self.J_eulerian(s)

            # Not a bulk integration point: evaluate via the bulk local coordinate
            s_bulk = self.local_coordinate_in_bulk(s)
            _, dpsi_bulk_dx, _ = bulk.dshape_eulerian(s_bulk)  # (n_bulk, dim_bulk)
            psi = self.shape(s)  # (n,)

            interpolated_dphidx = u_bulk @ dpsi_bulk_dx  # (dim_bulk,)
            interpolated_phi = u_face @ psi
            dphi_dn = interpolated_dphidx @ unit_normal

            integrand = (interpolated_phi.real * dphi_dn.imag
                         - interpolated_phi.imag * dphi_dn.real)

            x = self.interpolated_x(s)
            theta = np.arctan2(x[0], x[1])
            if trace is not None:
                trace.record(x, theta, integrand)

            power += np.pi * x[0] * integrand * W

        if not np.isfinite(power):
            logger.warning(
                "Non-finite power contribution from %s on face %+d",
                type(self).__name__, self.face_index,
            )
        return float(power)

    def total_power(self, trace=None) -> float:
        """Alias of :meth:`global_power_contribution`."""
        return self.global_power_contribution(trace)
