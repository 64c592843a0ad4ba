"""Prescribed-flux (Neumann) face elements for Fourier-decomposed Helmholtz.

Weak form contribution
----------------------
    R[Re eqn(l)] -= Re(f(x_q)) psi_l(s_q) r(x_q) W_q
    R[Im eqn(l)] -= Im(f(x_q)) psi_l(s_q) r(x_q) W_q

summed over the face quadrature points q, with W_q = w_q J(s_q) and
r(x_q) = x_q[0] the radial coordinate (axisymmetric measure; the common 2*pi
factor is dropped throughout the discretisation).  Test functions equal the
shape functions.  Pinned values (negative local equation number) are skipped.

The flux depends on position only, so the element never contributes to the
Jacobian.
"""

import logging
from typing import Callable, Optional

import numpy as np

from fourier_helmholtz.face_elements import FaceElement

logger = logging.getLogger(__name__)

FluxFunction = Callable[[np.ndarray], complex]


class FluxElement(FaceElement):
    """Applies a prescribed complex flux dU/dn = f(r, z) on a bulk face.

    Parameters
    ----------
    bulk_element : FourierDecomposedHelmholtzElement
    face_index : int

    Attributes
    ----------
    flux_fct : callable or None
        f(x) -> complex, with x = (r, z).  None means zero flux.
    """

    def __init__(self, bulk_element=None, face_index: Optional[int] = None) -> None:
        super().__init__(bulk_element, face_index)
        self.flux_fct: Optional[FluxFunction] = None

    def get_flux(self, x: np.ndarray) -> complex:
        """Prescribed flux at Eulerian position ``x``."""
        if self.flux_fct is None:
            return 0j
        return complex(self.flux_fct(np.array(x, dtype=float)))

    def fill_in_contribution_to_residuals(self, residuals: np.ndarray) -> None:
        """Add the element's contribution to its (local) residual vector."""
        self._fill_in_generic_residual_contribution(residuals, None, compute_jacobian=False)

    def fill_in_contribution_to_jacobian(
        self, residuals: np.ndarray, jacobian: np.ndarray,
    ) -> None:
        """Add the residual contribution; the Jacobian contribution is zero."""
        self._fill_in_generic_residual_contribution(residuals, jacobian, compute_jacobian=True)

    accumulate_residual = fill_in_contribution_to_residuals
    accumulate_residual_and_jacobian = fill_in_contribution_to_jacobian

    def _fill_in_generic_residual_contribution(
        self,
        residuals: np.ndarray,
        jacobian: Optional[np.ndarray],
        compute_jacobian: bool,
    ) -> None:
        n_node = self.nnode
        n_intpt = self.integral.nweight
        u_real, u_imag = self.u_index_fourier_decomposed_helmholtz()

        testf = np.empty((n_intpt, n_node))  # (Q, n)
        flux = np.empty(n_intpt, dtype=np.complex128)  # (Q,)
        r_W = np.empty(n_intpt)  # (Q,)

        for ipt in range(n_intpt):
            s = self.integral.knot(ipt)
            _, test, J = self.shape_and_test(s)
            W = self.integral.weight(ipt) * J

            x = self.interpolated_x(s)  # (r, z)
            testf[ipt] = test
            flux[ipt] = self.get_flux(x)
            r_W[ipt] = x[0] * W

        # Integrate against every test function at once
        res_real = (flux.real * r_W) @ testf  # (n,)
        res_imag = (flux.imag * r_W) @ testf  # (n,)

        for l in range(n_node):
            local_eqn_real = self.nodal_local_eqn(l, u_real)
            if local_eqn_real >= 0:
                residuals[local_eqn_real] -= res_real[l]

            local_eqn_imag = self.nodal_local_eqn(l, u_imag)
            if local_eqn_imag >= 0:
                residuals[local_eqn_imag] -= res_imag[l]

        # Imposed flux does not depend on the solution: nothing goes into
        # the Jacobian even when it was requested.
        if compute_jacobian:
            logger.debug(
                "%s on face %+d: zero Jacobian contribution", type(self).__name__, self.face_index,
            )
