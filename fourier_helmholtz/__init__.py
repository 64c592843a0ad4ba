"""Boundary elements for the Fourier-decomposed Helmholtz equation.

Modules:
    elements       - nodes and bulk (meridian-plane) Helmholtz elements
    face_elements  - face element base: bulk bridge, geometry, equation numbers
    flux_elements  - prescribed complex flux (Neumann) boundary condition
    power_monitor  - time-averaged radiated power over a truncation boundary
    exact          - analytic outgoing multipoles for validation
    mesh           - structured meridian meshes and element-loop helpers
"""

from fourier_helmholtz.elements import (
    FourierDecomposedHelmholtzElement,
    HelmholtzParameters,
    Node,
    QElement,
)
from fourier_helmholtz.errors import ConfigurationError
from fourier_helmholtz.flux_elements import FluxElement
from fourier_helmholtz.power_monitor import PowerDensityTrace, PowerMonitorElement
