"""Radiated power of an outgoing multipole through a truncation boundary.

Builds the meridian section of a spherical shell, stores the exact outgoing
multipole h_n(k rho) P_n^N(cos theta) on the nodes, and

    1. sums the PowerMonitorElement contributions over the outer and inner
       spheres and compares them with the analytic power,
    2. imposes the matching flux dU/dn on the inner sphere with FluxElement
       and reports the assembled net flux,
    3. optionally writes the power-density trace (HDF5) and a plot of the
       density against the zenith angle.

Usage
-----
    python scripts/run_power_monitor.py
    python scripts/run_power_monitor.py --degree 2 --order 1 --n-angular 48 --plot
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import matplotlib
import numpy as np

matplotlib.use("Agg")
import matplotlib.pyplot as plt

# ---------------------------------------------------------------------------
# Project imports
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fourier_helmholtz.elements import HelmholtzParameters
from fourier_helmholtz.exact import OutgoingMultipole
from fourier_helmholtz.flux_elements import FluxElement
from fourier_helmholtz.mesh import (
    AnnularMeshConfig,
    assemble_residuals,
    assign_eqn_numbers,
    build_annular_mesh,
    build_face_elements,
    set_nodal_field,
    sum_power,
)
from fourier_helmholtz.power_monitor import PowerDensityTrace, PowerMonitorElement

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("power_monitor")

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
RESULTS_DIR = PROJECT_ROOT / "results" / "power_monitor"


def plot_power_density(trace: PowerDensityTrace, exact_density, output_path: Path) -> None:
    """Power density on the outer sphere vs zenith angle."""
    rows = trace.as_array()
    order = np.argsort(rows[:, 2])
    theta = rows[order, 2]
    density = rows[order, 3]

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(np.degrees(theta), density, "o", ms=3, label="FE (face knots)")
    theta_fine = np.linspace(0.0, np.pi, 400)
    ax.plot(np.degrees(theta_fine), exact_density(theta_fine), "-", lw=1, label="exact")
    ax.set_xlabel("zenith angle [deg]")
    ax.set_ylabel("Re U Im dU/dn - Im U Re dU/dn")
    ax.legend()
    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    logger.info("Saved: %s", output_path)


def main() -> None:
    parser = argparse.ArgumentParser(description="Radiated power through a truncation boundary")
    parser.add_argument("--k", type=float, default=1.0, help="Wavenumber")
    parser.add_argument("--degree", type=int, default=1, help="Multipole degree n")
    parser.add_argument("--order", type=int, default=0, help="Fourier wavenumber N")
    parser.add_argument("--r-inner", type=float, default=1.0)
    parser.add_argument("--r-outer", type=float, default=2.0)
    parser.add_argument("--n-radial", type=int, default=4)
    parser.add_argument("--n-angular", type=int, default=32)
    parser.add_argument("--nnode-1d", type=int, default=3, choices=[2, 3])
    parser.add_argument(
        "--trace", action="store_true",
        help="Write the outer-sphere power-density trace to HDF5",
    )
    parser.add_argument("--plot", action="store_true", help="Plot power density vs angle")
    args = parser.parse_args()

    params = HelmholtzParameters(k_squared=args.k ** 2, fourier_wavenumber=args.order)
    config = AnnularMeshConfig(
        r_inner=args.r_inner, r_outer=args.r_outer,
        n_radial=args.n_radial, n_angular=args.n_angular, nnode_1d=args.nnode_1d,
    )

    t0 = time.time()
    mesh = build_annular_mesh(config, params)
    # Exact solution for the wavenumber and Fourier mode the elements carry
    multipole = OutgoingMultipole.from_parameters(mesh.elements[0].params, args.degree)
    multipole.validate()
    set_nodal_field(mesh.nodes, multipole)

    # --- Power through the outer and inner spheres ---
    trace = PowerDensityTrace()
    outer = build_face_elements(mesh, "outer", PowerMonitorElement)
    inner = build_face_elements(mesh, "inner", PowerMonitorElement)
    p_outer = sum_power(outer, trace)
    p_inner = -sum_power(inner)
    p_exact = multipole.power()

    logger.info(
        "Power: outer=%.6e, inner=%.6e, exact=%.6e (rel err %.2e / %.2e)",
        p_outer, p_inner, p_exact,
        abs(p_outer - p_exact) / p_exact, abs(p_inner - p_exact) / p_exact,
    )

    # --- Prescribed flux on the inner sphere (outward normal points to the origin) ---
    flux_elements = build_face_elements(mesh, "inner", FluxElement)
    for element in flux_elements:
        element.flux_fct = lambda x: -complex(multipole.radial_derivative(x))
    n_dof = assign_eqn_numbers(mesh.nodes)
    residuals = assemble_residuals(flux_elements, n_dof)
    real_eqns = [node.eqn_number(0) for node in mesh.nodes]
    imag_eqns = [node.eqn_number(1) for node in mesh.nodes]
    logger.info(
        "Flux residual on inner sphere: %d dofs, net = %.6e %+.6ej",
        n_dof, residuals[real_eqns].sum(), residuals[imag_eqns].sum(),
    )
    logger.info("Completed in %.2f s", time.time() - t0)

    if args.trace or args.plot:
        RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    if args.trace:
        trace.write_hdf5(RESULTS_DIR / "power_density_outer.h5")
    if args.plot:
        def exact_density(theta):
            x = args.r_outer * np.column_stack([np.sin(theta), np.cos(theta)])
            u = multipole(x)
            dudn = multipole.radial_derivative(x)
            return u.real * dudn.imag - u.imag * dudn.real

        plot_power_density(trace, exact_density, RESULTS_DIR / "power_density_outer.png")

    print("\n" + "=" * 60)
    print("RADIATED POWER SUMMARY")
    print("=" * 60)
    print(f"Multipole: n={args.degree}, N={args.order}, k={args.k}")
    print(f"Mesh: {mesh.n_element} elements, {mesh.n_node} nodes")
    print(f"  Exact power:        {p_exact:.8f}")
    print(f"  Outer sphere (R={args.r_outer}): {p_outer:.8f}")
    print(f"  Inner sphere (R={args.r_inner}): {p_inner:.8f}")
    print("=" * 60)


if __name__ == "__main__":
    main()
