#!/usr/bin/env python3
"""
HOCBF Safety Filter Demo for the Franka FR3 Robot.

This example drives the simulated 7-DoF arm with the Cartesian impedance
controller towards a target placed *behind* a keep-out plane (by default the
table plane z >= 0.4 m from the config). The HOCBF safety filter modifies
the nominal torque so the end-effector decelerates and settles on the plane
instead of crossing it.

Control Law:
    τ_nom  = Jᵀ(K e - D ẋ) + N (k_null (q0 - q) - d_null dq)
    τ_safe = argmin ||τ - τ_nom||²  s.t.  ḧ + (α1+α2) ḣ + α1 α2 h >= 0
    τ_cmd  = τ_safe + τ_gravity + τ_coriolis

Usage:
------
1. Basic demo (3 second duration):
   python examples/hocbf_plane_demo.py

2. Plot barrier value and torques:
   python examples/hocbf_plane_demo.py --plot

3. Same motion without the safety filter (crosses the plane):
   python examples/hocbf_plane_demo.py --no-filter --plot

4. Custom target offset from the start pose (meters):
   python examples/hocbf_plane_demo.py --offset 0.1 0.0 -0.3 --weighting dynamic

Requires the package to be installed (pip install -e ".[examples]").
"""

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import Optional

import numpy as np
import matplotlib.pyplot as plt

from safe_impedance_control.core.config import build_model, load_config
from safe_impedance_control.core.contracts import TargetPose, TickOutput
from safe_impedance_control.core.controllers import HOCBFImpedanceController
from safe_impedance_control.core.errors import ConfigurationError
from safe_impedance_control.core.torque_control_loop import TorqueControlLoop
from safe_impedance_control.models import PANDA_READY_POSTURE, SimulatedRobot


class PlaneApproachLoop(TorqueControlLoop):
    """Torque loop that posts a single target right after activation and records the run."""

    def __init__(self, robot, controller, offset: np.ndarray, **kwargs):
        super().__init__(robot, controller, on_diagnostics=self.record, **kwargs)
        self.offset = offset
        self.log = {'time': [], 'h': [], 'hdot': [], 'z': [], 'tau_nom': [], 'tau_cmd': [], 'status': []}

    def initialize(self) -> bool:
        if not super().initialize():
            return False
        start = self.controller.bridge.target_pose()
        target = start.translated(self.offset)
        self.controller.on_target_pose(TargetPose(self.controller.config.base_link, target))
        print(f"✓ Target posted: {np.round(target.p, 4)}")
        return True

    def record(self, output: TickOutput, stamp: float):
        d = output.diagnostics
        self.log['time'].append(stamp)
        self.log['h'].append(d.barrier_values.copy())
        self.log['hdot'].append(d.barrier_rates.copy())
        self.log['z'].append(output.current_pose.p[2])
        self.log['tau_nom'].append(output.tau_nominal.copy())
        self.log['tau_cmd'].append(output.tau_command.copy())
        self.log['status'].append(d.status.name)


def plot_results(log: dict, plane_names, save_path: Optional[str] = None):
    """
    Plot barrier values, barrier rates and torques.

    Args:
        log: Data recorded by PlaneApproachLoop
        plane_names: Label for each plane
        save_path: Optional path to save figure
    """
    t = np.array(log['time'])
    h = np.array(log['h'])
    hdot = np.array(log['hdot'])
    tau_nom = np.array(log['tau_nom'])
    tau_cmd = np.array(log['tau_cmd'])

    fig, axes = plt.subplots(3, 1, figsize=(12, 10), sharex=True)
    fig.suptitle('HOCBF Impedance Control - Plane Approach', fontsize=16, fontweight='bold')

    ax1 = axes[0]
    for i, name in enumerate(plane_names):
        ax1.plot(t, h[:, i], label=f'h ({name})', linewidth=1.5)
    ax1.axhline(y=0.0, color='k', linestyle='--', alpha=0.5, linewidth=1)
    ax1.set_ylabel('Distance (m)', fontsize=12, fontweight='bold')
    ax1.set_title('Barrier Values', fontsize=13, fontweight='bold')
    ax1.legend(loc='upper right', fontsize=9)
    ax1.grid(True, alpha=0.3)

    ax2 = axes[1]
    for i, name in enumerate(plane_names):
        ax2.plot(t, hdot[:, i], label=f'ḣ ({name})', linewidth=1.5)
    ax2.set_ylabel('Rate (m/s)', fontsize=12, fontweight='bold')
    ax2.set_title('Barrier Rates', fontsize=13, fontweight='bold')
    ax2.legend(loc='upper right', fontsize=9)
    ax2.grid(True, alpha=0.3)

    ax3 = axes[2]
    colors = plt.cm.tab10(np.linspace(0, 1, tau_cmd.shape[1]))
    for j in range(tau_cmd.shape[1]):
        ax3.plot(t, tau_cmd[:, j], color=colors[j], label=f'Joint {j+1}', linewidth=1.5)
        ax3.plot(t, tau_nom[:, j], color=colors[j], linestyle='--', alpha=0.5, linewidth=1)
    ax3.set_xlabel('Time (s)', fontsize=12, fontweight='bold')
    ax3.set_ylabel('Torque (N⋅m)', fontsize=12, fontweight='bold')
    ax3.set_title('Commanded (solid) vs Nominal (dashed) Torques', fontsize=13, fontweight='bold')
    ax3.legend(ncol=4, loc='upper right', fontsize=9)
    ax3.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"✓ Plot saved to: {save_path}")

    plt.show()


def main():
    """Main entry point for the HOCBF plane demo."""
    project_root = Path(__file__).parent.parent
    default_config = project_root / "config" / "fr3_hocbf_impedance.yaml"

    parser = argparse.ArgumentParser(
        description='HOCBF Safety Filter Demo for Franka FR3',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--config', type=str, default=str(default_config),
                        help='Controller YAML config')
    parser.add_argument('--duration', type=float, default=3.0,
                        help='Simulation duration (seconds, default: 3.0)')
    parser.add_argument('--offset', type=float, nargs=3, default=[0.0, 0.0, -0.35],
                        metavar=('DX', 'DY', 'DZ'),
                        help='Target offset from the start pose (meters)')
    parser.add_argument('--weighting', choices=['identity', 'dynamic'], default=None,
                        help='Override the QP weighting from the config')
    parser.add_argument('--no-filter', action='store_true',
                        help='Disable the safety filter (for comparison)')
    parser.add_argument('--realtime', action='store_true',
                        help='Pace the loop against the wall clock')
    parser.add_argument('--log-hz', type=float, default=200.0,
                        help='Diagnostics recording rate (Hz, default: 200)')
    parser.add_argument('--plot', action='store_true', help='Plot results')
    parser.add_argument('--save-plot', type=str, default=None, help='Save plot to file')
    args = parser.parse_args()

    try:
        config = load_config(args.config)
        if args.weighting is not None:
            config = dataclasses.replace(config, weighting=args.weighting)
        if args.no_filter:
            config = dataclasses.replace(config, safety_enabled=False)

        model = build_model(config)
        dt = 1.0 / config.controller_hz
        robot = SimulatedRobot(model, PANDA_READY_POSTURE, dt=dt)
        controller = HOCBFImpedanceController(config, model)

        loop = PlaneApproachLoop(
            robot, controller, np.array(args.offset),
            controller_hz=config.controller_hz,
            diagnostics_hz=min(args.log_hz, config.controller_hz),
            realtime=args.realtime,
        )
        if not loop.run(duration_s=args.duration):
            sys.exit(1)
    except ConfigurationError as e:
        print(f"\n✗ Configuration error: {e}")
        sys.exit(1)

    h = np.array(loop.log['h'])
    if h.size:
        print(f"\nMinimum distance to constraint planes: {h.min():.4f} m")
        if h.min() < 0.0:
            print("⚠️  End-effector left the safe set")
        else:
            print("✓ End-effector stayed in the safe set")

    if args.plot or args.save_plot:
        print("\nGenerating plots...")
        names = [p.name or f'plane {i}' for i, p in enumerate(controller.pipeline.planes)]
        plot_results(loop.log, names, save_path=args.save_plot)


if __name__ == '__main__':
    main()
