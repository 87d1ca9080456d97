# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import sys
import argparse
import logging
import contextlib
import numpy as np
import dualanneal.common.typing as tp
from dualanneal.functions import corefuncs
from dualanneal.optimization import tsallis
from dualanneal.optimization import callbacks
from dualanneal.optimization.chain import AnnealingParams
from dualanneal.optimization.localsearch import LocalSearchParams
from dualanneal.optimization.dualannealing import DualAnnealing


@contextlib.contextmanager
def _open_output(filename: str) -> tp.Iterator[tp.Any]:
    """Opens filename for writing, "-" meaning standard output"""
    if filename == "-":
        yield sys.stdout
    else:
        with open(filename, "w") as f:
            yield f


def write_histogram(
    q_V: float, t_V: float, output: str, num_samples: int = 1000000, seed: tp.Optional[int] = None
) -> None:
    """Writes bin centers, empirical log-density and exact log-density as tab separated columns"""
    hist = tsallis.histogram(q_V, t_V, num_samples=num_samples, random_state=seed)
    with _open_output(output) as f:
        for row in zip(hist.centers, hist.empirical_log_density, hist.exact_log_density):
            f.write("\t".join(f"{v:.5e}" for v in row) + "\n")


def run_minimization(args: argparse.Namespace) -> None:
    objective = corefuncs.registry[args.objective]()
    rng = np.random.RandomState(args.seed)
    x = rng.uniform(-1.0, 3.0, size=args.dimension).astype(np.float32)
    params = AnnealingParams(
        q_V=args.q_V, q_A=args.q_A, t_0=args.t_0, num_iter=args.num_iter, patience=args.patience
    )
    local_search = LocalSearchParams(x_tol=args.x_tol) if args.local_search else None
    optimizer = DualAnnealing(params, local_search=local_search)
    if args.verbose:
        optimizer.register_callback("iteration", callbacks.OptimizationPrinter(print_interval_iterations=10))
    print(f"Before: f({x.tolist()}) = {objective.value(x)}")
    result = optimizer.minimize(objective, x, random_state=rng)
    print(f"After : f({x.tolist()}) = {result.func}")
    print(f"Number iterations: {result.num_iter}")
    print(f"Number function evaluations: {result.num_f_evals}")
    print(f"Acceptance: {result.acceptance}")
    if not result.success:
        print(f"Local search failure: {result.status.name}")


def _open_interval(lower: float, upper: float, name: str) -> tp.Callable[[str], float]:
    def convert(string: str) -> float:
        try:
            value = float(string)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Failed to interpret {string!r} as float") from None
        if not lower < value < upper:
            raise argparse.ArgumentTypeError(f"Invalid {name}: {value}; expected {lower} < {name} < {upper}")
        return value

    return convert


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dualanneal", description="Generalized Simulated Annealing (dual annealing) tools."
    )
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level (eg: INFO, DEBUG)")
    subparsers = parser.add_subparsers(dest="command", required=True)
    # tsallis
    hist = subparsers.add_parser(
        "tsallis", help="Sample the Tsallis distribution and compare it with its exact density"
    )
    hist.add_argument("q_V", type=_open_interval(1.0, 3.0, "q_V"), help="shape of the distribution, in (1, 3)")
    hist.add_argument("t_V", type=_open_interval(0.0, np.inf, "t_V"), help="visiting temperature (> 0)")
    hist.add_argument("output", type=str, help='output file ("-" for standard output)')
    hist.add_argument("--num_samples", type=int, default=1000000, help="number of samples")
    hist.add_argument("--seed", type=int, default=12349827, help="seed of the random state")
    # minimize
    mini = subparsers.add_parser("minimize", help="Minimize one of the registered objectives")
    mini.add_argument("objective", type=str, choices=sorted(corefuncs.registry), help="name of the objective")
    mini.add_argument("--dimension", type=int, default=10, help="dimension of the problem")
    mini.add_argument("--seed", type=int, default=1230045, help="seed of the random state")
    mini.add_argument("--q_V", type=_open_interval(1.0, 3.0, "q_V"), default=2.67, help="visiting shape")
    mini.add_argument("--q_A", type=float, default=-5.0, help="acceptance shape")
    mini.add_argument("--t_0", type=_open_interval(0.0, np.inf, "t_0"), default=10.0, help="initial temperature")
    mini.add_argument("--num_iter", type=int, default=1000, help="maximum number of iterations")
    mini.add_argument("--patience", type=int, default=20, help="iterations without improvement before stopping")
    mini.add_argument("--local_search", action="store_true", help="refine improvements with L-BFGS-B")
    mini.add_argument("--x_tol", type=float, default=1e-5, help="x tolerance of the local search")
    mini.add_argument("--verbose", action="store_true", help="print the best value every 10 iterations")
    return parser


def main(argv: tp.Optional[tp.List[str]] = None) -> None:
    args = get_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    if args.command == "tsallis":
        write_histogram(args.q_V, args.t_V, args.output, num_samples=args.num_samples, seed=args.seed)
    else:
        run_minimization(args)


if __name__ == "__main__":
    main()
