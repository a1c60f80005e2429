"""Command-line interface."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="bayalign: Bayesian alignment and phylogeny sampling")
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


@app.command()
def version():
    """Show bayalign version."""
    from bayalign import __version__
    console.print(f"bayalign version {__version__}")


@app.command()
def states(
    n_way: Optional[int] = typer.Option(None, "--n-way", "-n", help="List the states of one HMM (2, 3 or 5)"),
):
    """Show composite state counts, or list the states of one alignment HMM."""
    from bayalign.core.states import get_state_space

    if n_way is None:
        table = Table(title="Alignment HMMs")
        table.add_column("HMM", style="cyan")
        table.add_column("Positions", justify="right")
        table.add_column("Edges", justify="right")
        table.add_column("States", justify="right", style="green")
        for n in (2, 3, 5):
            space = get_state_space(n)
            table.add_row(space.name, str(space.n_positions), str(space.n_edges), f"{space.nstates} + E")
        console.print(table)
        return

    try:
        space = get_state_space(n_way)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"{space.name} states")
    table.add_column("Index", justify="right", style="cyan")
    table.add_column("Code", justify="right")
    table.add_column("State", style="green")
    for S in range(space.nstates):
        table.add_row(str(S), f"{space.code(S):#x}", space.state_name(S))
    table.add_row(str(space.endstate), "0x0", "E")
    console.print(table)


@app.command()
def encode(
    row1: str = typer.Argument(..., help="First gapped row"),
    row2: str = typer.Argument(..., help="Second gapped row"),
):
    """Print the pairwise HMM path of a two-row alignment."""
    from bayalign.core.alignment import Alignment
    from bayalign.core.errors import MalformedAlignmentError
    from bayalign.core.paths import get_path_2way
    from bayalign.core.states import PAIR_STATE_NAMES

    try:
        A = Alignment.from_strings([row1, row2])
        path = get_path_2way(A, 0, 1)
    except (MalformedAlignmentError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    console.print(",".join(PAIR_STATE_NAMES[S] for S in path))


@app.command()
def decode(
    seq1: str = typer.Argument(..., help="First ungapped sequence"),
    seq2: str = typer.Argument(..., help="Second ungapped sequence"),
    path: str = typer.Option(..., "--path", "-p", help="Comma-separated pairwise states, e.g. M,M,G2"),
):
    """Print the two-row alignment described by a pairwise HMM path."""
    from bayalign.core.alignment import Alignment
    from bayalign.core.errors import MalformedAlignmentError
    from bayalign.core.paths import construct
    from bayalign.core.states import PAIR_STATE_NAMES, get_state_space
    from bayalign.core.trees import Tree

    by_name = {name: S for S, name in PAIR_STATE_NAMES.items()}
    try:
        steps = [by_name[s.strip().upper()] for s in path.split(",") if s.strip()]
    except KeyError as e:
        console.print(f"[red]Error: unknown pairwise state {e}[/red]")
        raise typer.Exit(code=1)

    # Unaligned start: every character in a column of its own
    old = Alignment.from_strings([seq1 + "-" * len(seq2), "-" * len(seq1) + seq2])
    tree = Tree(2, [(0, 1)], names=["seq1", "seq2"])
    try:
        A = construct(old, steps, [0, 1], tree, space=get_state_space(2))
    except (MalformedAlignmentError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    for row in A.to_strings():
        console.print(row)


def _read_tree(newick: str):
    from bayalign.core.trees import Tree

    if Path(newick).is_file():
        return Tree.from_file(newick)
    return Tree.from_newick(newick)


@app.command()
def sample(
    newick: str = typer.Argument(..., help="Newick tree string or file"),
    rows: List[str] = typer.Argument(..., help="Gapped leaf rows, as NAME=ROW or in leaf order"),
    iterations: int = typer.Option(100, "--iterations", "-i", help="Number of sweeps"),
    sigma: float = typer.Option(0.5, "--sigma", help="Log-scale branch proposal size"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed"),
    indel_rate: float = typer.Option(0.1, "--indel-rate", help="Indel rate"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Sample branch lengths for a fixed alignment (Jukes-Cantor, simple indel model)."""
    from bayalign.core.alignment import Alignment, add_internal
    from bayalign.core.indel import SimpleIndelModel
    from bayalign.core.parameters import Parameters
    from bayalign.core.sampler import SamplerSettings, run_chain
    from bayalign.core.substitution import jukes_cantor

    _setup_logging(verbose)
    try:
        tree = _read_tree(newick)
        leaf_names = [tree.names[n] for n in tree.leaves()]
        if all("=" in r for r in rows):
            named = dict(r.split("=", 1) for r in rows)
            missing = [n for n in leaf_names if n not in named]
            if missing:
                raise ValueError(f"No row for leaves {missing}")
            ordered = [named[n] for n in leaf_names]
        else:
            ordered = list(rows)
        leaves = Alignment.from_strings(ordered, names=leaf_names)
        A = add_internal(leaves, tree)
        P = Parameters(A, tree, jukes_cantor(A.alphabet.size), SimpleIndelModel(rate=indel_rate))
        settings = SamplerSettings(n_iterations=iterations, branch_sigma=sigma, seed=seed)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    P, stats, trace = run_chain(P, settings)

    table = Table(title="Branch lengths")
    table.add_column("Branch", justify="right", style="cyan")
    table.add_column("Nodes")
    table.add_column("Length", justify="right", style="green")
    for b, (u, v) in enumerate(P.tree.edges):
        table.add_row(str(b), f"{P.tree.names[u]} - {P.tree.names[v]}", f"{P.branch_length(b):.5f}")
    console.print(table)
    if trace:
        console.print(f"Final log probability: {trace[-1]:.4f}")
    console.print(f"Acceptance: {stats.summary()}")
    P.release()


if __name__ == "__main__":
    app()
