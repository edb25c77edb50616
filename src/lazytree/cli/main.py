"""lazytree CLI entry point."""

import asyncio
import json
import logging
from pathlib import Path
from typing import NoReturn

import click

from lazytree.config import EngineOptions
from lazytree.engine import LazyTree
from lazytree.errors import LazyTreeError
from lazytree.expressions import FunctionCategory, FunctionRegistry, ensure_builtins
from lazytree.storage import read_document
from lazytree.variants import VariantContext, resolve


def _parse_context(pairs: tuple[str, ...]) -> VariantContext:
    try:
        return VariantContext.from_pairs(pairs)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--context") from e


def _fail(message: str) -> NoReturn:
    click.secho(f"Error: {message}", fg="red", err=True)
    raise SystemExit(1)


context_option = click.option(
    "--context",
    "-c",
    "context_pairs",
    multiple=True,
    metavar="KEY=VALUE",
    help="Variant context entry; repeat for several dimensions.",
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log evaluation details.")
def cli(verbose: bool):
    """lazytree: evaluate directive trees from the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("path", required=False, default=None)
@context_option
@click.option(
    "--max-depth",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum nested expression evaluations.",
)
def get(file: Path, path: str | None, context_pairs: tuple[str, ...], max_depth: int | None):
    """Evaluate PATH in a JSON or YAML FILE and print it as JSON."""
    context = _parse_context(context_pairs)

    try:
        document = read_document(file)
    except (OSError, ValueError, LazyTreeError) as e:
        _fail(f"cannot read {file}: {e}")

    overrides: dict = {}
    if context_pairs:
        overrides["base_context"] = context
    if max_depth is not None:
        overrides["max_evaluation_depth"] = max_depth
    tree = LazyTree(document, EngineOptions.from_env(**overrides))

    try:
        value = asyncio.run(tree.get(path))
    except LazyTreeError as e:
        _fail(str(e))

    click.echo(json.dumps(value, indent=2, ensure_ascii=False, default=str))


@cli.command("resolve")
@click.argument("base")
@click.argument("candidates", nargs=-1, required=True)
@context_option
def resolve_cmd(base: str, candidates: tuple[str, ...], context_pairs: tuple[str, ...]):
    """Print which of CANDIDATES best matches the context for BASE."""
    context = _parse_context(context_pairs)
    chosen = resolve(base, list(candidates), context)
    if chosen is None:
        _fail(f"no candidate matches '{base}' with context {context.to_dict()}")
    click.echo(chosen.name)


@cli.command()
@click.option(
    "--category",
    type=click.Choice([c.value for c in FunctionCategory]),
    default=None,
    help="Only list functions of one category.",
)
def functions(category: str | None):
    """List the built-in expression functions."""
    ensure_builtins()
    if category is None:
        defs = FunctionRegistry.list_all()
    else:
        defs = FunctionRegistry.list_by_category(FunctionCategory(category))

    for func_def in sorted(defs, key=lambda f: (f.category.value, f.name)):
        params = ", ".join(p.name for p in func_def.parameters)
        click.echo(f"{func_def.category.value:<10} {func_def.name}({params})  {func_def.description}")


def main():
    cli()
