"""Main CLI application using Typer."""

from pathlib import Path
from typing import Annotated, Any

import typer
import yaml  # type: ignore[import-untyped]

from lisaflow.core.errors import LisaflowError
from lisaflow.core.output_adapters import register_builtin_output_adapters
from lisaflow.core.registry import OutputAdapterRegistry, StepRegistry
from lisaflow.core.schema import ContiguityRule, WeightStyle
from lisaflow.core.steps.registration import register_builtin_steps

app = typer.Typer(help="lisaflow: Spatial autocorrelation for polygon units")

# --------------------------------------------------------------------------- #
# Global registries (built-ins plus entry point plugins, populated on first access)
# --------------------------------------------------------------------------- #
_step_registry: StepRegistry | None = None
_output_registry: OutputAdapterRegistry | None = None


def get_step_registry() -> StepRegistry:
    """Return the global step registry, loading plugins on first call."""
    global _step_registry
    if _step_registry is None:
        _step_registry = StepRegistry()
        register_builtin_steps(_step_registry)
        _step_registry.load_entry_points()
    return _step_registry


def get_output_registry() -> OutputAdapterRegistry:
    """Return the global output adapter registry."""
    global _output_registry
    if _output_registry is None:
        _output_registry = OutputAdapterRegistry()
        register_builtin_output_adapters(_output_registry)
        _output_registry.load_entry_points()
    return _output_registry


def _load_yaml(path: str) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        typer.echo(f"Error: Config file not found: {path}", err=True)
        raise typer.Exit(code=1) from None

    with open(config_path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        typer.echo(f"Error: Config file must contain a mapping: {path}", err=True)
        raise typer.Exit(code=1) from None
    return data


def _print_summary(results: dict[str, dict[str, Any]]) -> None:
    for name, result in results.items():
        if name.startswith("global_moran:"):
            if result.get("status") == "undefined":
                typer.echo(f"{name}: undefined ({result.get('reason')})")
                continue
            line = (
                f"{name}: I={result['I']:.4f} E[I]={result['expected_I']:.4f} "
                f"p={result['p_value']:.4g}"
            )
            permutation = result.get("permutation")
            if permutation and permutation.get("status") == "undefined":
                line += " pseudo-p=undefined"
            elif permutation:
                line += f" pseudo-p={permutation['p_value']:.4g}"
            typer.echo(line)
        elif name.startswith("local_moran:"):
            clusters = ", ".join(f"{k}={v}" for k, v in result["clusters"].items())
            typer.echo(f"{name}: {clusters}")


@app.command()
def run(
    dataset_config: str = typer.Option(..., "--dataset-config", help="Path to dataset YAML"),
    config: str = typer.Option(..., help="Path to analysis config YAML"),
    output: str | None = typer.Option(None, help="Output path (overrides the config)"),
    output_format: str | None = typer.Option(
        None, "--format", help="parquet, csv, json or geojson (overrides the config)"
    ),
) -> None:
    """
    Run a recipe on a dataset.

    Example:
        lisaflow run --dataset-config configs/datasets/chicago_crime.yaml \
            --config configs/recipes/crime_lisa_v1.yaml
    """
    from lisaflow.core.output_adapters import adapter_for_format
    from lisaflow.core.schema import AnalysisConfig, DatasetConfig
    from lisaflow.core.spatial import load_units
    from lisaflow.recipes.registry import get_recipe, load_builtin_recipes

    try:
        ds_config = DatasetConfig(**_load_yaml(dataset_config))
        analysis = AnalysisConfig(**_load_yaml(config))
    except ValueError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(f"Running recipe '{analysis.recipe}' on dataset '{analysis.dataset}'...")
    load_builtin_recipes()

    try:
        recipe = get_recipe(
            analysis.dataset,
            analysis.recipe,
            analysis,
            dataset_config=ds_config,
            step_registry=get_step_registry(),
        )
        units = load_units(
            ds_config.boundaries_path,
            id_col=ds_config.unit_id_col,
            crs=ds_config.crs,
            geometry_col=ds_config.geometry_col,
            dataset_name=ds_config.dataset_name,
        )
        result = recipe.run(units)
    except (LisaflowError, ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None

    _print_summary(result.metadata.results)

    out_path = output or analysis.output.path
    if out_path:
        fmt = (output_format or analysis.output.format).lower()
        written = adapter_for_format(out_path, fmt).write(result)
        typer.echo(f"Wrote {len(result)} units to {written}")


@app.command()
def neighbors(
    boundaries: str = typer.Argument(..., help="Boundary file (GeoJSON, parquet or CSV with WKT)"),
    id_col: str = typer.Option("unit_id", help="Unit identifier column"),
    rule: ContiguityRule = typer.Option(ContiguityRule.QUEEN, help="Contiguity rule"),
    order: int = typer.Option(1, min=1, help="Neighbour ring order"),
) -> None:
    """Print the neighbour list of every unit."""
    from lisaflow.core.contiguity import build_contiguity
    from lisaflow.core.spatial import load_units

    try:
        units = load_units(boundaries, id_col=id_col)
        graph = build_contiguity(units.geometries(), units.ids, rule=rule, order=order)
    except LisaflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None

    for uid, nbrs in graph.to_dict().items():
        typer.echo(f"{uid}: {', '.join(nbrs) if nbrs else '(island)'}")
    typer.echo(f"\n{graph.n_units} units, {graph.n_links} links, {len(graph.islands)} islands")


@app.command()
def check(
    boundaries: str = typer.Argument(..., help="Boundary file (GeoJSON, parquet or CSV with WKT)"),
    id_col: str = typer.Option("unit_id", help="Unit identifier column"),
    rule: ContiguityRule = typer.Option(ContiguityRule.QUEEN, help="Contiguity rule"),
    style: WeightStyle = typer.Option(WeightStyle.BINARY, help="Weight style"),
    value_col: Annotated[list[str] | None, typer.Option(help="Attribute columns to check")] = None,
) -> None:
    """Validate boundaries, attributes and weights and print a report."""
    from lisaflow.core.contiguity import build_contiguity
    from lisaflow.core.spatial import load_units
    from lisaflow.core.validation import validate_units
    from lisaflow.core.weights import build_weights

    try:
        units = load_units(boundaries, id_col=id_col)
        graph = build_contiguity(units.geometries(), units.ids, rule=rule)
        units = units.with_weights(build_weights(graph, style=style))
    except LisaflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None

    report = validate_units(units, value_cols=value_col or None)
    typer.echo(report.summary())
    if not report.is_valid:
        raise typer.Exit(code=1)


@app.command()
def list_datasets() -> None:
    """List all datasets with registered recipes."""
    from lisaflow.recipes.registry import list_datasets as get_datasets
    from lisaflow.recipes.registry import load_builtin_recipes

    load_builtin_recipes()
    datasets = get_datasets()

    if not datasets:
        typer.echo("No datasets registered")
        return

    typer.echo("Available datasets:")
    for dataset in datasets:
        typer.echo(f"  - {dataset}")


@app.command()
def list_recipes(dataset: str | None = typer.Option(None, help="Filter by dataset")) -> None:
    """List all available recipes."""
    from lisaflow.recipes.registry import list_recipes as get_recipes
    from lisaflow.recipes.registry import load_builtin_recipes

    load_builtin_recipes()
    recipes = get_recipes(dataset)

    if not recipes:
        typer.echo(
            f"No recipes found for dataset: {dataset}" if dataset else "No recipes registered"
        )
        return

    typer.echo("Available recipes:")
    for ds, recipe_list in recipes.items():
        typer.echo(f"\n{ds}:")
        for recipe_name in recipe_list:
            typer.echo(f"  - {recipe_name}")


@app.command()
def validate(
    config: str = typer.Option(..., help="Path to config YAML to validate"),
) -> None:
    """Validate a configuration file."""
    from lisaflow.core.schema import AnalysisConfig, DatasetConfig

    config_dict = _load_yaml(config)

    if "recipe" in config_dict:
        model: type[AnalysisConfig] | type[DatasetConfig] = AnalysisConfig
        kind = "analysis"
    elif "dataset_name" in config_dict:
        model = DatasetConfig
        kind = "dataset"
    else:
        typer.echo("Error: Unknown configuration type", err=True)
        raise typer.Exit(code=1)

    try:
        model(**config_dict)
    except ValueError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo(f"✓ Valid {kind} configuration: {config}")


@app.command()
def version() -> None:
    """Show lisaflow version."""
    from lisaflow import __version__

    typer.echo(f"lisaflow version {__version__}")


# --------------------------------------------------------------------------- #
# Registry inspection commands
# --------------------------------------------------------------------------- #


@app.command()
def list_steps(
    tag: Annotated[str | None, typer.Option(help="Filter steps by tag")] = None,
) -> None:
    """List registered pipeline steps."""
    registry = get_step_registry()
    specs = registry.list(tag=tag)

    if not specs:
        typer.echo("No steps registered" + (f" with tag '{tag}'" if tag else ""))
        return

    typer.echo("Registered steps:")
    for spec in specs:
        tags_str = ", ".join(sorted(spec.tags)) if spec.tags else "none"
        desc = spec.description or ""
        weights = " (builds weights)" if spec.provides_weights else ""
        if spec.requires_weights:
            weights = " (needs weights)"
        typer.echo(f"  {spec.name}  [tags: {tags_str}]{weights}")
        if desc:
            typer.echo(f"      {desc}")


@app.command()
def list_output_adapters() -> None:
    """List registered output adapters."""
    registry = get_output_registry()
    specs = registry.list()

    if not specs:
        typer.echo("No output adapters registered")
        return

    typer.echo("Registered output adapters:")
    for spec in specs:
        tags_str = ", ".join(sorted(spec.tags)) if spec.tags else "none"
        desc = spec.description or ""
        typer.echo(f"  {spec.name}  [tags: {tags_str}]")
        if desc:
            typer.echo(f"      {desc}")


if __name__ == "__main__":
    app()
