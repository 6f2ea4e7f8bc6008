#!/usr/bin/env python
"""
Example script for running the Chicago crime LISA recipe.

This script demonstrates how to:
1. Load community areas and crime points
2. Count crimes per area and run global and local Moran's I
3. Save the per-area cluster table
"""

from pathlib import Path

import yaml  # type: ignore[import-untyped]

from lisaflow.core.output_adapters import adapter_for_format
from lisaflow.core.schema import AnalysisConfig, DatasetConfig
from lisaflow.core.validation import validate_units
from lisaflow.datasets.chicago_crime import load_community_areas
from lisaflow.recipes.registry import get_recipe, load_builtin_recipes


def main() -> None:
    """Main execution function."""
    dataset_config_path = Path("configs/datasets/chicago_crime.yaml")
    recipe_config_path = Path("configs/recipes/crime_lisa_v1.yaml")

    print("=" * 60)
    print("Chicago Crime LISA Runner")
    print("=" * 60)

    print(f"\n1. Loading dataset configuration from {dataset_config_path}")
    with open(dataset_config_path) as f:
        dataset_config = DatasetConfig(**yaml.safe_load(f))
    print(f"   Boundaries: {dataset_config.boundaries_path}")
    print(f"   Events: {dataset_config.events_path}")

    print(f"\n2. Loading analysis configuration from {recipe_config_path}")
    with open(recipe_config_path) as f:
        analysis = AnalysisConfig(**yaml.safe_load(f))
    print(f"   Recipe: {analysis.recipe}")
    print(f"   Contiguity: {analysis.contiguity.rule.value}, order {analysis.contiguity.order}")
    print(f"   Permutations: {analysis.inference.permutations} (seed {analysis.inference.seed})")

    print("\n3. Loading community areas...")
    units = load_community_areas(dataset_config.boundaries_path, config=dataset_config)
    print(f"   Loaded {len(units)} areas")

    print("\n4. Running recipe...")
    load_builtin_recipes()
    recipe = get_recipe(
        dataset_config.dataset_name,
        analysis.recipe,
        analysis,
        dataset_config=dataset_config,
    )
    result = recipe.run(units)

    report = validate_units(result, value_cols=[analysis.value_col])
    print(report.summary())

    for name, summary in result.metadata.results.items():
        print(f"   {name}: {summary}")

    if analysis.output.path:
        written = adapter_for_format(analysis.output.path, analysis.output.format).write(result)
        print(f"\n5. Results saved to {written}")

    print("\n" + "=" * 60)
    print("Done")
    print("=" * 60)


if __name__ == "__main__":
    main()
