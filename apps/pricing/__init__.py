"""Price quotes: dynamic rules, packages and the discount pipeline."""
