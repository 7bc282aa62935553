"""Sensitivity, scenario and optimization runs over the calculation engine.

- paths.py: typed parameter lenses (dotted paths -> ParameterKey)
- metrics.py: outcome metrics extracted from a CalcOutput
- runner.py: baseline / sensitivity / scenario batches
- optimizer.py: grid search and bisection toward a target metric
- presets.py: named sensitivity variables and percentage scenario levers
"""
